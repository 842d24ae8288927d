"""
IP address to ASN / country lookups used by the ``asn``, ``asn_name`` and
``country_code`` routing conditions.

The lookup is a capability the App is given; ``GeoIPLookup`` reads MaxMind
databases, ``StaticIPLookup`` serves a fixed table of networks.
"""

import ipaddress
import logging
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Protocol, Tuple, Union

import geoip2.database
import geoip2.errors

from webrelay.vars import GEOIP_ASN_DB, GEOIP_COUNTRY_DB

logger = logging.getLogger("uvicorn.error")


@dataclass(frozen=True)
class IPRecord:
    number: Optional[int] = None
    name: Optional[str] = None
    country_code: Optional[str] = None


class IPLookup(Protocol):
    def lookup(self, ip: str) -> Optional[IPRecord]: ...


class GeoIPLookup:
    """Resolve addresses with MaxMind GeoLite2/GeoIP2 ``.mmdb`` databases."""

    def __init__(self, asn_db: str, country_db: Optional[str] = None):
        self.asn_db = asn_db
        self.country_db = country_db
        self._readers: Dict[str, geoip2.database.Reader] = {}
        self._lock = threading.Lock()

    def _reader(self, path: str) -> geoip2.database.Reader:
        with self._lock:
            reader = self._readers.get(path)
            if reader is None:
                reader = geoip2.database.Reader(path)
                self._readers[path] = reader
            return reader

    def lookup(self, ip: str) -> Optional[IPRecord]:
        try:
            asn = self._reader(self.asn_db).asn(ip)
        except (geoip2.errors.AddressNotFoundError, ValueError):
            return None

        country_code = None
        if self.country_db:
            try:
                country_code = self._reader(self.country_db).country(ip).country.iso_code
            except (geoip2.errors.AddressNotFoundError, ValueError):
                country_code = None

        return IPRecord(
            number=asn.autonomous_system_number,
            name=asn.autonomous_system_organization,
            country_code=country_code,
        )

    def close(self) -> None:
        with self._lock:
            for reader in self._readers.values():
                reader.close()
            self._readers.clear()


Network = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


class StaticIPLookup:
    """Lookup over a fixed ``{cidr: IPRecord}`` table; first matching network wins."""

    def __init__(self, table: Union[Dict[str, IPRecord], Iterable[Tuple[str, IPRecord]]]):
        items = table.items() if isinstance(table, dict) else table
        self.networks = [
            (ipaddress.ip_network(cidr, strict=False), record) for cidr, record in items
        ]

    def lookup(self, ip: str) -> Optional[IPRecord]:
        try:
            address = ipaddress.ip_address(ip)
        except ValueError:
            return None
        for network, record in self.networks:
            if address.version == network.version and address in network:
                return record
        return None


def default_lookup() -> Optional[IPLookup]:
    """Build the lookup configured through GEOIP_ASN_DB / GEOIP_COUNTRY_DB, if any."""
    if not GEOIP_ASN_DB:
        return None
    logger.info(f"[Lookup] Using GeoIP ASN database {GEOIP_ASN_DB}")
    return GeoIPLookup(GEOIP_ASN_DB, GEOIP_COUNTRY_DB or None)
