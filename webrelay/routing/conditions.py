"""
Condition predicates gating routing rules.

Each registrar takes a matcher (see ``webrelay.routing.matchers``) and returns
a ``predicate(request) -> bool``. Data the request does not carry (no Referer,
an unparsable User-Agent, no IP lookup configured, an unknown address) makes
the predicate false.
"""

import ipaddress
from functools import partial
from typing import Any, Callable, Dict, Iterable, List, Optional

from webrelay.lookup import IPRecord
from webrelay.request import Request
from webrelay.routing.matchers import Matcher, Predicate, coerce

Condition = Callable[[Request], bool]

IP_NETWORK_TYPES = (ipaddress.IPv4Network, ipaddress.IPv6Network)
IP_ADDRESS_TYPES = (ipaddress.IPv4Address, ipaddress.IPv6Address)

# OS family shortcuts accepted by ``os``
OS_FAMILIES: Dict[str, Callable[[str], bool]] = {
    "android": lambda name: name == "Android",
    "ios": lambda name: name in ("iPhone", "iPad", "iPod", "iOS"),
    "linux": lambda name: name == "Linux",
    "windows": lambda name: name.startswith("Windows"),
}


def _when_present(getter: Callable[[Request], Any], matcher: Any) -> Condition:
    match = coerce(matcher)

    def condition(request: Request) -> bool:
        value = getter(request)
        if value is None:
            return False
        return match(value)

    return condition


def _parse_ip(value: str):
    try:
        return ipaddress.ip_address(value)
    except ValueError:
        return None


def _in_network(network, value: str) -> bool:
    address = _parse_ip(value)
    return (
        address is not None
        and address.version == network.version
        and address in network
    )


def _same_address(expected, value: str) -> bool:
    return _parse_ip(value) == expected


def _ip_matcher(matcher: Any) -> Matcher:
    if isinstance(matcher, Matcher):
        return matcher
    if isinstance(matcher, str) and "/" in matcher:
        matcher = ipaddress.ip_network(matcher, strict=False)
    if isinstance(matcher, IP_NETWORK_TYPES):
        return Predicate(partial(_in_network, matcher))
    if isinstance(matcher, IP_ADDRESS_TYPES):
        return Predicate(partial(_same_address, matcher))
    if isinstance(matcher, (list, tuple, set, frozenset)):
        matchers = [_ip_matcher(item) for item in matcher]
        return Predicate(lambda value: any(m(value) for m in matchers))
    return coerce(matcher)


def _ip_record(request: Request) -> Optional[IPRecord]:
    lookup = request.ip_lookup
    ip = request.client_ip
    if lookup is None or ip is None:
        return None
    return lookup.lookup(ip)


def client_ip(matcher: Any) -> Condition:
    """Match the client address: exact IP, CIDR string, ipaddress network, or a list of them."""
    return _when_present(lambda request: request.client_ip, _ip_matcher(matcher))


def asn(matcher: Any) -> Condition:
    def number(request: Request) -> Optional[int]:
        record = _ip_record(request)
        return record.number if record else None

    return _when_present(number, matcher)


def country_code(matcher: Any) -> Condition:
    def code(request: Request) -> Optional[str]:
        record = _ip_record(request)
        return record.country_code if record else None

    return _when_present(code, matcher)


def asn_name(matcher: Any) -> Condition:
    def name(request: Request) -> Optional[str]:
        record = _ip_record(request)
        return record.name if record else None

    return _when_present(name, matcher)


def host(matcher: Any) -> Condition:
    return _when_present(lambda request: request.host or None, matcher)


def referer(matcher: Any) -> Condition:
    return _when_present(lambda request: request.referer, matcher)


referrer = referer


def user_agent(matcher: Any) -> Condition:
    return _when_present(lambda request: request.user_agent, matcher)


def browser(matcher: Any) -> Condition:
    return _when_present(lambda request: request.browser, matcher)


def browser_vendor(matcher: Any) -> Condition:
    return _when_present(lambda request: request.browser_vendor, matcher)


def browser_version(matcher: Any) -> Condition:
    return _when_present(lambda request: request.browser_version, matcher)


def device_type(matcher: Any) -> Condition:
    return _when_present(lambda request: request.device_type, matcher)


def os(matcher: Any) -> Condition:
    if isinstance(matcher, str) and matcher in OS_FAMILIES:
        matcher = Predicate(OS_FAMILIES[matcher])
    return _when_present(lambda request: request.os, matcher)


def os_version(matcher: Any) -> Condition:
    return _when_present(lambda request: request.os_version, matcher)


CONDITIONS: Dict[str, Callable[[Any], Condition]] = {
    "client_ip": client_ip,
    "asn": asn,
    "country_code": country_code,
    "asn_name": asn_name,
    "host": host,
    "referer": referer,
    "referrer": referer,
    "user_agent": user_agent,
    "browser": browser,
    "browser_vendor": browser_vendor,
    "browser_version": browser_version,
    "device_type": device_type,
    "os": os,
    "os_version": os_version,
}


def build_conditions(
    conditions: Optional[Iterable[Condition]] = None, **named: Any
) -> List[Condition]:
    """Combine explicit predicates with ``name=matcher`` keyword conditions."""
    result = list(conditions or [])
    for name, matcher in named.items():
        registrar = CONDITIONS.get(name)
        if registrar is None:
            raise TypeError(f"Unknown route condition: {name}")
        result.append(registrar(matcher))
    return result
