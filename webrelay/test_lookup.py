from unittest.mock import Mock, patch

import geoip2.errors

from webrelay import lookup as lookup_module
from webrelay.lookup import GeoIPLookup, IPRecord, StaticIPLookup, default_lookup


class TestStaticIPLookup:
    def test_matches_network(self, static_lookup):
        assert static_lookup.lookup("8.8.8.8") == IPRecord(15169, "GOOGLE", "US")
        assert static_lookup.lookup("1.1.1.1").country_code == "AU"

    def test_ipv6(self, static_lookup):
        assert static_lookup.lookup("2001:4860:4860::8888").number == 15169

    def test_unknown_and_invalid_addresses(self, static_lookup):
        assert static_lookup.lookup("10.0.0.1") is None
        assert static_lookup.lookup("not-an-ip") is None


class TestGeoIPLookup:
    """GeoIPLookup with the MaxMind reader mocked out."""

    def test_lookup_combines_asn_and_country(self):
        with patch("webrelay.lookup.geoip2.database.Reader") as reader_cls:
            reader = reader_cls.return_value
            reader.asn.return_value = Mock(
                autonomous_system_number=15169,
                autonomous_system_organization="GOOGLE",
            )
            reader.country.return_value.country.iso_code = "US"

            record = GeoIPLookup("asn.mmdb", "country.mmdb").lookup("8.8.8.8")

        assert record == IPRecord(15169, "GOOGLE", "US")
        opened = {call.args[0] for call in reader_cls.call_args_list}
        assert opened == {"asn.mmdb", "country.mmdb"}

    def test_readers_are_opened_once(self):
        with patch("webrelay.lookup.geoip2.database.Reader") as reader_cls:
            reader_cls.return_value.asn.return_value = Mock(
                autonomous_system_number=1, autonomous_system_organization="X"
            )
            lookup = GeoIPLookup("asn.mmdb")
            lookup.lookup("8.8.8.8")
            lookup.lookup("8.8.4.4")

        assert reader_cls.call_count == 1

    def test_address_not_found(self):
        with patch("webrelay.lookup.geoip2.database.Reader") as reader_cls:
            reader_cls.return_value.asn.side_effect = (
                geoip2.errors.AddressNotFoundError("not found")
            )

            assert GeoIPLookup("asn.mmdb").lookup("10.0.0.1") is None

    def test_country_missing_still_returns_asn(self):
        with patch("webrelay.lookup.geoip2.database.Reader") as reader_cls:
            reader = reader_cls.return_value
            reader.asn.return_value = Mock(
                autonomous_system_number=13335,
                autonomous_system_organization="CLOUDFLARENET",
            )
            reader.country.side_effect = geoip2.errors.AddressNotFoundError("nope")

            record = GeoIPLookup("asn.mmdb", "country.mmdb").lookup("1.1.1.1")

        assert record == IPRecord(13335, "CLOUDFLARENET", None)

    def test_close(self):
        with patch("webrelay.lookup.geoip2.database.Reader") as reader_cls:
            reader_cls.return_value.asn.return_value = Mock(
                autonomous_system_number=1, autonomous_system_organization="X"
            )
            lookup = GeoIPLookup("asn.mmdb")
            lookup.lookup("8.8.8.8")
            lookup.close()

        reader_cls.return_value.close.assert_called_once()


class TestDefaultLookup:
    def test_unconfigured(self, monkeypatch):
        monkeypatch.setattr(lookup_module, "GEOIP_ASN_DB", "")

        assert default_lookup() is None

    def test_configured(self, monkeypatch):
        monkeypatch.setattr(lookup_module, "GEOIP_ASN_DB", "/data/asn.mmdb")
        monkeypatch.setattr(lookup_module, "GEOIP_COUNTRY_DB", "/data/country.mmdb")

        lookup = default_lookup()

        assert isinstance(lookup, GeoIPLookup)
        assert lookup.asn_db == "/data/asn.mmdb"
        assert lookup.country_db == "/data/country.mmdb"
