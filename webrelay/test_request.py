"""
Tests for the mutable Request wrapper.

Covers:
- Host/port resolution from the Host header and the server tuple
- ssl/port assignment rules
- Path, query and header mutation writing through to the ASGI scope
- Common header accessors and the parsed User-Agent fields
"""

import pytest

from webrelay.request import Request, join_authority, split_authority
from webrelay.utils_tests.asgi import make_scope

CHROME_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
FIREFOX_LINUX = "Mozilla/5.0 (X11; Linux x86_64; rv:109.0) Gecko/20100101 Firefox/115.0"


def make_request(**kwargs) -> Request:
    return Request(make_scope(**kwargs))


class TestAuthority:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("example.com", ("example.com", None)),
            ("example.com:8080", ("example.com", 8080)),
            ("[::1]:443", ("::1", 443)),
            ("[::1]", ("::1", None)),
            ("::1", ("::1", None)),
        ],
    )
    def test_split_authority(self, value, expected):
        assert split_authority(value) == expected

    def test_join_authority(self):
        assert join_authority("example.com", None) == "example.com"
        assert join_authority("example.com", 81) == "example.com:81"
        assert join_authority("::1", 81) == "[::1]:81"


class TestTarget:
    """Host, port and scheme resolution."""

    def test_host_and_default_port_from_host_header(self):
        request = make_request(headers=[("host", "example.com")])

        assert request.host == "example.com"
        assert request.port == 80
        assert request.ssl is False

    def test_explicit_port_in_host_header(self):
        request = make_request(headers=[("host", "example.com:8080")])

        assert request.port == 8080
        assert request.host_with_port == "example.com:8080"

    def test_https_default_port(self):
        request = make_request(scheme="https", headers=[("host", "example.com")])

        assert request.ssl is True
        assert request.port == 443

    def test_falls_back_to_server_without_host_header(self):
        request = make_request(server=("10.0.0.1", 9000))

        assert request.host == "10.0.0.1"
        assert request.port == 9000

    def test_setting_host_rewrites_header_and_server(self):
        request = make_request(headers=[("host", "example.com")])

        request.host = "origin.internal"

        assert request.headers["host"] == "origin.internal"
        assert request.scope["server"] == ("origin.internal", 80)

    def test_setting_port_rewrites_host_header(self):
        request = make_request(headers=[("host", "example.com")])

        request.port = 8443

        assert request.headers["host"] == "example.com:8443"
        assert request.port == 8443

    def test_ssl_true_switches_to_443(self):
        request = make_request(headers=[("host", "example.com")])

        request.ssl = True

        assert request.scheme == "https"
        assert request.port == 443
        # Default port is left out of the Host header
        assert request.headers["host"] == "example.com"

    def test_ssl_true_keeps_explicit_port(self):
        request = make_request(headers=[("host", "example.com")])

        request.port = 8443
        request.ssl = True

        assert request.scheme == "https"
        assert request.port == 8443

    def test_ssl_true_keeps_explicit_port_80(self):
        request = make_request(headers=[("host", "example.com")])

        request.port = 80
        request.ssl = True

        assert request.scheme == "https"
        assert request.port == 80
        assert request.headers["host"] == "example.com:80"

    def test_ssl_false_forces_port_80(self):
        request = make_request(scheme="https", headers=[("host", "example.com:8443")])

        request.ssl = False

        assert request.scheme == "http"
        assert request.port == 80
        assert request.headers["host"] == "example.com"


class TestMutation:
    """Assignments are visible through the scope and Starlette's views."""

    def test_path_updates_scope_and_url(self):
        request = make_request(path="/old", headers=[("host", "example.com")])
        assert request.url.path == "/old"

        request.path = "/new"

        assert request.scope["path"] == "/new"
        assert request.scope["raw_path"] == b"/new"
        assert request.url.path == "/new"

    def test_query_string_updates_query_params(self):
        request = make_request(query_string="a=1")
        assert request.query_params["a"] == "1"

        request.query_string = "b=2"

        assert request.scope["query_string"] == b"b=2"
        assert "a" not in request.query_params
        assert request.query_params["b"] == "2"

    def test_method_is_upper_cased(self):
        request = make_request()

        request.method = "post"

        assert request.method == "POST"
        assert request.scope["method"] == "POST"

    def test_header_mutation_writes_through(self):
        request = make_request(headers=[("x-old", "1")])

        request.headers["X-New"] = "2"
        del request.headers["x-old"]

        assert (b"x-new", b"2") in request.scope["headers"]
        assert all(name != b"x-old" for name, _ in request.scope["headers"])

    def test_duplicate_headers_are_kept(self):
        request = make_request(headers=[("cookie", "a=1"), ("cookie", "b=2")])

        assert request.headers.getlist("cookie") == ["a=1", "b=2"]

    @pytest.mark.asyncio
    async def test_set_body_updates_content_length(self):
        request = make_request(method="POST")

        request.set_body(b"hello")

        assert await request.body() == b"hello"
        assert request.headers["content-length"] == "5"


class TestHeaderAccessors:
    def test_referer(self):
        request = make_request(headers=[("referer", "https://ref.example/")])
        assert request.referer == "https://ref.example/"

        request.referer = None

        assert request.referer is None
        assert "referer" not in request.headers

    def test_user_agent_and_content_type(self):
        request = make_request()

        request.user_agent = "tester/1.0"
        request.content_type = "application/json"
        request.accept_encoding = "gzip"

        assert request.headers["user-agent"] == "tester/1.0"
        assert request.headers["content-type"] == "application/json"
        assert request.accept_encoding == "gzip"

    def test_xhr(self):
        request = make_request()
        assert request.xhr is False

        request.xhr = True
        assert request.headers["x-requested-with"] == "XMLHttpRequest"
        assert request.xhr is True

        request.xhr = False
        assert "x-requested-with" not in request.headers

    @pytest.mark.parametrize(
        "content_type, expected",
        [
            ("application/x-www-form-urlencoded", True),
            ("multipart/form-data; boundary=xyz", True),
            ("application/json", False),
            (None, False),
        ],
    )
    def test_form_data(self, content_type, expected):
        headers = [("content-type", content_type)] if content_type else []
        assert make_request(headers=headers).form_data is expected


class TestClientAddress:
    def test_client_address(self):
        request = make_request(client=("192.168.1.100", 40000))

        assert request.client_ip == "192.168.1.100"
        assert request.client_port == 40000
        assert request.address == "192.168.1.100:40000"

    def test_ipv6_client_address(self):
        request = make_request(client=("::1", 40000))

        assert request.address == "[::1]:40000"

    def test_missing_client(self):
        request = make_request(client=None)

        assert request.client_ip is None
        assert request.address is None

    def test_ip_lookup_defaults_to_none(self):
        assert make_request().ip_lookup is None


class TestParsedUserAgent:
    def test_desktop_chrome(self):
        request = make_request(headers=[("user-agent", CHROME_WINDOWS)])

        assert request.browser == "Chrome"
        assert request.browser_version.startswith("120")
        assert request.device_type == "pc"
        assert request.os.startswith("Windows")

    def test_desktop_firefox_on_linux(self):
        request = make_request(headers=[("user-agent", FIREFOX_LINUX)])

        assert request.browser == "Firefox"
        assert request.os == "Linux"

    def test_missing_user_agent(self):
        request = make_request()

        assert request.browser is None
        assert request.os is None
        assert request.device_type is None
