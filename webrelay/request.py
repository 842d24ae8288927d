"""
The mutable request shared by routing conditions and the reverse proxy.

``Request`` is a Starlette request whose accessors can also be assigned.
Every assignment writes straight into the ASGI ``scope`` it wraps, so a
condition, an ``on_request`` callback, the proxy and any delegated app all
see the same live exchange.
"""

from typing import Optional, Tuple

from starlette.datastructures import MutableHeaders
from starlette.requests import Request as StarletteRequest, empty_receive, empty_send

from webrelay.user_agent import UserAgent, parse_user_agent

DEFAULT_PORTS = {"http": 80, "https": 443}

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")

IP_LOOKUP_SCOPE_KEY = "webrelay.ip_lookup"

# Starlette caches these views of the scope; they go stale on mutation
_CACHED_VIEWS = ("_url", "_base_url", "_query_params", "_cookies")


def split_authority(value: str) -> Tuple[str, Optional[int]]:
    """Split a Host header value into (host, port); IPv6 brackets are removed."""
    if value.startswith("["):
        end = value.find("]")
        if end == -1:
            return value[1:], None
        host, rest = value[1:end], value[end + 1 :]
        port = rest[1:] if rest.startswith(":") else ""
    elif value.count(":") == 1:
        host, port = value.split(":")
    else:
        host, port = value, ""
    return host, int(port) if port.isdigit() else None


def join_authority(host: str, port: Optional[int]) -> str:
    if ":" in host:
        host = f"[{host}]"
    return f"{host}:{port}" if port is not None else host


class Request(StarletteRequest):
    """An inbound HTTP exchange whose fields may be rewritten in place."""

    def __init__(self, scope, receive=empty_receive, send=empty_send):
        scope.setdefault("headers", [])
        super().__init__(scope, receive, send)
        self._port_overridden = False

    def _invalidate(self) -> None:
        for name in _CACHED_VIEWS:
            self.__dict__.pop(name, None)

    # Headers

    @property
    def headers(self) -> MutableHeaders:
        if "_headers" not in self.__dict__:
            self._headers = MutableHeaders(scope=self.scope)
        return self._headers

    def _set_header(self, name: str, value: Optional[str]) -> None:
        if value is None:
            if name in self.headers:
                del self.headers[name]
        else:
            self.headers[name] = value
        self._invalidate()

    # Request line

    @property
    def method(self) -> str:
        return self.scope["method"]

    @method.setter
    def method(self, value: str) -> None:
        self.scope["method"] = value.upper()

    @property
    def path(self) -> str:
        return self.scope.get("path", "/")

    @path.setter
    def path(self, value: str) -> None:
        self.scope["path"] = value
        self.scope["raw_path"] = value.encode("utf-8")
        self._invalidate()

    @property
    def query_string(self) -> str:
        return self.scope.get("query_string", b"").decode("latin-1")

    @query_string.setter
    def query_string(self, value: str) -> None:
        self.scope["query_string"] = (value or "").encode("latin-1")
        self._invalidate()

    # Target: scheme, host and port

    @property
    def scheme(self) -> str:
        return self.scope.get("scheme", "http")

    @scheme.setter
    def scheme(self, value: str) -> None:
        self.scope["scheme"] = value
        self._invalidate()

    @property
    def ssl(self) -> bool:
        return self.scheme == "https"

    @ssl.setter
    def ssl(self, value: bool) -> None:
        if value:
            port = self.port if self._port_overridden else 443
            self.scheme = "https"
            self._write_target(self.host, port)
        else:
            self.scheme = "http"
            self._write_target(self.host, 80)

    def _host_header(self) -> Tuple[Optional[str], Optional[int]]:
        value = self.headers.get("host")
        if not value:
            return None, None
        return split_authority(value)

    @property
    def host(self) -> str:
        host, _ = self._host_header()
        if host:
            return host
        server = self.scope.get("server")
        return server[0] if server else ""

    @host.setter
    def host(self, value: str) -> None:
        self._write_target(value, self.port)

    @property
    def port(self) -> int:
        host, port = self._host_header()
        if port is not None:
            return port
        if host is None:
            server = self.scope.get("server")
            if server and server[1] is not None:
                return int(server[1])
        return DEFAULT_PORTS.get(self.scheme, 80)

    @port.setter
    def port(self, value: int) -> None:
        self._port_overridden = True
        self._write_target(self.host, int(value))

    def _write_target(self, host: str, port: int) -> None:
        self.scope["server"] = (host, port)
        header_port = None if DEFAULT_PORTS.get(self.scheme) == port else port
        self._set_header("host", join_authority(host, header_port))

    @property
    def host_with_port(self) -> str:
        return join_authority(self.host, self.port)

    # Client

    @property
    def client_ip(self) -> Optional[str]:
        return self.client.host if self.client else None

    @property
    def client_port(self) -> Optional[int]:
        return self.client.port if self.client else None

    @property
    def address(self) -> Optional[str]:
        """``ip:port`` of the client, or just the IP when the port is unknown."""
        if self.client_ip is None:
            return None
        if self.client_port is None:
            return self.client_ip
        return join_authority(self.client_ip, self.client_port)

    @property
    def ip_lookup(self):
        return self.scope.get(IP_LOOKUP_SCOPE_KEY)

    # Common headers

    @property
    def referer(self) -> Optional[str]:
        return self.headers.get("referer")

    @referer.setter
    def referer(self, value: Optional[str]) -> None:
        self._set_header("referer", value)

    @property
    def user_agent(self) -> Optional[str]:
        return self.headers.get("user-agent")

    @user_agent.setter
    def user_agent(self, value: Optional[str]) -> None:
        self._set_header("user-agent", value)

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.get("content-type")

    @content_type.setter
    def content_type(self, value: Optional[str]) -> None:
        self._set_header("content-type", value)

    @property
    def accept_encoding(self) -> Optional[str]:
        return self.headers.get("accept-encoding")

    @accept_encoding.setter
    def accept_encoding(self, value: Optional[str]) -> None:
        self._set_header("accept-encoding", value)

    @property
    def xhr(self) -> bool:
        return self.headers.get("x-requested-with") == "XMLHttpRequest"

    @xhr.setter
    def xhr(self, value: bool) -> None:
        self._set_header("x-requested-with", "XMLHttpRequest" if value else None)

    @property
    def form_data(self) -> bool:
        content_type = (self.content_type or "").split(";")[0].strip().lower()
        return content_type in FORM_CONTENT_TYPES

    # Body

    def set_body(self, data: bytes) -> None:
        """Replace the request body; Content-Length follows the new body."""
        self._body = data
        self._set_header("content-length", str(len(data)))

    # Parsed User-Agent

    @property
    def parsed_user_agent(self) -> UserAgent:
        return parse_user_agent(self.user_agent)

    @property
    def browser(self) -> Optional[str]:
        return self.parsed_user_agent.browser

    @property
    def browser_vendor(self) -> Optional[str]:
        return self.parsed_user_agent.browser_vendor

    @property
    def browser_version(self) -> Optional[str]:
        return self.parsed_user_agent.browser_version

    @property
    def device_type(self) -> Optional[str]:
        return self.parsed_user_agent.device_type

    @property
    def os(self) -> Optional[str]:
        return self.parsed_user_agent.os

    @property
    def os_version(self) -> Optional[str]:
        return self.parsed_user_agent.os_version
