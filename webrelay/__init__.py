from webrelay.errors import ProxyError, UpstreamConnectionError, UpstreamTimeoutError
from webrelay.request import Request
from webrelay.response import Response
from webrelay.reverse_proxy import ConnectionPool, ReverseProxy
from webrelay.routing import App, Pass

__all__ = [
    "App",
    "ConnectionPool",
    "Pass",
    "ProxyError",
    "Request",
    "Response",
    "ReverseProxy",
    "UpstreamConnectionError",
    "UpstreamTimeoutError",
]
