from typing import Optional


class ProxyError(Exception):
    """Raised when a request could not be forwarded to its upstream."""

    def __init__(
        self,
        message: str,
        host: Optional[str] = None,
        port: Optional[int] = None,
        ssl: bool = False,
    ):
        super().__init__(message)
        self.host = host
        self.port = port
        self.ssl = ssl

    @property
    def upstream(self) -> str:
        scheme = "https" if self.ssl else "http"
        return f"{scheme}://{self.host}:{self.port}"


class UpstreamConnectionError(ProxyError):
    """DNS, TCP connect, TLS handshake or protocol failure talking to the upstream."""


class UpstreamTimeoutError(ProxyError):
    """The upstream did not connect or answer within the configured timeout."""
