import logging
import threading
from typing import Dict, Tuple

import httpx

from webrelay.vars import PROXY_ALLOW_UNSAFE_CERT, PROXY_CONNECT_TIMEOUT, PROXY_TIMEOUT

logger = logging.getLogger("uvicorn.error")

PoolKey = Tuple[str, int, bool]


def upstream_base_url(host: str, port: int, ssl: bool) -> str:
    scheme = "https" if ssl else "http"
    if ":" in host:
        host = f"[{host}]"
    return f"{scheme}://{host}:{port}"


class ConnectionPool:
    """
    One persistent upstream client per (host, port, ssl).

    Clients are created lazily and kept for the lifetime of the pool; there is
    no expiry, health check or size limit. Extra keyword arguments are passed
    to every ``httpx.AsyncClient`` the pool creates.
    """

    def __init__(self, **client_kwargs):
        self.client_kwargs = client_kwargs
        self._clients: Dict[PoolKey, httpx.AsyncClient] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, key: PoolKey) -> bool:
        return key in self._clients

    def _create_client(self, host: str, port: int, ssl: bool) -> httpx.AsyncClient:
        kwargs = {
            "timeout": httpx.Timeout(PROXY_TIMEOUT, connect=PROXY_CONNECT_TIMEOUT),
            "follow_redirects": False,
            "verify": not PROXY_ALLOW_UNSAFE_CERT,
        }
        kwargs.update(self.client_kwargs)
        return httpx.AsyncClient(base_url=upstream_base_url(host, port, ssl), **kwargs)

    def connection_for(self, host: str, port: int, ssl: bool = False) -> httpx.AsyncClient:
        key = (host, int(port), bool(ssl))
        with self._lock:
            client = self._clients.get(key)
            if client is None:
                logger.debug(f"[Pool] New upstream client for {upstream_base_url(*key)}")
                client = self._create_client(*key)
                self._clients[key] = client
            return client

    async def aclose(self) -> None:
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            await client.aclose()
