import logging
from typing import Any, Callable, Optional

import httpx
from opentelemetry import trace
from starlette.types import Receive, Scope, Send

from webrelay.errors import UpstreamConnectionError, UpstreamTimeoutError
from webrelay.request import Request
from webrelay.response import Response
from webrelay.reverse_proxy.connection_pool import ConnectionPool, upstream_base_url
from webrelay.utils import loggable_header
from webrelay.utils.callables import maybe_await, positional_arity
from webrelay.utils.lifespan import serve_lifespan
from webrelay.utils.traced_requests import traced_request

tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

# The request body is re-sent from a buffer, httpx frames it again
REQUEST_IGNORED_HEADERS = HOP_BY_HOP_HEADERS | {"content-length"}

# The response body is handed back fully buffered, never chunked
RESPONSE_IGNORED_HEADERS = {"transfer-encoding"}

Callback = Callable[..., Any]


def _wants_request(callback: Callback) -> bool:
    """True when an on_response callback takes (request, response)."""
    arity = positional_arity(callback)
    return arity is None or arity >= 2


def _request_target(request: Request) -> str:
    raw_path = request.scope.get("raw_path")
    path = raw_path.decode("latin-1") if raw_path else request.path
    query = request.query_string
    return f"{path}?{query}" if query else path


class ReverseProxy:
    """
    Forwards each request to the host, port and scheme the request itself
    names, so by default it behaves as a transparent intercepting proxy.

    ``on_request`` callbacks may rewrite the Request before it is forwarded;
    ``on_response`` callbacks may rewrite the Response before it is returned.
    Upstream failures are raised as ``UpstreamConnectionError`` or
    ``UpstreamTimeoutError`` and are never turned into responses here.
    """

    def __init__(
        self,
        on_request: Optional[Callback] = None,
        on_response: Optional[Callback] = None,
        pool: Optional[ConnectionPool] = None,
    ):
        self.pool = pool if pool is not None else ConnectionPool()
        self._on_request = on_request
        self._on_response = on_response

    def on_request(self, callback: Callback) -> Callback:
        self._on_request = callback
        return callback

    def on_response(self, callback: Callback) -> Callback:
        self._on_response = callback
        return callback

    def connection_for(self, host: str, port: int, ssl: bool = False) -> httpx.AsyncClient:
        return self.pool.connection_for(host, port, ssl)

    async def aclose(self) -> None:
        await self.pool.aclose()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "lifespan":
            await serve_lifespan(receive, send, self.aclose)
            return
        if scope["type"] != "http":
            await send({"type": "websocket.close", "code": 1000})
            return

        request = Request(scope, receive, send)
        response = await self.handle(request)
        await response(scope, receive, send)

    async def handle(self, request: Request) -> Response:
        if self._on_request is not None:
            await maybe_await(self._on_request(request))

        response = await self.reverse_proxy(request)

        if self._on_response is not None:
            if _wants_request(self._on_response):
                await maybe_await(self._on_response(request, response))
            else:
                await maybe_await(self._on_response(response))

        return response

    async def reverse_proxy(self, request: Request) -> Response:
        host, port, ssl = request.host, request.port, request.ssl
        base_url = upstream_base_url(host, port, ssl)
        target = _request_target(request)

        headers = [
            (name, value)
            for name, value in request.headers.raw
            if name.decode("latin-1").lower() not in REQUEST_IGNORED_HEADERS
        ]

        with traced_request(
            tracer,
            operation="proxy_request",
            start_message=f"[Proxy] Proxying {request.method} {base_url}{target} for {request.address}",
            client=request.address,
            extra_attrs={
                "proxy.target_url": f"{base_url}{target}",
                "proxy.method": request.method,
            },
        ) as span:
            for name, value in headers:
                logger.debug(
                    f"[Proxy]   {loggable_header(name.decode('latin-1'), value.decode('latin-1'))}"
                )

            body = await request.body()
            client = self.connection_for(host, port, ssl)

            try:
                upstream_request = client.build_request(
                    request.method, target, headers=headers, content=body
                )
                upstream = await client.send(upstream_request, stream=True)
                try:
                    if upstream.is_stream_consumed:
                        # Read eagerly when built in memory; the stream still holds the raw bytes.
                        chunks = [chunk async for chunk in upstream.stream]
                    else:
                        chunks = [chunk async for chunk in upstream.aiter_raw()]
                finally:
                    await upstream.aclose()
            except httpx.TimeoutException as e:
                logger.error(f"[Proxy] Timeout talking to {base_url}: {e}")
                span.set_attribute("proxy.error", "timeout")
                raise UpstreamTimeoutError(
                    f"Timed out talking to {base_url}", host, port, ssl
                ) from e
            except httpx.TransportError as e:
                logger.error(f"[Proxy] Failed to reach {base_url}: {e}")
                span.set_attribute("proxy.error", "connection_failed")
                raise UpstreamConnectionError(
                    f"Cannot reach {base_url}: {e}", host, port, ssl
                ) from e

            span.set_attribute("proxy.status_code", upstream.status_code)

            response_headers = [
                (name, value)
                for name, value in upstream.headers.multi_items()
                if name.lower() not in RESPONSE_IGNORED_HEADERS
            ]

        logger.debug(
            f"[Proxy] Returning {upstream.status_code} from {base_url} for {request.address}"
        )
        for name, value in response_headers:
            logger.debug(f"[Proxy]   {loggable_header(name, value)}")

        return Response(
            chunks, upstream.status_code, response_headers, request_method=request.method
        )
