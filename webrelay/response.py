from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from starlette.responses import Response as StarletteResponse
from starlette.types import Receive, Scope, Send

HeadersInput = Union[Mapping[str, str], Sequence[Tuple[str, str]], None]

# Statuses that never carry a body (RFC 9110)
BODYLESS_STATUSES = {204, 304}


def _encode_headers(headers: HeadersInput) -> List[Tuple[bytes, bytes]]:
    if headers is None:
        return []
    items = headers.items() if isinstance(headers, Mapping) else headers
    return [
        (name.lower().encode("latin-1"), value.encode("latin-1"))
        for name, value in items
        if name.lower() != "transfer-encoding"
    ]


class Response(StarletteResponse):
    """
    A fully buffered response whose status, headers and body chunks stay
    mutable until it is sent. Content-Length is computed from the chunks at
    send time and Transfer-Encoding is never emitted.
    """

    def __init__(
        self,
        body: Union[bytes, str, Iterable[bytes], None] = b"",
        status_code: int = 200,
        headers: HeadersInput = None,
        media_type: Optional[str] = None,
        request_method: Optional[str] = None,
    ):
        self.status_code = status_code
        self.media_type = media_type
        self.request_method = request_method
        self.background = None
        self.raw_headers = _encode_headers(headers)
        self.body = body
        if media_type is not None and "content-type" not in self.headers:
            self.headers["content-type"] = media_type

    @property
    def body(self) -> bytes:
        return b"".join(self.chunks)

    @body.setter
    def body(self, value: Union[bytes, str, Iterable[bytes], None]) -> None:
        if value is None:
            chunks = []
        elif isinstance(value, str):
            chunks = [value.encode(self.charset)]
        elif isinstance(value, (bytes, bytearray, memoryview)):
            chunks = [bytes(value)]
        else:
            chunks = [bytes(chunk) for chunk in value]
        self.chunks = [chunk for chunk in chunks if chunk]

    def _finalize_headers(self, request_method: Optional[str] = None) -> None:
        method = (request_method or self.request_method or "").upper()
        if "transfer-encoding" in self.headers:
            del self.headers["transfer-encoding"]
        if self.status_code < 200 or self.status_code in BODYLESS_STATUSES:
            if "content-length" in self.headers:
                del self.headers["content-length"]
        elif method == "HEAD" and not self.chunks and "content-length" in self.headers:
            # A HEAD answer reports the length of the body it leaves out
            pass
        else:
            self.headers["content-length"] = str(sum(len(c) for c in self.chunks))

    def to_tuple(self) -> Tuple[int, Dict[str, str], List[bytes]]:
        """(status, headers, body chunks) as handed back to the caller."""
        self._finalize_headers()
        return self.status_code, dict(self.headers.items()), list(self.chunks)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        self._finalize_headers(scope.get("method"))
        await send(
            {
                "type": "http.response.start",
                "status": self.status_code,
                "headers": self.raw_headers,
            }
        )
        await send({"type": "http.response.body", "body": self.body})
