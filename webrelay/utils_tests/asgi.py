from typing import Dict, List, Optional, Sequence, Tuple


def make_scope(
    method: str = "GET",
    path: str = "/",
    headers: Optional[Sequence[Tuple[str, str]]] = None,
    query_string: str = "",
    scheme: str = "http",
    server: Optional[Tuple[str, int]] = ("testserver", 80),
    client: Optional[Tuple[str, int]] = ("127.0.0.1", 50000),
) -> Dict:
    """Build an HTTP scope by hand, for paths a real client would normalize."""
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": scheme,
        "path": path,
        "raw_path": path.encode("utf-8"),
        "root_path": "",
        "query_string": query_string.encode("latin-1"),
        "headers": [
            (name.lower().encode("latin-1"), value.encode("latin-1"))
            for name, value in (headers or [])
        ],
        "server": server,
        "client": client,
    }


class ASGIResult:
    def __init__(self):
        self.status: Optional[int] = None
        self.raw_headers: List[Tuple[bytes, bytes]] = []
        self.body = b""

    @property
    def headers(self) -> Dict[str, str]:
        return {
            name.decode("latin-1"): value.decode("latin-1")
            for name, value in self.raw_headers
        }


async def call_asgi(app, scope: Dict, body: bytes = b"") -> ASGIResult:
    """Drive one HTTP exchange through an ASGI app and collect what it sends."""
    result = ASGIResult()
    messages = [{"type": "http.request", "body": body, "more_body": False}]

    async def receive():
        if messages:
            return messages.pop(0)
        return {"type": "http.disconnect"}

    async def send(message):
        if message["type"] == "http.response.start":
            result.status = message["status"]
            result.raw_headers = list(message.get("headers", []))
        elif message["type"] == "http.response.body":
            result.body += message.get("body", b"")

    await app(scope, receive, send)
    return result
