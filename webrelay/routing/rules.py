"""
Routing rules and the handler variants they dispatch to.

A ``Rule`` pairs a method set, a path pattern and a list of condition
predicates with a handler object. Every handler exposes
``await handler.handle(request, captures)`` returning either something the App
can send (a Starlette response, or a ``Delegate`` to another ASGI app) or None
to decline so the next rule is tried.
"""

import os
import re
from dataclasses import dataclass, field
from typing import Any, Callable, FrozenSet, List, Optional, Tuple, Union

from starlette.responses import FileResponse, HTMLResponse, JSONResponse
from starlette.responses import Response as StarletteResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from webrelay.request import Request
from webrelay.reverse_proxy.proxy import ReverseProxy
from webrelay.routing.conditions import Condition
from webrelay.routing.static import resolve_path
from webrelay.utils.callables import maybe_await, positional_arity

Captures = Tuple[Optional[str], ...]

_SEGMENT = re.compile(r":([A-Za-z_][A-Za-z0-9_]*)|\*")


class Pass(Exception):
    """Raised by an inline handler to decline the request."""


def compile_path(pattern: Union[str, "re.Pattern"]) -> "re.Pattern":
    """
    Compile a route path.

    ``:name`` captures one path segment, ``*`` captures any remainder
    (non-greedy) and everything else is literal. A compiled regex is used
    as-is; its groups become the captures.
    """
    if isinstance(pattern, re.Pattern):
        return pattern

    parts = []
    position = 0
    for match in _SEGMENT.finditer(pattern):
        parts.append(re.escape(pattern[position : match.start()]))
        parts.append("(.*?)" if match.group(0) == "*" else "([^/?#]+)")
        position = match.end()
    parts.append(re.escape(pattern[position:]))
    return re.compile("".join(parts), re.DOTALL)


class PathPattern:
    def __init__(self, pattern: Union[str, "re.Pattern"]):
        self.source = pattern if isinstance(pattern, str) else pattern.pattern
        self.regex = compile_path(pattern)

    def match(self, path: str) -> Optional[Captures]:
        match = self.regex.fullmatch(path)
        if match is None:
            return None
        return match.groups()

    def __repr__(self) -> str:
        return f"PathPattern({self.source!r})"


@dataclass
class Rule:
    methods: Optional[FrozenSet[str]]
    path: PathPattern
    conditions: List[Condition] = field(default_factory=list)
    handler: Any = None

    def match(self, request: Request) -> Optional[Captures]:
        if self.methods is not None and request.method not in self.methods:
            return None
        captures = self.path.match(request.path)
        if captures is None:
            return None
        if not all(condition(request) for condition in self.conditions):
            return None
        return captures


def to_response(result: Any) -> StarletteResponse:
    """Convert an inline handler's return value into a response."""
    if isinstance(result, StarletteResponse):
        return result
    if result is None:
        return HTMLResponse("")
    if isinstance(result, bool):
        raise TypeError(f"Cannot convert {result!r} into a response")
    if isinstance(result, int):
        return HTMLResponse("", status_code=result)
    if isinstance(result, str):
        return HTMLResponse(result)
    if isinstance(result, (bytes, bytearray)):
        return StarletteResponse(bytes(result))
    if isinstance(result, (dict, list)):
        return JSONResponse(result)
    if isinstance(result, tuple) and len(result) in (2, 3):
        status, *rest = result
        body = rest[-1]
        response = to_response(body)
        response.status_code = int(status)
        if len(rest) == 2:
            for name, value in dict(rest[0]).items():
                response.headers[name] = value
        return response
    raise TypeError(f"Cannot convert {type(result).__name__} into a response")


class Delegate:
    """Hands an exchange to another ASGI app with a prepared scope."""

    def __init__(self, app: ASGIApp, scope: Scope):
        self.app = app
        self.scope = scope

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self.app(self.scope, receive, send)


class FunctionHandler:
    def __init__(self, fn: Callable[..., Any]):
        self.fn = fn
        self.arity = positional_arity(fn)

    async def handle(self, request: Request, captures: Captures):
        args = (request, *captures)
        if self.arity is not None:
            args = args[: self.arity]
        return to_response(await maybe_await(self.fn(*args)))

    def __repr__(self) -> str:
        return f"FunctionHandler({getattr(self.fn, '__name__', self.fn)!r})"


class FileHandler:
    def __init__(self, path: str):
        self.path = path

    async def handle(self, request: Request, captures: Captures):
        if not os.path.isfile(self.path):
            return None
        return FileResponse(self.path)


class DirectoryHandler:
    """Serves files below ``root``; the last capture is the sub-path."""

    def __init__(self, root: str):
        self.root = root

    async def handle(self, request: Request, captures: Captures):
        sub_path = captures[-1] if captures else ""
        path = resolve_path(self.root, sub_path or "")
        if path is None:
            return None
        return FileResponse(path)


class AppHandler:
    """
    Delegates to an ASGI app. With ``strip_prefix`` the first capture is the
    sub-path below the mount prefix and becomes the delegated ``path``.
    """

    def __init__(self, app: ASGIApp, strip_prefix: bool = False):
        self.app = app
        self.strip_prefix = strip_prefix

    async def handle(self, request: Request, captures: Captures):
        scope = request.scope
        if self.strip_prefix:
            sub_path = captures[0] if captures else None
            path = "/" + (sub_path or "")
            scope = dict(scope, path=path, raw_path=path.encode("utf-8"))
        return Delegate(self.app, scope)


class ProxyHandler:
    def __init__(self, proxy: ReverseProxy):
        self.proxy = proxy

    async def handle(self, request: Request, captures: Captures):
        return await self.proxy.handle(request)
