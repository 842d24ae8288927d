"""
Conditional routing and dispatch.

An ``App`` holds an ordered table of rules built at setup time. For each
inbound request it checks host authorization and basic auth, then runs the
first rule whose method, path and conditions match and whose handler does not
decline. Unmatched requests go to the default handler (an empty 404 unless one
is registered).
"""

import base64
import logging
import re
import secrets
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Type, Union

from opentelemetry import trace
from starlette.responses import HTMLResponse, PlainTextResponse, RedirectResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from webrelay.lookup import IPLookup, default_lookup
from webrelay.request import IP_LOOKUP_SCOPE_KEY, Request
from webrelay.reverse_proxy.proxy import ReverseProxy
from webrelay.routing import conditions as conds
from webrelay.routing.matchers import coerce
from webrelay.routing.rules import (
    AppHandler,
    DirectoryHandler,
    FileHandler,
    FunctionHandler,
    Pass,
    PathPattern,
    ProxyHandler,
    Rule,
    to_response,
)
from webrelay.utils.callables import maybe_await
from webrelay.utils.exception_logging import (
    find_exception_in_exception_groups,
    log_exception_with_details,
)
from webrelay.utils.lifespan import serve_lifespan
from webrelay.utils.traced_requests import traced_request

tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

ALL_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS")

# Matches every path, including the empty one
ANY_PATH = re.compile(".*", re.DOTALL)

Methods = Union[str, Iterable[str], None]
ExceptionHandler = Callable[[Request, BaseException], Any]


def _normalize_methods(methods: Methods):
    if methods is None:
        return None
    if isinstance(methods, str):
        methods = [methods]
    normalized = {method.upper() for method in methods}
    if "GET" in normalized:
        normalized.add("HEAD")
    return frozenset(normalized)


def _mount_pattern(prefix: str) -> "re.Pattern":
    return re.compile(re.escape(prefix) + r"(?:/(.*))?", re.DOTALL)


class App:
    """
    An ASGI application dispatching requests through ordered routing rules.

    Rules are registered with ``route`` and its shortcuts (``get``, ``any``,
    ``file``, ``directory``, ``mount``, ``vhost``, ``proxy`` ...). Conditions
    are given as keyword arguments named after the predicates in
    ``webrelay.routing.conditions`` (``user_agent=re.compile("curl")``,
    ``client_ip="10.0.0.0/8"``) or as a ``conditions=[...]`` list of callables.
    """

    def __init__(
        self,
        permitted_hosts: Optional[List[Any]] = None,
        ip_lookup: Optional[IPLookup] = None,
    ):
        self.rules: List[Rule] = []
        self.default_handler: Optional[FunctionHandler] = None
        self.exception_handlers: Dict[Type[BaseException], ExceptionHandler] = {}
        self.credentials: Optional[Tuple[str, str, str]] = None
        self.proxies: List[ReverseProxy] = []
        self.permitted_hosts = list(permitted_hosts) if permitted_hosts is not None else None
        self.ip_lookup = ip_lookup if ip_lookup is not None else default_lookup()

    # Registration

    def add_rule(
        self,
        methods: Methods,
        path: Union[str, "re.Pattern", PathPattern],
        handler: Any,
        conditions: Optional[Iterable[conds.Condition]] = None,
        **named: Any,
    ) -> Rule:
        if not isinstance(path, PathPattern):
            path = PathPattern(path)
        rule = Rule(
            methods=_normalize_methods(methods),
            path=path,
            conditions=conds.build_conditions(conditions, **named),
            handler=handler,
        )
        self.rules.append(rule)
        return rule

    def route(self, methods: Methods, path, handler=None, conditions=None, **named):
        """Register an inline handler; without ``handler`` this is a decorator."""

        def register(fn):
            self.add_rule(methods, path, FunctionHandler(fn), conditions, **named)
            return fn

        if handler is None:
            return register
        return register(handler)

    def get(self, path, handler=None, conditions=None, **named):
        return self.route("GET", path, handler, conditions, **named)

    def post(self, path, handler=None, conditions=None, **named):
        return self.route("POST", path, handler, conditions, **named)

    def put(self, path, handler=None, conditions=None, **named):
        return self.route("PUT", path, handler, conditions, **named)

    def patch(self, path, handler=None, conditions=None, **named):
        return self.route("PATCH", path, handler, conditions, **named)

    def delete(self, path, handler=None, conditions=None, **named):
        return self.route("DELETE", path, handler, conditions, **named)

    def options(self, path, handler=None, conditions=None, **named):
        return self.route("OPTIONS", path, handler, conditions, **named)

    def any(self, path, handler=None, conditions=None, **named):
        return self.route(ALL_METHODS, path, handler, conditions, **named)

    def default(self, handler=None):
        def register(fn):
            self.default_handler = FunctionHandler(fn)
            return fn

        if handler is None:
            return register
        return register(handler)

    def basic_auth(self, user: str, password: str, realm: str = "Restricted") -> None:
        self.credentials = (user, password, realm)

    def redirect(self, path, url: str, conditions=None, **named) -> Rule:
        return self.add_rule(
            "GET",
            path,
            FunctionHandler(lambda: RedirectResponse(url, status_code=302)),
            conditions,
            **named,
        )

    def file(self, path, local_file: str, conditions=None, **named) -> Rule:
        return self.add_rule("GET", path, FileHandler(local_file), conditions, **named)

    def directory(self, path: str, local_dir: str, conditions=None, **named) -> Rule:
        path = path.rstrip("/")
        return self.add_rule(
            "GET", f"{path}/*", DirectoryHandler(local_dir), conditions, **named
        )

    def files(self, mapping, conditions=None, **named) -> List[Rule]:
        """Register ``file`` for each remote path -> local file pair."""
        return [
            self.file(path, local_file, conditions, **named)
            for path, local_file in dict(mapping).items()
        ]

    def directories(self, mapping, conditions=None, **named) -> List[Rule]:
        return [
            self.directory(path, local_dir, conditions, **named)
            for path, local_dir in dict(mapping).items()
        ]

    def public_dir(self, local_dir: str, conditions=None, **named) -> Rule:
        return self.directory("/", local_dir, conditions, **named)

    def vhost(self, host: Any, app: ASGIApp, conditions=None, **named) -> Rule:
        """Delegate every request whose Host matches ``host`` to ``app``."""
        targets = [self] + ([app] if isinstance(app, App) and app is not self else [])
        for target in targets:
            if target.permitted_hosts is not None:
                target.permitted_hosts.append(host)

        gates = [conds.host(host)] + list(conditions or [])
        return self.add_rule(None, ANY_PATH, AppHandler(app), gates, **named)

    def mount(self, prefix: str, app: ASGIApp, conditions=None, **named) -> Rule:
        """Delegate ``prefix`` and everything below it to ``app``, prefix stripped."""
        prefix = prefix.rstrip("/")
        return self.add_rule(
            None,
            _mount_pattern(prefix),
            AppHandler(app, strip_prefix=True),
            conditions,
            **named,
        )

    def proxy(
        self,
        path="*",
        proxy: Optional[ReverseProxy] = None,
        conditions=None,
        **named,
    ) -> ReverseProxy:
        proxy = proxy if proxy is not None else ReverseProxy()
        if proxy not in self.proxies:
            self.proxies.append(proxy)
        self.add_rule(None, path, ProxyHandler(proxy), conditions, **named)
        return proxy

    def exception_handler(self, exc_class: Type[BaseException], handler=None):
        def register(fn):
            self.exception_handlers[exc_class] = fn
            return fn

        if handler is None:
            return register
        return register(handler)

    # Authorization

    def host_permitted(self, host: str) -> bool:
        if self.permitted_hosts is None:
            return True

        host = (host or "").lower()
        for entry in self.permitted_hosts:
            if isinstance(entry, str):
                entry = entry.lower()
                if entry.startswith("."):
                    if host == entry[1:] or host.endswith(entry):
                        return True
                elif host == entry:
                    return True
            elif coerce(entry)(host):
                return True
        return False

    def _authorized(self, request: Request) -> bool:
        user, password, _ = self.credentials
        scheme, _, token = (request.headers.get("authorization") or "").partition(" ")
        if scheme.lower() != "basic":
            return False
        try:
            decoded = base64.b64decode(token.strip(), validate=True).decode("utf-8")
        except ValueError:
            return False

        given_user, separator, given_password = decoded.partition(":")
        if not separator:
            return False
        user_ok = secrets.compare_digest(given_user.encode(), user.encode())
        password_ok = secrets.compare_digest(given_password.encode(), password.encode())
        return user_ok and password_ok

    # Dispatch

    async def handle(self, request: Request):
        """Return the response (or delegate) that answers ``request``."""
        if self.ip_lookup is not None or IP_LOOKUP_SCOPE_KEY not in request.scope:
            request.scope[IP_LOOKUP_SCOPE_KEY] = self.ip_lookup

        if not self.host_permitted(request.host):
            logger.warning(f"[Dispatch] Blocked request for host {request.host!r}")
            return PlainTextResponse("Host not permitted", status_code=403)

        if self.credentials is not None and not self._authorized(request):
            realm = self.credentials[2]
            return PlainTextResponse(
                "",
                status_code=401,
                headers={"WWW-Authenticate": f'Basic realm="{realm}"'},
            )

        for rule in self.rules:
            captures = rule.match(request)
            if captures is None:
                continue
            try:
                result = await rule.handler.handle(request, captures)
            except Pass:
                continue
            if result is None:
                continue
            logger.debug(f"[Dispatch] {request.method} {request.path} -> {rule.handler!r}")
            return result

        if self.default_handler is not None:
            try:
                return await self.default_handler.handle(request, ())
            except Pass:
                pass

        logger.debug(f"[Dispatch] No rule for {request.method} {request.path}")
        return HTMLResponse("", status_code=404)

    def _exception_handler_for(
        self, exc: BaseException
    ) -> Tuple[Optional[BaseException], Optional[ExceptionHandler]]:
        if not self.exception_handlers:
            return None, None
        found = find_exception_in_exception_groups(exc, tuple(self.exception_handlers))
        if found is None:
            return None, None
        for cls in type(found).__mro__:
            if cls in self.exception_handlers:
                return found, self.exception_handlers[cls]
        return None, None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "lifespan":
            await serve_lifespan(receive, send, self.aclose)
            return
        if scope["type"] != "http":
            await send({"type": "websocket.close", "code": 1000})
            return

        request = Request(scope, receive, send)
        started = False

        async def tracking_send(message):
            nonlocal started
            if message["type"] == "http.response.start":
                started = True
            await send(message)

        with traced_request(
            tracer,
            operation="dispatch_request",
            start_message=f"[Dispatch] {request.method} {request.path} from {request.address}",
            client=request.address,
            extra_attrs={"http.method": request.method, "http.target": request.path},
        ):
            try:
                response = await self.handle(request)
                await response(scope, receive, tracking_send)
            except Exception as exc:
                found, handler = self._exception_handler_for(exc)
                if handler is None or started:
                    log_exception_with_details(logger, "[Dispatch]", exc)
                    raise
                logger.info(
                    f"[Dispatch] {type(found).__name__} handled by {getattr(handler, '__name__', handler)}"
                )
                response = to_response(await maybe_await(handler(request, found)))
                await response(scope, receive, send)

    async def aclose(self) -> None:
        for proxy in self.proxies:
            await proxy.aclose()
