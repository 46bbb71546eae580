"""Route registration, request dispatch and the per-request context."""

from __future__ import annotations

import json
import os
import re
import xml.etree.ElementTree as ET
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any

from quickmux.httpio import (
    BodyTooLargeError,
    Handler,
    Middleware,
    Request,
    http_error,
    not_found,
)
from quickmux.server import Server

CONTENT_TYPE_APP_JSON = "application/json"
CONTENT_TYPE_APP_XML = "application/xml"
CONTENT_TYPE_TEXT_XML = "text/xml"
CORS = "cors"

METHOD_GET = "GET"
METHOD_POST = "POST"
METHOD_PUT = "PUT"
METHOD_DELETE = "DELETE"
METHOD_PATCH = "PATCH"
METHOD_OPTIONS = "OPTIONS"

_ALLOW_METHODS = ", ".join(
    [METHOD_GET, METHOD_POST, METHOD_PUT, METHOD_DELETE, METHOD_PATCH, METHOD_OPTIONS]
)
_JSON_TYPES = {
    CONTENT_TYPE_APP_JSON,
    "application/json; charset=utf-8",
    "application/json;charset=utf-8",
}
_XML_TYPES = {CONTENT_TYPE_TEXT_XML, CONTENT_TYPE_APP_XML}
_CONTEXT_KEY = "quickmux.route"
_REGEX_SEGMENT = re.compile(r"\{[^/]+\}")
_CO_VARARGS = 0x04


@dataclass
class Config:
    """Server and router settings; timeouts are in seconds, zero meaning none."""

    body_limit: int = 2 * 1024 * 1024
    max_body_size: int = 2 * 1024 * 1024
    max_header_bytes: int = 1 * 1024 * 1024
    route_capacity: int = 1000
    more_requests: int = 290
    read_timeout: float = 0.0
    write_timeout: float = 0.0
    idle_timeout: float = 0.0
    read_header_timeout: float = 0.0


_DEFAULT_CONFIG = Config()


def get_default_config() -> Config:
    """Return a copy of the default configuration."""
    return replace(_DEFAULT_CONFIG)


@dataclass
class Route:
    """A registered route."""

    group: str = ""
    pattern: str = ""
    path: str = ""
    params: str = ""
    method: str = ""
    handler: Handler | None = field(default=None, repr=False, compare=False)


@dataclass
class _RouteMatch:
    path: str
    params_map: dict[str, str]
    method: str


@dataclass
class Ctx:
    """The request being served and the writer its response goes to."""

    response: Any = None
    request: Request | None = None
    params: dict[str, str] = field(default_factory=dict)
    query: dict[str, str] = field(default_factory=dict)
    headers: dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""
    more_requests: int = 0
    _status_code: int = field(default=0, init=False, repr=False)

    def set(self, key: str, value: str) -> None:
        """Set a response header, replacing any earlier value."""
        self.response.headers.set(key, value)

    def status(self, code: int) -> Ctx:
        """Choose the status sent with the next body."""
        self._status_code = code
        return self

    def send_string(self, text: str) -> None:
        """Send *text* as the response body."""
        self.response.write_header(self._status_code or 200)
        self.response.write(text)

    def bind(self) -> Any:
        """Decode the body by its Content-Type: JSON values or an XML element.

        Other content types yield None. Malformed bodies raise ValueError
        (JSON) or ``xml.etree.ElementTree.ParseError`` (XML).
        """
        content_type = self.request.headers.get("Content-Type").lower() if self.request else ""
        if content_type in _JSON_TYPES:
            return json.loads(self.body)
        if content_type in _XML_TYPES:
            return ET.fromstring(self.body)
        return None


UserHandler = Callable[[Ctx], Any]


def clear_regex(route: str) -> str:
    """Turn ``{name:regex}`` segments into ``_name:regex_``."""
    return _REGEX_SEGMENT.sub(lambda m: "_" + m.group(0).strip("{}") + "_", route)


def extract_params_pattern(pattern: str) -> tuple[str, str, str]:
    """Split *pattern* into its fixed path, its parameter part and the pattern itself.

    Patterns without a parameter give ``(pattern, "", "")``.
    """
    index = pattern.find(":")
    if index <= 0:
        return pattern, "", ""
    path = pattern[:index].removesuffix("/")
    if index == 1:
        path = "/"
    return path, pattern.removeprefix(path), pattern


def create_params_and_valid(req_uri: str, pattern_uri: str) -> dict[str, str] | None:
    """Match a request path against a pattern; return its parameters or None."""
    req_split = req_uri.removeprefix("/").split("/")
    pattern_split = pattern_uri.removeprefix("/").split("/")
    if len(req_split) != len(pattern_split):
        return None

    params: dict[str, str] = {}
    for seg, req_seg in zip(pattern_split, req_split):
        if seg.startswith(":"):
            name = seg[1:]
            if not name:
                return None
            params[name] = req_seg
        elif seg.startswith("{") and seg.endswith("}"):
            parts = seg[1:-1].split(":", 1)
            if len(parts) != 2 or not parts[0]:
                return None
            try:
                rgx = re.compile("^" + parts[1] + r"\Z")
            except re.error:
                return None
            if not rgx.search(req_seg):
                return None
            params[parts[0]] = req_seg
        elif seg != req_seg:
            return None
    return params


def _accepts(func: Callable[..., Any], count: int) -> bool:
    """Tell whether *func* can be called with *count* positional arguments."""
    target: Any = func
    code = getattr(target, "__code__", None)
    if code is None:
        call = getattr(type(target), "__call__", None)
        code = getattr(call, "__code__", None)
        if code is None:
            return count == 1
        target = call
        bound = 1
    else:
        bound = 1 if getattr(func, "__self__", None) is not None else 0

    positional = code.co_argcount - bound
    defaults = len(getattr(target, "__defaults__", None) or ())
    required = positional - defaults
    kw_defaults = getattr(target, "__kwdefaults__", None) or {}
    if code.co_kwonlyargcount > len(kw_defaults):
        return False
    if count < required:
        return False
    return count <= positional or bool(code.co_flags & _CO_VARARGS)


def _exec_handle_func(ctx: Ctx, handler: UserHandler) -> None:
    try:
        handler(ctx)
    except Exception as exc:  # handlers report failure by raising
        ctx.set("Content-Type", "text/plain; charset=utf-8")
        ctx.status(500).send_string(str(exc))


def _read_body(request: Request) -> bytes:
    try:
        return request.read_body()
    except BodyTooLargeError:
        return b""


def _too_large(app: Quick, writer: Any, request: Request) -> bool:
    if request.content_length is not None and request.content_length > app.config.max_body_size:
        http_error(writer, "Request body too large", 413)
        return True
    return False


def _handler_get(app: Quick, handler: UserHandler) -> Handler:
    def serve(writer: Any, request: Request) -> None:
        match = request.context.get(_CONTEXT_KEY)
        if match is None:
            not_found(writer, request)
            return
        query = {key: values[0] for key, values in request.query().items()}
        ctx = Ctx(
            response=writer,
            request=request,
            params=match.params_map,
            query=query,
            headers=request.headers.to_dict(),
            more_requests=app.config.more_requests,
        )
        _exec_handle_func(ctx, handler)

    return serve


def _handler_with_body(app: Quick, handler: UserHandler, with_params: bool) -> Handler:
    def serve(writer: Any, request: Request) -> None:
        if _too_large(app, writer, request):
            return
        match = request.context.get(_CONTEXT_KEY)
        if match is None:
            not_found(writer, request)
            return
        ctx = Ctx(
            response=writer,
            request=request,
            params=match.params_map if with_params else {},
            headers=request.headers.to_dict(),
            body=_read_body(request),
            more_requests=app.config.more_requests,
        )
        _exec_handle_func(ctx, handler)

    return serve


def _handler_delete(app: Quick, handler: UserHandler) -> Handler:
    def serve(writer: Any, request: Request) -> None:
        match = request.context.get(_CONTEXT_KEY)
        if match is None:
            not_found(writer, request)
            return
        ctx = Ctx(
            response=writer,
            request=request,
            params=match.params_map,
            headers=request.headers.to_dict(),
            more_requests=app.config.more_requests,
        )
        _exec_handle_func(ctx, handler)

    return serve


def _handler_options(handler: UserHandler | None) -> Handler:
    def serve(writer: Any, request: Request) -> None:
        writer.headers.set("Allow", _ALLOW_METHODS)
        writer.headers.set("Access-Control-Allow-Origin", "*")
        writer.headers.set("Access-Control-Allow-Methods", _ALLOW_METHODS)
        writer.headers.set("Access-Control-Allow-Headers", "Content-Type, Authorization")
        if handler is None:
            writer.write_header(204)
            return
        try:
            handler(Ctx(response=writer, request=request))
        except Exception as exc:  # handlers report failure by raising
            http_error(writer, str(exc), 500)

    return serve


def _extract_handler(
    app: Quick, method: str, path: str, params: str, handler: UserHandler | None
) -> Handler | None:
    if method == METHOD_GET:
        return _handler_get(app, handler)
    if method == METHOD_POST:
        return _handler_with_body(app, handler, with_params=False)
    if method in (METHOD_PUT, METHOD_PATCH):
        return _handler_with_body(app, handler, with_params=True)
    if method == METHOD_DELETE:
        return _handler_delete(app, handler)
    if method == METHOD_OPTIONS:
        return _handler_options(handler)
    return None


class Quick:
    """A router that dispatches requests to handlers registered by method and pattern."""

    def __init__(self, config: Config | None = None) -> None:
        cfg = replace(config) if config is not None else get_default_config()
        if cfg.route_capacity == 0:
            cfg.route_capacity = 1000
        self.config = cfg
        self.cors = False
        self.cors_set: Middleware | None = None
        self._routes: list[Route] = []
        self._middlewares: list[Callable[..., Any]] = []
        self._mux: dict[str, Any] = {}
        self._server: Server | None = None

    def use(self, mw: Callable[..., Any], *args: str) -> None:
        """Add middleware for routes registered from now on.

        *mw* is either ``mw(next_handler) -> handler`` or
        ``mw(writer, request, next_handler)``. Passing ``CORS`` as the
        extra argument also makes a wrapper-style *mw* wrap the whole server.
        """
        self._middlewares.append(mw)
        if not args or args[0] != CORS:
            return
        if _accepts(mw, 1):
            self.cors = True
            self.cors_set = mw

    def _wrap(self, handler: Handler) -> Handler:
        for mw in reversed(self._middlewares):
            if _accepts(mw, 1):
                handler = mw(handler)
            elif _accepts(mw, 3):
                handler = self._bind_three(mw, handler)
        return handler

    @staticmethod
    def _bind_three(mw: Callable[..., Any], inner: Handler) -> Handler:
        def serve(writer: Any, request: Request) -> None:
            mw(writer, request, inner)

        return serve

    def _register_route(self, method: str, pattern: str, handler: UserHandler) -> None:
        path, params, pattern_exist = extract_params_pattern(pattern)
        key = method.lower() + "#" + clear_regex(pattern)
        if key in self._mux:
            raise ValueError(f"pattern {key!r} conflicts with an existing registration")
        route = Route(
            pattern=pattern_exist,
            path=path,
            params=params,
            method=method,
            handler=self._wrap(_extract_handler(self, method, path, params, handler)),
        )
        self._routes.append(route)
        self._mux[key] = route.handler

    def get(self, pattern: str, handler: UserHandler) -> None:
        self._register_route(METHOD_GET, pattern, handler)

    def post(self, pattern: str, handler: UserHandler) -> None:
        self._register_route(METHOD_POST, pattern, handler)

    def put(self, pattern: str, handler: UserHandler) -> None:
        self._register_route(METHOD_PUT, pattern, handler)

    def delete(self, pattern: str, handler: UserHandler) -> None:
        self._register_route(METHOD_DELETE, pattern, handler)

    def patch(self, pattern: str, handler: UserHandler) -> None:
        self._register_route(METHOD_PATCH, pattern, handler)

    def options(self, pattern: str, handler: UserHandler | None) -> None:
        self._register_route(METHOD_OPTIONS, pattern, handler)

    def get_route(self) -> list[Route]:
        """Return the registered routes in registration order."""
        return list(self._routes)

    def static(self, route: str, directory: str | os.PathLike[str]) -> None:
        """Mount *directory* under *route*.

        Mounts are kept in the route table only; request dispatch goes
        through the registered routes.
        """
        if not isinstance(directory, (str, os.PathLike)):
            raise TypeError("static: invalid parameter, must be a directory path")
        key = route.removesuffix("/") + "/"
        if key in self._mux:
            raise ValueError(f"pattern {key!r} conflicts with an existing registration")
        self._mux[key] = os.fspath(directory)

    def serve_http(self, writer: Any, request: Request) -> None:
        """Dispatch *request* to the first matching route, or reply 404."""
        request_uri = request.path
        for route in self._routes:
            if route.method != request.method:
                continue
            params = create_params_and_valid(request_uri, route.pattern or route.path)
            if params is None:
                continue
            match = _RouteMatch(path=request_uri, params_map=params, method=route.method)
            routed = replace(request, context={**request.context, _CONTEXT_KEY: match})
            route.handler(writer, routed)
            return
        not_found(writer, request)

    def __call__(self, writer: Any, request: Request) -> None:
        self.serve_http(writer, request)

    def _http_handler(self, args: tuple[Handler, ...]) -> Handler:
        if args:
            return args[0]
        if self.cors and self.cors_set is not None:
            return self.cors_set(self.serve_http)
        return self.serve_http

    def _new_server(
        self,
        addr: str,
        args: tuple[Handler, ...],
        cert_file: str | None = None,
        key_file: str | None = None,
    ) -> Server:
        return Server(
            self._http_handler(args),
            addr,
            read_timeout=self.config.read_timeout,
            write_timeout=self.config.write_timeout,
            idle_timeout=self.config.idle_timeout,
            read_header_timeout=self.config.read_header_timeout,
            cert_file=cert_file,
            key_file=key_file,
        )

    def listen_with_shutdown(
        self, addr: str, *args: Handler
    ) -> tuple[Server, Callable[[], None]]:
        """Start serving in the background; return the server and its stop function.

        An optional handler replaces the router as the server's handler.
        """
        server = self._new_server(addr, args)
        server.start()
        return server, server.shutdown

    def listen(self, addr: str, *args: Handler) -> None:
        """Serve on *addr*, blocking until ``shutdown`` is called."""
        server, _ = self.listen_with_shutdown(addr, *args)
        self._server = server
        server.serve_forever()

    def listen_tls(self, addr: str, cert_file: str, key_file: str, *args: Handler) -> None:
        """Serve HTTPS on *addr*, blocking until ``shutdown`` is called."""
        server = self._new_server(addr, args, cert_file, key_file)
        server.start()
        self._server = server
        server.serve_forever()

    def shutdown(self) -> None:
        """Stop the server started by ``listen`` or ``listen_tls``, if any."""
        server, self._server = self._server, None
        if server is not None:
            server.shutdown()