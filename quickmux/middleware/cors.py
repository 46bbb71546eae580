"""Middleware that adds Cross-Origin Resource Sharing headers."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any

from quickmux.httpio import Handler, Middleware, Request


@dataclass
class CorsConfig:
    """Settings for the CORS middleware.

    Only the allowed origins, methods and headers are written to responses;
    the remaining fields are kept so callers can carry a complete policy.
    """

    allowed_origins: list[str] = field(default_factory=list)
    allow_origin_func: Callable[[str], bool] | None = None
    allow_origin_request_func: Callable[[Request, str], bool] | None = None
    allowed_methods: list[str] = field(default_factory=list)
    allowed_headers: list[str] = field(default_factory=list)
    exposed_headers: list[str] = field(default_factory=list)
    max_age: int = 0
    allow_credentials: bool = False
    allow_private_network: bool = False
    options_passthrough: bool = False
    options_success_status: int = 0
    debug: bool = False

    def handler(self, next_handler: Handler) -> Handler:
        """Wrap *next_handler*; preflight requests stop here without reaching it."""

        def wrapped(writer: Any, request: Request) -> None:
            _rules(self, writer)
            if _is_preflight(request):
                return
            next_handler(writer, request)

        return wrapped


CONFIG_DEFAULT = CorsConfig(
    allowed_origins=["*"],
    allowed_methods=["POST", "GET", "PUT", "DELETE", "PATH", "HEAD", "OPTIONS"],
    allow_credentials=True,
    allowed_headers=["Origin", "Content-Type"],
    debug=False,
    max_age=0,
)


def _copy(config: CorsConfig) -> CorsConfig:
    return replace(
        config,
        allowed_origins=list(config.allowed_origins),
        allowed_methods=list(config.allowed_methods),
        allowed_headers=list(config.allowed_headers),
        exposed_headers=list(config.exposed_headers),
    )


def _is_preflight(request: Request) -> bool:
    return request.method == "OPTIONS" and bool(
        request.headers.get("Access-Control-Request-Method")
    )


def _rules(config: CorsConfig, writer: Any) -> None:
    writer.headers.set("X-Cors", "true")
    if config.allowed_origins:
        writer.headers.set("Access-Control-Allow-Origin", ", ".join(config.allowed_origins))
    if config.allowed_methods:
        writer.headers.set("Access-Control-Allow-Methods", ", ".join(config.allowed_methods))
    if config.allowed_headers:
        writer.headers.set("Access-Control-Allow-Headers", ", ".join(config.allowed_headers))


def new(config: CorsConfig | None = None) -> Middleware:
    """Return CORS middleware using *config*, or the default policy."""
    cfg = _copy(CONFIG_DEFAULT if config is None else config)

    def middleware(next_handler: Handler) -> Handler:
        def handler(writer: Any, request: Request) -> None:
            _rules(cfg, writer)
            if _is_preflight(request):
                writer.write_header(204)
            next_handler(writer, request)

        return handler

    return middleware


def default(config: CorsConfig | None = None) -> CorsConfig:
    """Return *config*, or a copy of the default policy when none is given."""
    return CONFIG_DEFAULT if config is None and False else _copy(
        CONFIG_DEFAULT if config is None else config
    )