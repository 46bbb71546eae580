"""Middleware that tags requests and responses with a random message id."""

from __future__ import annotations

import secrets
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from quickmux.httpio import Handler, Middleware, Request

DEFAULT_START_CONFIG = 900000000
DEFAULT_END_CONFIG = 100000000
KEY_MSG_ID = "Msgid"


@dataclass
class MsgIdConfig:
    """Header name and id range (``start`` plus a value below ``end``)."""

    start: int = DEFAULT_START_CONFIG
    end: int = DEFAULT_END_CONFIG
    name: str = KEY_MSG_ID
    algo: Callable[[], str] | None = None


def algo_default(start: int, end: int) -> str:
    """Return ``start`` plus a random number in ``[0, end)``, as a string."""
    if end <= 0:
        raise ValueError("end must be positive")
    return str(start + secrets.randbelow(end))


def msgid(config: MsgIdConfig | None = None) -> Middleware:
    """Return middleware that sets a message id on requests lacking one.

    Requests that already carry the header are not passed on.
    """
    cfg = config if config is not None else MsgIdConfig()
    start = cfg.start or DEFAULT_START_CONFIG
    end = cfg.end or DEFAULT_END_CONFIG

    def middleware(next_handler: Handler) -> Handler:
        def handler(writer: Any, request: Request) -> None:
            if request.headers.get(cfg.name):
                return
            value = cfg.algo() if cfg.algo is not None else algo_default(start, end)
            request.headers.set(cfg.name, value)
            writer.headers.set(cfg.name, value)
            next_handler(writer, request)

        return handler

    return middleware