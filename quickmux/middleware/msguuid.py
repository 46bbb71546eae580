"""Middleware that tags requests and responses with a UUID."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from quickmux.httpio import Handler, Middleware, Request

UUID_VERSION_1 = 1
UUID_VERSION_2 = 2
UUID_VERSION_3 = 3
UUID_VERSION_4 = 4

KEY_MSG_UUID = "MsgUUID"

_log = logging.getLogger(__name__)
_NIL = str(uuid.UUID(int=0))


@dataclass
class MsgUuidConfig:
    """UUID version, header name and an optional fixed UUID string."""

    version: int = UUID_VERSION_4
    name: str = KEY_MSG_UUID
    key_string: str = ""


def _parse(text: str) -> str:
    try:
        return str(uuid.UUID(text))
    except ValueError as exc:
        _log.warning("error to generate UUID: %s", exc)
        return _NIL


def generate_uuid(config: MsgUuidConfig) -> str:
    """Return the configured fixed UUID, or a new one of the configured version.

    An unparsable fixed UUID is logged and yields the nil UUID.
    """
    if config.key_string:
        return _parse(config.key_string)
    if config.version == UUID_VERSION_1:
        return str(uuid.uuid1())
    if config.version == UUID_VERSION_3:
        return str(uuid.uuid3(uuid.uuid4(), config.key_string))
    return str(uuid.uuid4())


def msguuid(config: MsgUuidConfig | None = None) -> Middleware:
    """Return middleware that sets a UUID header on requests lacking one.

    Requests that already carry the header are not passed on.
    """
    cfg = config if config is not None else MsgUuidConfig()

    def middleware(next_handler: Handler) -> Handler:
        def handler(writer: Any, request: Request) -> None:
            if request.headers.get(cfg.name):
                return
            value = generate_uuid(cfg)
            request.headers.set(cfg.name, value)
            writer.headers.set(cfg.name, value)
            next_handler(writer, request)

        return handler

    return middleware