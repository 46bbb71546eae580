"""Middleware that logs each request with its status, duration and body size."""

from __future__ import annotations

import logging
import time
from typing import Any

from quickmux.httpio import BodyTooLargeError, Handler, Headers, Middleware, Request

_log = logging.getLogger(__name__)


class _LoggingWriter:
    """Response writer that remembers the status and the number of bytes written."""

    def __init__(self, inner: Any) -> None:
        self._inner = inner
        self.status = 0
        self.size = 0

    @property
    def headers(self) -> Headers:
        return self._inner.headers

    @property
    def wrote_header(self) -> bool:
        return self._inner.wrote_header

    def write_header(self, status: int) -> None:
        self.status = status
        self._inner.write_header(status)

    def write(self, data: bytes | bytearray | str) -> int:
        if self.status == 0:
            self.status = 200
        written = self._inner.write(data)
        self.size += written
        return written


def _split_host_port(address: str) -> tuple[str, str]:
    """Split ``host:port`` (or ``[host]:port``) into its two parts."""
    if address.startswith("["):
        end = address.find("]")
        if end < 0:
            raise ValueError(f"address {address}: missing ']' in address")
        rest = address[end + 1:]
        if not rest.startswith(":"):
            raise ValueError(f"address {address}: missing port in address")
        return address[1:end], rest[1:]
    colons = address.count(":")
    if colons == 0:
        raise ValueError(f"address {address}: missing port in address")
    if colons > 1:
        raise ValueError(f"address {address}: too many colons in address")
    host, port = address.split(":")
    return host, port


def _fail(writer: Any, error: Exception) -> None:
    writer.write_header(500)
    writer.write(f"error in logger: {error}")


def logger() -> Middleware:
    """Return middleware that logs one line per request."""

    def middleware(next_handler: Handler) -> Handler:
        def handler(writer: Any, request: Request) -> None:
            start = time.perf_counter()
            try:
                ip, port = _split_host_port(request.remote_addr)
            except ValueError as exc:
                _fail(writer, exc)
                return

            try:
                body_size = len(request.read_body())
            except BodyTooLargeError as exc:
                _fail(writer, exc)
                return

            recording = _LoggingWriter(writer)
            next_handler(recording, request)

            elapsed_ms = (time.perf_counter() - start) * 1000
            _log.info(
                "[%s]:%s %d - %s %s %.3fms %d",
                ip,
                port,
                recording.status,
                request.method,
                request.path,
                elapsed_ms,
                body_size,
            )

        return handler

    return middleware