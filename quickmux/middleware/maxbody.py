"""Middleware that rejects request bodies above a size limit."""

from __future__ import annotations

from quickmux.httpio import Handler, Middleware, Request

DEFAULT_MAX_BYTES = 1024 * 1024 * 5


def max_body(max_bytes: int = DEFAULT_MAX_BYTES) -> Middleware:
    """Return middleware limiting request bodies to *max_bytes*."""

    def middleware(next_handler: Handler) -> Handler:
        def handler(writer, request: Request) -> None:
            if request.content_length is not None and request.content_length > max_bytes:
                writer.write_header(413)
                writer.write(b"Request body too large")
                return
            request.body_limit = max_bytes
            next_handler(writer, request)

        return handler

    return middleware