"""Middleware that gzip-compresses responses for clients that accept it."""

from __future__ import annotations

import zlib
from typing import Any

from quickmux.httpio import Handler, Headers, Middleware, Request, http_error


class _GzipWriter:
    """Response writer that compresses body bytes before passing them on."""

    def __init__(self, inner: Any) -> None:
        self._inner = inner
        self._compressor = zlib.compressobj(wbits=31)

    @property
    def headers(self) -> Headers:
        return self._inner.headers

    @property
    def status(self) -> int:
        return self._inner.status

    @property
    def wrote_header(self) -> bool:
        return self._inner.wrote_header

    def write_header(self, status: int) -> None:
        self._inner.write_header(status)

    def write(self, data: bytes | bytearray | str) -> int:
        if isinstance(data, str):
            data = data.encode("utf-8")
        compressed = self._compressor.compress(bytes(data))
        if compressed:
            self._inner.write(compressed)
        return len(data)

    def close(self) -> None:
        self._inner.write(self._compressor.flush())


def _client_supports_gzip(request: Request) -> bool:
    return "gzip" in request.headers.get("Accept-Encoding").lower()


def gzip_middleware() -> Middleware:
    """Return middleware that gzips the response when the client accepts gzip."""

    def middleware(next_handler: Handler) -> Handler:
        def handler(writer, request: Request) -> None:
            if not _client_supports_gzip(request):
                next_handler(writer, request)
                return

            writer.headers.delete("Content-Length")
            writer.headers.set("Content-Encoding", "gzip")
            writer.headers.add("Vary", "Accept-Encoding")

            gz = _GzipWriter(writer)
            try:
                next_handler(gz, request)
            finally:
                try:
                    gz.close()
                except (OSError, zlib.error) as exc:
                    http_error(writer, f"error closing gzip: {exc}", 500)

        return handler

    return middleware