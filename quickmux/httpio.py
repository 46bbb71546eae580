"""Request, response and header primitives shared by the router and middleware."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Union
from urllib.parse import parse_qs, unquote, urlsplit

HeaderInit = Union["Headers", Mapping[str, Union[str, Iterable[str]]], None]


def _canonical(key: str) -> str:
    """Return the canonical form of a header name, e.g. ``content-type`` -> ``Content-Type``."""
    return "-".join(part[:1].upper() + part[1:].lower() for part in key.split("-"))


class Headers:
    """A case-insensitive, multi-valued collection of HTTP header fields."""

    def __init__(self, initial: HeaderInit = None) -> None:
        self._fields: dict[str, list[str]] = {}
        if initial is None:
            return
        source = initial.to_dict() if isinstance(initial, Headers) else initial
        for key, value in source.items():
            if isinstance(value, str):
                self.add(key, value)
            else:
                for item in value:
                    self.add(key, item)

    def get(self, key: str) -> str:
        """Return the first value for *key*, or an empty string."""
        values = self._fields.get(_canonical(key))
        return values[0] if values else ""

    def set(self, key: str, value: str) -> None:
        """Replace all values of *key* with *value*."""
        self._fields[_canonical(key)] = [value]

    def add(self, key: str, value: str) -> None:
        """Append *value* to the values of *key*."""
        self._fields.setdefault(_canonical(key), []).append(value)

    def delete(self, key: str) -> None:
        """Remove *key* and all its values."""
        self._fields.pop(_canonical(key), None)

    def values(self, key: str) -> list[str]:
        """Return every value of *key*, in the order they were added."""
        return list(self._fields.get(_canonical(key), []))

    def to_dict(self) -> dict[str, list[str]]:
        """Return a copy of the fields keyed by canonical name."""
        return {key: list(values) for key, values in self._fields.items()}

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and _canonical(key) in self._fields

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._fields))

    def __len__(self) -> int:
        return len(self._fields)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Headers):
            return self._fields == other._fields
        return NotImplemented

    def __repr__(self) -> str:
        return f"Headers({self._fields!r})"


class BodyTooLargeError(Exception):
    """Raised when a request body is read beyond its configured limit."""


@dataclass
class Request:
    """An incoming HTTP request with its body held in memory."""

    method: str = "GET"
    target: str = "/"
    headers: Headers = field(default_factory=Headers)
    body: bytes = b""
    content_length: int | None = None
    remote_addr: str = "192.0.2.1:1234"
    host: str = "example.com"
    body_limit: int | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.headers, Headers):
            self.headers = Headers(self.headers)
        if self.content_length is None:
            self.content_length = len(self.body)

    @property
    def path(self) -> str:
        """The decoded path of the request target."""
        return unquote(urlsplit(self.target).path)

    @property
    def raw_query(self) -> str:
        """The undecoded query string of the request target."""
        return urlsplit(self.target).query

    def query(self) -> dict[str, list[str]]:
        """Parse the query string into a mapping of name to values."""
        return parse_qs(self.raw_query, keep_blank_values=True)

    def add_cookie(self, name: str, value: str) -> None:
        """Append a cookie to the ``Cookie`` header."""
        pair = f"{name}={value}"
        existing = self.headers.get("Cookie")
        self.headers.set("Cookie", f"{existing}; {pair}" if existing else pair)

    def read_body(self) -> bytes:
        """Return the body, honouring any limit set by middleware."""
        if self.body_limit is not None and len(self.body) > self.body_limit:
            raise BodyTooLargeError("http: request body too large")
        return self.body


class ResponseWriter:
    """Collects the status, headers and body of a response."""

    def __init__(self) -> None:
        self.headers = Headers()
        self.status = 200
        self.wrote_header = False
        self._buffer = bytearray()

    @property
    def body(self) -> bytes:
        return bytes(self._buffer)

    @property
    def text(self) -> str:
        return self._buffer.decode("utf-8", errors="replace")

    def write_header(self, status: int) -> None:
        """Send the status line; later calls are ignored."""
        if self.wrote_header:
            return
        if not 100 <= status <= 999:
            raise ValueError(f"invalid WriteHeader code {status}")
        self.status = status
        self.wrote_header = True

    def write(self, data: bytes | bytearray | str) -> int:
        """Append *data* to the body, sending status 200 first if needed."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        if not self.wrote_header:
            self.write_header(200)
        self._buffer.extend(data)
        return len(data)


Handler = Callable[[Any, Request], None]
Middleware = Callable[[Handler], Handler]


def http_error(writer: Any, message: str, status: int) -> None:
    """Reply with a plain-text error message and the given status."""
    writer.headers.delete("Content-Length")
    writer.headers.set("Content-Type", "text/plain; charset=utf-8")
    writer.headers.set("X-Content-Type-Options", "nosniff")
    writer.write_header(status)
    writer.write(message + "\n")


def not_found(writer: Any, request: Request) -> None:
    """Reply with a 404 Not Found error."""
    http_error(writer, "404 page not found", 404)