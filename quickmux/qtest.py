"""Helpers that exercise a router in-process, without opening a socket."""

from __future__ import annotations

import base64
import json
import re
import sys
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit

from quickmux.httpio import Headers, Request, ResponseWriter

LOG_DELIMITER = "====================="

_TOKEN_RE = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")
_HTML_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


class App(Protocol):
    """Anything that can serve a request into a response writer."""

    def serve_http(self, writer: ResponseWriter, request: Request) -> None: ...


@dataclass
class QuickTestOptions:
    """Everything needed to describe one simulated request."""

    method: str = "GET"
    uri: str = "/"
    headers: Mapping[str, str] = field(default_factory=dict)
    query_params: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""
    cookies: Iterable[tuple[str, str]] = field(default_factory=list)
    log_details: bool = False


@dataclass
class QtestResult:
    """The recorded outcome of a simulated request."""

    body: bytes
    status_code: int
    headers: Headers

    @property
    def body_str(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def assert_status(self, expected: int) -> None:
        """Raise AssertionError unless the status equals *expected*."""
        if self.status_code != expected:
            raise AssertionError(f"expected status {expected} but got {self.status_code}")

    def assert_header(self, key: str, expected_value: str) -> None:
        """Raise AssertionError unless header *key* has *expected_value*."""
        value = self.headers.get(key)
        if value != expected_value:
            raise AssertionError(
                f"expected header '{key}' to be '{expected_value}' but got '{value}'"
            )

    def assert_body_contains(self, expected: Any) -> None:
        """Raise AssertionError unless the body contains *expected*.

        Values that are not strings are compared by their compact JSON form.
        """
        expected_str = expected if isinstance(expected, str) else _to_json(expected)
        body = self.body_str
        if expected_str not in body:
            raise AssertionError(f"expected body to contain '{expected_str}' but got '{body}'")


def _json_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _to_json(value: Any) -> str:
    try:
        text = json.dumps(
            value,
            ensure_ascii=False,
            allow_nan=False,
            separators=(",", ":"),
            default=_json_default,
        )
    except (TypeError, ValueError) as exc:
        raise TypeError(f"failed to convert expected value to JSON: {exc}") from exc
    for char, escaped in _HTML_ESCAPES.items():
        text = text.replace(char, escaped)
    return text


def _build_request(
    method: str,
    uri: str,
    headers: Mapping[str, str] | None,
    body: bytes,
    content_length: int,
) -> Request:
    method = method or "GET"
    if not _TOKEN_RE.match(method):
        raise ValueError(f"invalid method {method!r}")
    request_headers = Headers()
    for key, value in (headers or {}).items():
        request_headers.set(key, value)
    return Request(
        method=method,
        target=uri,
        headers=request_headers,
        body=body,
        content_length=content_length,
    )


def _run(app: App, request: Request) -> QtestResult:
    writer = ResponseWriter()
    app.serve_http(writer, request)
    return QtestResult(
        body=writer.body,
        status_code=writer.status,
        headers=Headers(writer.headers),
    )


def quick_test(
    app: App,
    method: str,
    uri: str,
    headers: Mapping[str, str] | None = None,
    *args: bytes | str | None,
) -> QtestResult:
    """Send one request through *app*; the optional first extra argument is the body."""
    body = args[0] if args and args[0] is not None else b""
    if isinstance(body, str):
        body = body.encode("utf-8")
    body = bytes(body)

    print(LOG_DELIMITER, file=sys.stderr)
    print(f"Method: {method} | URI: {uri} | Body Length: {len(body)}", file=sys.stderr)
    print(LOG_DELIMITER, file=sys.stderr)

    # The body is handed over without a declared length.
    request = _build_request(method, uri, headers, body, content_length=0)
    return _run(app, request)


def qtest(app: App, opts: QuickTestOptions) -> QtestResult:
    """Send the request described by *opts* through *app*."""
    uri = attach_query_params(opts.uri, opts.query_params)
    body = bytes(opts.body or b"")
    request = _build_request(opts.method, uri, opts.headers, body, content_length=len(body))
    for name, value in opts.cookies:
        request.add_cookie(name, value)

    result = _run(app, request)
    if opts.log_details:
        _log_details(opts, result)
    return result


def attach_query_params(uri: str, params: Mapping[str, str] | None) -> str:
    """Return *uri* with *params* merged into its query, keys sorted."""
    if not params:
        return uri
    parts = urlsplit(uri)
    query = parse_qs(parts.query, keep_blank_values=True)
    for key, value in params.items():
        query[key] = [value]
    encoded = urlencode(sorted(query.items()), doseq=True)
    return urlunsplit(parts._replace(query=encoded))


def _log_details(opts: QuickTestOptions, result: QtestResult) -> None:
    body = bytes(opts.body or b"").decode("utf-8", errors="replace")
    print("========================================")
    print(f"Request: {opts.method} {opts.uri}")
    print(f"Request Body: {body}")
    print("--- Response ---")
    print(f"Status: {result.status_code}")
    print(f"Headers: {result.headers.to_dict()}")
    print(f"Body: {result.body_str}")
    print("========================================")