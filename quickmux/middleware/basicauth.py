"""HTTP Basic Authentication middleware."""

from __future__ import annotations

import base64
import binascii

from quickmux.httpio import Handler, Middleware, Request, http_error

_PREFIX = "Basic "


def basic_auth(username: str, password: str) -> Middleware:
    """Return middleware that admits only requests carrying these credentials."""
    expected_user = username.encode()
    expected_pass = password.encode()

    def middleware(next_handler: Handler) -> Handler:
        def handler(writer, request: Request) -> None:
            auth_header = request.headers.get("Authorization")
            if not auth_header:
                writer.headers.set("WWW-Authenticate", 'Basic realm="Restricted"')
                http_error(writer, "Unauthorized", 401)
                return

            if not auth_header.startswith(_PREFIX):
                http_error(writer, "Unauthorized", 401)
                return

            try:
                payload = base64.b64decode(auth_header[len(_PREFIX):], validate=True)
            except (binascii.Error, ValueError):
                http_error(writer, "Unauthorized", 401)
                return

            creds = payload.split(b":", 1)
            if len(creds) != 2 or creds[0] != expected_user or creds[1] != expected_pass:
                http_error(writer, "Unauthorized", 401)
                return

            next_handler(writer, request)

        return handler

    return middleware