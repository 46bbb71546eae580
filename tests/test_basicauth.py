import base64

import pytest

from quickmux.httpio import Request, ResponseWriter
from quickmux.middleware.basicauth import basic_auth

USERNAME = "admin"
PASSWORD = "password"


def _ok_handler(writer, request):
    writer.write_header(200)
    writer.write(b"OK")


def _header(user, secret):
    return "Basic " + base64.b64encode(f"{user}:{secret}".encode()).decode()


def _run(auth_header=None):
    handler = basic_auth(USERNAME, PASSWORD)(_ok_handler)
    request = Request()
    if auth_header is not None:
        request.headers.set("Authorization", auth_header)
    writer = ResponseWriter()
    handler(writer, request)
    return writer


def test_success():
    writer = _run(_header(USERNAME, PASSWORD))
    assert writer.status == 200
    assert writer.text == "OK"


def test_invalid_credentials():
    writer = _run(_header("wronguser", "secret"))
    assert writer.status == 401
    assert writer.text == "Unauthorized\n"


def test_no_credentials():
    writer = _run()
    assert writer.status == 401
    assert writer.headers.get("WWW-Authenticate") == 'Basic realm="Restricted"'


@pytest.mark.parametrize(
    "user, secret, expected",
    [
        (USERNAME, PASSWORD, 200),
        ("wronguser", "secret", 401),
        ("", "", 401),
        (USERNAME, "", 401),
        ("", PASSWORD, 401),
    ],
)
def test_seeded_credentials(user, secret, expected):
    assert _run(_header(user, secret)).status == expected


def test_other_scheme_rejected():
    writer = _run("Bearer token")
    assert writer.status == 401
    assert "WWW-Authenticate" not in writer.headers


def test_bad_base64_rejected():
    assert _run("Basic !!!not-base64").status == 401


def test_payload_without_colon_rejected():
    value = "Basic " + base64.b64encode(USERNAME.encode()).decode()
    assert _run(value).status == 401


def test_next_handler_not_called_on_failure():
    calls = []
    handler = basic_auth(USERNAME, PASSWORD)(lambda w, r: calls.append(r))
    handler(ResponseWriter(), Request())
    assert calls == []