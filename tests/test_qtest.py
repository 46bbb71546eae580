import pytest

from quickmux.httpio import not_found
from quickmux.qtest import QuickTestOptions, attach_query_params, qtest, quick_test


class FakeApp:
    def __init__(self):
        self.routes = {}
        self.seen = []

    def route(self, method, path, fn):
        self.routes[(method, path)] = fn

    def serve_http(self, writer, request):
        self.seen.append(request)
        fn = self.routes.get((request.method, request.path))
        if fn is None:
            not_found(writer, request)
            return
        fn(writer, request)


def _text(status, content, content_type="application/json"):
    def handler(writer, request):
        writer.headers.set("Content-Type", content_type)
        writer.write_header(status)
        writer.write(content)

    return handler


def test_get_options():
    app = FakeApp()
    app.route("GET", "/v1/user", _text(200, "Success"))
    result = qtest(
        app,
        QuickTestOptions(
            method="GET",
            uri="/v1/user",
            headers={"Accept": "application/json"},
            log_details=True,
        ),
    )
    result.assert_status(200)
    result.assert_body_contains("Success")
    assert result.status_code == 200
    assert result.body_str == "Success"
    assert app.seen[0].headers.get("Accept") == "application/json"


def test_post_options_with_query_body_and_cookies():
    app = FakeApp()
    app.route("POST", "/v1/user/api", _text(200, '{"message":"Success"}'))
    opts = QuickTestOptions(
        method="POST",
        uri="/v1/user/api",
        query_params={"param1": "value1", "param2": "value2"},
        body=b'{"key":"value"}',
        headers={"Content-Type": "application/json"},
        cookies=[("session", "token")],
        log_details=True,
    )
    result = qtest(app, opts)
    result.assert_status(200)
    result.assert_header("Content-Type", "application/json")
    result.assert_body_contains("Success")
    request = app.seen[0]
    assert request.target == "/v1/user/api?param1=value1&param2=value2"
    assert request.body == b'{"key":"value"}'
    assert request.content_length == len(opts.body)
    assert request.headers.get("Cookie") == "session=token"
    assert result.headers.get("Content-Type") == "application/json"


@pytest.mark.parametrize(
    "method, uri, body, message",
    [
        ("PUT", "/v1/user/update", b'{"name":"Jeff Quick","age":30}', "User updated successfully"),
        ("DELETE", "/v1/user/delete", b"", "User deleted successfully"),
        ("PATCH", "/v1/user/patch", b'{"nickname":"Johnny"}', "User patched successfully"),
    ],
)
def test_method_options(method, uri, body, message):
    app = FakeApp()
    app.route(method, uri, _text(200, '{"message":"%s"}' % message))
    result = qtest(app, QuickTestOptions(method=method, uri=uri, body=body, log_details=True))
    result.assert_status(200)
    result.assert_body_contains(f'"message":"{message}"')
    assert result.body_str == '{"message":"%s"}' % message
    assert app.seen[0].body == body


def test_options_method_sets_allow_header():
    app = FakeApp()

    def handler(writer, request):
        writer.headers.set("Allow", "GET, POST, PUT, DELETE, OPTIONS")
        writer.write_header(204)
        writer.write("")

    app.route("OPTIONS", "/v1/user/options", handler)
    result = qtest(app, QuickTestOptions(method="OPTIONS", uri="/v1/user/options"))
    result.assert_status(204)
    result.assert_header("Allow", "GET, POST, PUT, DELETE, OPTIONS")
    assert result.status_code == 204
    assert result.body == b""


def _ok_result():
    app = FakeApp()
    app.route("GET", "/", _text(200, "ok"))
    return qtest(app, QuickTestOptions(uri="/"))


def test_assert_status_mismatch_raises():
    result = _ok_result()
    excinfo = pytest.raises(AssertionError, result.assert_status, 404)
    assert str(excinfo.value) == "expected status 404 but got 200"


def test_assert_header_mismatch_raises():
    result = _ok_result()
    excinfo = pytest.raises(
        AssertionError, result.assert_header, "Content-Type", "text/xml"
    )
    assert "expected header 'Content-Type' to be 'text/xml'" in str(excinfo.value)
    assert "application/json" in str(excinfo.value)


def test_assert_body_contains_missing_raises():
    result = _ok_result()
    excinfo = pytest.raises(AssertionError, result.assert_body_contains, "absent")
    assert "expected body to contain 'absent'" in str(excinfo.value)
    assert "'ok'" in str(excinfo.value)


def test_assert_body_contains_escapes_html_in_json():
    app = FakeApp()
    app.route("GET", "/", _text(200, '{"a":"\\u003cb\\u003e"}'))
    result = qtest(app, QuickTestOptions(uri="/"))
    result.assert_body_contains({"a": "<b>"})
    excinfo = pytest.raises(
        AssertionError, result.assert_body_contains, '{"a":"<b>"}'
    )
    assert "expected body to contain" in str(excinfo.value)


def test_assert_body_contains_unserialisable_raises_type_error():
    result = _ok_result()
    excinfo = pytest.raises(TypeError, result.assert_body_contains, object())
    assert "failed to convert expected value to JSON" in str(excinfo.value)


def test_empty_method_defaults_to_get():
    app = FakeApp()
    app.route("GET", "/v1/user", _text(200, "Success"))
    result = qtest(app, QuickTestOptions(method="", uri="/v1/user"))
    assert result.body_str == "Success"
    assert app.seen[0].method == "GET"


def test_invalid_method_raises():
    with pytest.raises(ValueError, match="invalid method"):
        qtest(FakeApp(), QuickTestOptions(method="BAD METHOD", uri="/"))


def test_unknown_route_gives_not_found():
    result = qtest(FakeApp(), QuickTestOptions(uri="/missing"))
    assert result.status_code == 404
    assert result.body_str == "404 page not found\n"


def test_log_details_prints_response(capsys):
    app = FakeApp()
    app.route("GET", "/v1/user", _text(200, "Success"))
    qtest(app, QuickTestOptions(uri="/v1/user", log_details=True))
    out = capsys.readouterr().out
    assert "Request: GET /v1/user" in out
    assert "Status: 200" in out
    assert "Body: Success" in out


def test_quick_test_passes_body_and_headers():
    app = FakeApp()

    def echo(writer, request):
        writer.headers.set("Content-Type", request.headers.get("Content-Type"))
        writer.write(b'"data":' + request.body)

    app.route("PUT", "/put/group/test", echo)
    result = quick_test(
        app,
        "PUT",
        "/put/group/test",
        {"Content-Type": "application/json"},
        b'{"name":"jeff", "age":35}',
    )
    assert result.status_code == 200
    assert result.body_str == '"data":{"name":"jeff", "age":35}'
    assert result.headers.get("Content-Type") == "application/json"
    assert app.seen[0].content_length == 0


def test_quick_test_without_body_sends_empty():
    app = FakeApp()
    app.route("GET", "/user/42", _text(200, "42", "text/plain"))
    result = quick_test(app, "GET", "/user/42", None, None)
    assert result.body_str == "42"
    assert app.seen[0].body == b""


def test_quick_test_logs_request_to_stderr(capsys):
    app = FakeApp()
    app.route("POST", "/x", _text(201, "made"))
    result = quick_test(app, "POST", "/x", None, b"abc")
    err = capsys.readouterr().err
    assert "Method: POST | URI: /x | Body Length: 3" in err
    assert result.status_code == 201


def test_attach_query_params_without_params_returns_uri():
    assert attach_query_params("/a?b=1", {}) == "/a?b=1"
    assert attach_query_params("/a", None) == "/a"


def test_attach_query_params_merges_and_sorts():
    assert attach_query_params("/a?z=1&b=2", {"c": "3"}) == "/a?b=2&c=3&z=1"


def test_attach_query_params_overrides_existing_key():
    assert attach_query_params("/a?x=1", {"x": "2"}) == "/a?x=2"


def test_attach_query_params_escapes_values():
    assert attach_query_params("/s", {"q": "a b&c"}) == "/s?q=a+b%26c"