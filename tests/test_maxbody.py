import pytest

from quickmux.httpio import BodyTooLargeError, Request, ResponseWriter
from quickmux.middleware.maxbody import DEFAULT_MAX_BYTES, max_body


def _noop(writer, request):
    pass


@pytest.mark.parametrize("limit", [None, 100000000])
def test_success(limit):
    middleware = max_body() if limit is None else max_body(limit)
    writer = ResponseWriter()
    middleware(_noop)(writer, Request())
    assert writer.status == 200
    assert writer.body == b""


def test_oversized_content_length_rejected():
    calls = []
    handler = max_body(DEFAULT_MAX_BYTES)(lambda w, r: calls.append(r))
    writer = ResponseWriter()
    handler(writer, Request(content_length=DEFAULT_MAX_BYTES + 1))
    assert writer.status == 413
    assert writer.text == "Request body too large"
    assert calls == []


def test_default_limit_is_five_megabytes():
    writer = ResponseWriter()
    max_body()(_noop)(writer, Request(content_length=1024 * 1024 * 5 + 1))
    assert writer.status == 413


def test_limit_applied_to_body_reads():
    seen = {}

    def handler(writer, request):
        seen["limit"] = request.body_limit
        with pytest.raises(BodyTooLargeError):
            request.read_body()

    request = Request(method="POST", body=b"0123456789", content_length=3)
    max_body(5)(handler)(ResponseWriter(), request)
    assert seen["limit"] == 5


def test_body_at_limit_is_readable():
    bodies = []
    max_body(4)(lambda w, r: bodies.append(r.read_body()))(
        ResponseWriter(), Request(method="POST", body=b"abcd")
    )
    assert bodies == [b"abcd"]