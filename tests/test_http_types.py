import pytest

from cooper.http_types import (
    HeaderValue,
    Headers,
    HttpContentWriter,
    HttpHeader,
    HttpResponse,
    HttpStatus,
    MultipartFormData,
)


class _FakeConn:
    def __init__(self):
        self.calls = []

    def send_file(self, path, offset, length):
        self.calls.append((path, offset, length))


def test_from_code_pins_descriptions():
    assert str(HttpStatus.from_code(404)) == "404 Not Found"
    assert HttpStatus.from_code(404).description == "Not Found"
    assert HttpStatus.from_code(200).description == "OK"


def test_status_equality_by_code_only():
    assert HttpStatus(404, "Something else") == HttpStatus.CODE_404
    assert HttpStatus(404, "x") != HttpStatus.CODE_400
    assert hash(HttpStatus(500, "y")) == hash(HttpStatus.CODE_500)


def test_from_code_returns_constant():
    assert HttpStatus.from_code(405) is HttpStatus.CODE_405
    assert HttpStatus.from_code(511).description == "Network Authentication Required"


def test_from_code_unknown_raises():
    with pytest.raises(ValueError):
        HttpStatus.from_code(999)


def test_status_str():
    assert str(HttpStatus.from_code(403)) == "403 Forbidden"
    assert str(HttpStatus(418, "I'm a Teapot")) == "418 I'm a Teapot"


def test_header_names_and_values_in_headers():
    headers = Headers()
    headers[HttpHeader.SERVER] = HeaderValue.SERVER
    headers[HttpHeader.CONNECTION] = HttpHeader.Value.CONNECTION_KEEP_ALIVE
    headers[HttpHeader.CONTENT_LENGTH] = "3"
    assert list(headers) == ["Server", "Connection", "Content-Length"]
    assert headers["server"] == "cooper/1.0"
    assert headers["connection"] == "keep-alive"


def test_headers_case_insensitive_lookup():
    headers = Headers({"Content-Type": "text/html"})
    assert headers["content-type"] == "text/html"
    assert "CONTENT-TYPE" in headers
    assert headers.get("missing") is None


def test_headers_keep_first_spelling_on_update():
    headers = Headers()
    headers["Content-Length"] = "1"
    headers["content-length"] = "2"
    assert len(headers) == 1
    assert list(headers) == ["Content-Length"]
    assert headers["CONTENT-LENGTH"] == "2"


def test_headers_delete_and_missing():
    headers = Headers([("Host", "example.com"), ("Accept", "*/*")])
    del headers["host"]
    assert list(headers.items()) == [("Accept", "*/*")]
    with pytest.raises(KeyError):
        headers["Host"]
    with pytest.raises(KeyError):
        del headers["Host"]


def test_headers_iteration_order():
    headers = Headers()
    for name in ("B", "A", "C"):
        headers[name] = name.lower()
    assert list(headers) == ["B", "A", "C"]
    assert dict(headers) == {"B": "b", "A": "a", "C": "c"}


def test_content_writer_skips_empty():
    conn = _FakeConn()
    HttpContentWriter("/tmp/file.txt", "text/plain").write(conn)
    writer = HttpContentWriter("", "text/plain")
    writer.size = 10
    writer.write(conn)
    assert conn.calls == []


def test_content_writer_sends_file():
    conn = _FakeConn()
    writer = HttpContentWriter("/tmp/file.txt", "text/plain")
    writer.size = 42
    writer.write(conn)
    assert conn.calls == [("/tmp/file.txt", 0, 42)]
    assert writer.content_type == "text/plain"


def test_response_defaults():
    response = HttpResponse()
    assert response.version == "HTTP/1.1"
    assert response.status == HttpStatus.CODE_200
    assert len(response.headers) == 0
    assert response.body == ""
    assert response.content_writer is None


def test_responses_do_not_share_headers():
    first = HttpResponse()
    second = HttpResponse()
    first.headers["Server"] = "x"
    assert "Server" not in second.headers


def test_multipart_form_data_clear():
    form = MultipartFormData(name="test_file", filename="a.txt", content_type="text/plain")
    form.clear()
    assert form == MultipartFormData()