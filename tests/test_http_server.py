import json

import pytest

from cooper.http_server import HttpServer
from cooper.http_types import FLAG_CONTENT


class FakeConn:
    def __init__(self):
        self.sent = []
        self.files = []
        self.closed = False

    def send(self, data):
        self.sent.append(bytes(data))

    def send_file(self, path, offset, size):
        self.files.append((path, offset, size))

    def force_close(self):
        self.closed = True


def split_response(data):
    head, _, body = data.partition(b"\r\n\r\n")
    lines = head.decode("latin-1").split("\r\n")
    headers = dict(line.split(": ", 1) for line in lines[1:])
    return lines[0], headers, body


def request(method, path, version="HTTP/1.1", headers=None, body=b""):
    lines = [f"{method} {path} {version}"]
    for key, value in (headers or {}).items():
        lines.append(f"{key}: {value}")
    return bytearray(("\r\n".join(lines) + "\r\n\r\n").encode("latin-1") + body)


HELLO_HTML = "<html>   <body>       <h1>Hello, world</h1>   </body></html>"


@pytest.fixture
def server():
    srv = HttpServer()

    def hello(req, resp):
        resp.body = HELLO_HTML

    def hello1(req, resp):
        resp.body = json.dumps({"code": 20000, "msg": "Hello World!"})

    def person_add(req, resp):
        data = json.loads(req.body)
        resp.body = json.dumps({"code": 200, "msg": "success", "name": data["name"]})

    def multipart(req, resp):
        content = bytearray()

        def collect(file, data, flag):
            if flag == FLAG_CONTENT:
                content.extend(data)

        try:
            req.parse_multipart_form_data({"test_name": collect})
        except ValueError:
            resp.body = json.dumps({"code": 500, "msg": "error"})
            return
        resp.body = json.dumps({"code": 200, "msg": "success", "content": content.decode()})

    srv.add_endpoint("GET", "/hello", hello)
    srv.add_endpoint("GET", "/hello1", hello1)
    srv.add_endpoint("POST", "/person/add", person_add)
    srv.add_endpoint("POST", "/testMultiPart", multipart)
    return srv


def test_get_hello_returns_html(server):
    conn = FakeConn()
    server.handle_message(conn, request("GET", "/hello"))
    status, headers, body = split_response(conn.sent[0])
    assert status == "HTTP/1.1 200 OK"
    assert headers["Server"] == "cooper/1.0"
    assert headers["Content-Length"] == str(len(HELLO_HTML))
    assert "Connection" not in headers
    assert body == HELLO_HTML.encode()
    assert conn.closed is False


def test_get_hello1_returns_json(server):
    conn = FakeConn()
    server.handle_message(conn, request("GET", "/hello1"))
    _, _, body = split_response(conn.sent[0])
    assert json.loads(body) == {"code": 20000, "msg": "Hello World!"}


def test_post_json_body(server):
    conn = FakeConn()
    payload = json.dumps({"name": "alice", "age": 20}).encode()
    buf = request("POST", "/person/add", headers={"Content-Length": len(payload)}, body=payload)
    server.handle_message(conn, buf)
    status, _, body = split_response(conn.sent[0])
    assert status == "HTTP/1.1 200 OK"
    assert json.loads(body) == {"code": 200, "msg": "success", "name": "alice"}
    assert buf == bytearray()


def test_multipart_content_collected(server):
    conn = FakeConn()
    body = (
        b"--XYZ\r\n"
        b'Content-Disposition: form-data; name="test_name"\r\n'
        b"\r\n"
        b"hello world\r\n"
        b"--XYZ--\r\n"
    )
    buf = request(
        "POST", "/testMultiPart",
        headers={"Content-Type": "multipart/form-data; boundary=XYZ"}, body=body,
    )
    server.handle_message(conn, buf)
    _, _, resp_body = split_response(conn.sent[0])
    assert json.loads(resp_body) == {"code": 200, "msg": "success", "content": "hello world"}


def test_multipart_failure_reports_error(server):
    conn = FakeConn()
    buf = request(
        "POST", "/testMultiPart",
        headers={"Content-Type": "multipart/form-data; boundary=XYZ"},
        body=b"--XYZ\r\nX-Bogus: 1\r\n\r\n",
    )
    server.handle_message(conn, buf)
    _, _, resp_body = split_response(conn.sent[0])
    assert json.loads(resp_body) == {"code": 500, "msg": "error"}


def test_unknown_path_is_404_and_closes(server):
    conn = FakeConn()
    server.handle_message(conn, request("GET", "/missing"))
    status, _, _ = split_response(conn.sent[0])
    assert status == "HTTP/1.1 404 Not Found"
    assert conn.closed is True


def test_unsupported_method_is_405(server):
    conn = FakeConn()
    server.handle_message(conn, request("PUT", "/hello"))
    status, _, _ = split_response(conn.sent[0])
    assert status == "HTTP/1.1 405 Method Not Allowed"
    assert conn.closed is True


def test_bad_request_line_is_400(server):
    conn = FakeConn()
    server.handle_message(conn, bytearray(b"BOGUS / HTTP/1.1\r\n\r\n"))
    status, headers, _ = split_response(conn.sent[0])
    assert status == "HTTP/1.1 400 Bad Request"
    assert headers["Connection"] == "timeout=60, max=0"
    assert conn.closed is True


def test_http10_without_keep_alive_closes(server):
    conn = FakeConn()
    server.handle_message(conn, request("GET", "/hello", version="HTTP/1.0"))
    _, headers, _ = split_response(conn.sent[0])
    assert headers["Connection"] == "timeout=60, max=0"
    assert conn.closed is True


def test_http11_connection_close_closes(server):
    conn = FakeConn()
    server.keep_alive_timeout = 30
    server.handle_message(conn, request("GET", "/hello", headers={"Connection": "close"}))
    _, headers, _ = split_response(conn.sent[0])
    assert headers["Connection"] == "timeout=30, max=0"
    assert conn.closed is True


def test_http10_keep_alive_stays_open(server):
    conn = FakeConn()
    server.handle_message(
        conn, request("GET", "/hello", version="HTTP/1.0", headers={"Connection": "keep-alive"})
    )
    assert conn.closed is False


def test_max_keep_alive_requests(server):
    server.max_keep_alive_requests = 2
    conn = FakeConn()
    server.handle_message(conn, request("GET", "/hello"))
    assert conn.closed is False
    server.handle_message(conn, request("GET", "/hello"))
    assert conn.closed is True
    assert len(conn.sent) == 2


def test_add_endpoint_errors(server):
    with pytest.raises(ValueError):
        server.add_endpoint("FETCH", "/x", lambda req, resp: None)
    with pytest.raises(ValueError):
        server.add_endpoint("GET", "", lambda req, resp: None)
    with pytest.raises(ValueError):
        server.add_endpoint("POST", "/hello", lambda req, resp: None)


def test_mount_point_serves_file(server, tmp_path):
    (tmp_path / "a.txt").write_text("file content")
    assert server.add_mount_point("/static/", str(tmp_path), {"X-Extra": "1"}) is True
    conn = FakeConn()
    server.handle_message(conn, request("GET", "/static/a.txt"))
    status, headers, body = split_response(conn.sent[0])
    assert status == "HTTP/1.1 200 OK"
    assert headers["Content-Type"] == "text/plain"
    assert headers["Content-Length"] == "12"
    assert headers["X-Extra"] == "1"
    assert body == b""
    assert conn.files == [(str(tmp_path) + "/a.txt", 0, 12)]


def test_mount_point_index_html(server, tmp_path):
    (tmp_path / "index.html").write_text("<p>hi</p>")
    server.add_mount_point("/static/", str(tmp_path))
    conn = FakeConn()
    server.handle_message(conn, request("GET", "/static/"))
    assert conn.files == [(str(tmp_path) + "/index.html", 0, 9)]


def test_mount_point_auth_rejects(server, tmp_path):
    (tmp_path / "a.txt").write_text("x")
    server.add_mount_point("/static/", str(tmp_path))
    seen = []
    server.file_auth_callback = lambda path: seen.append(path) or False
    conn = FakeConn()
    server.handle_message(conn, request("GET", "/static/a.txt"))
    status, _, _ = split_response(conn.sent[0])
    assert status == "HTTP/1.1 403 Forbidden"
    assert seen == [str(tmp_path) + "/a.txt"]
    assert conn.files == []


def test_mount_point_rejects_traversal(server, tmp_path):
    base = tmp_path / "pub"
    base.mkdir()
    (tmp_path / "secret.txt").write_text("x")
    server.add_mount_point("/static/", str(base))
    conn = FakeConn()
    server.handle_message(conn, request("GET", "/static/../secret.txt"))
    status, _, _ = split_response(conn.sent[0])
    assert status == "HTTP/1.1 404 Not Found"
    assert conn.files == []


def test_add_and_remove_mount_point(server, tmp_path):
    assert server.add_mount_point("/s/", str(tmp_path / "nope")) is False
    assert server.add_mount_point("relative", str(tmp_path)) is False
    assert server.add_mount_point("/s/", str(tmp_path)) is True
    assert server.remove_mount_point("/s/") is True
    assert server.remove_mount_point("/s/") is False


def test_connection_closed_resets_count(server):
    server.max_keep_alive_requests = 2
    conn = FakeConn()
    server.handle_message(conn, request("GET", "/hello"))
    server.connection_closed(conn)
    server.handle_message(conn, request("GET", "/hello"))
    assert conn.closed is False