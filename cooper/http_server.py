"""HTTP/1.x request handling: routing, static mount points and keep-alive."""

from __future__ import annotations

import dataclasses
import logging
import mimetypes
import os
import threading
from collections.abc import Mapping
from typing import Any, Callable, Optional

from .http_request import HttpRequest
from .http_types import (
    HTTP_METHODS,
    KEEP_ALIVE_TIMEOUT,
    MAX_KEEP_ALIVE_REQUESTS,
    HeaderValue,
    Headers,
    HttpContentWriter,
    HttpHandler,
    HttpHeader,
    HttpResponse,
    HttpStatus,
)

_log = logging.getLogger(__name__)

FileAuthCallback = Callable[[str], bool]

_DEFAULT_CONTENT_TYPE = "application/octet-stream"


def _is_valid_path(path: str) -> bool:
    """Return False if the path climbs above its root with '..'."""
    level = 0
    for segment in path.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            level -= 1
            if level < 0:
                return False
        else:
            level += 1
    return True


def _content_type(path: str) -> str:
    guessed, _ = mimetypes.guess_type(path)
    return guessed or _DEFAULT_CONTENT_TYPE


@dataclasses.dataclass
class _MountPoint:
    mount_point: str
    base_dir: str
    headers: Headers


@dataclasses.dataclass
class _KeepAlive:
    count: int
    limit: int


class HttpServer:
    """Routes HTTP requests received on connections to registered handlers.

    A connection object must provide ``send(data)``, ``send_file(path, offset,
    size)`` and ``force_close()``; it may provide ``read_more(buffer)`` for
    streamed multipart bodies.
    """

    def __init__(self, port: int = 8888) -> None:
        self.port = port
        self.keep_alive_timeout = KEEP_ALIVE_TIMEOUT
        self.max_keep_alive_requests = MAX_KEEP_ALIVE_REQUESTS
        self.file_auth_callback: Optional[FileAuthCallback] = None
        self._get_routes: dict[str, HttpHandler] = {}
        self._post_routes: dict[str, HttpHandler] = {}
        self._mount_points: list[_MountPoint] = []
        self._keep_alive: dict[Any, _KeepAlive] = {}
        self._lock = threading.Lock()

    def add_endpoint(self, method: str, path: str, handler: HttpHandler) -> None:
        """Route requests for ``method`` and ``path`` to ``handler``.

        Only GET and POST requests are routed; endpoints for other known
        methods are ignored.
        """
        if method not in HTTP_METHODS:
            raise ValueError(f"invalid method: {method}")
        if not path:
            raise ValueError("path is empty")
        if path in self._get_routes or path in self._post_routes:
            raise ValueError(f"path {path} already exists")
        if method == "GET":
            self._get_routes[path] = handler
        elif method == "POST":
            self._post_routes[path] = handler
        else:
            _log.warning("endpoint for %s %s is never routed", method, path)

    def add_mount_point(
        self,
        mount_point: str,
        directory: str,
        headers: Optional[Mapping[str, str]] = None,
    ) -> bool:
        """Serve files below ``directory`` under ``mount_point``.

        Returns False if ``directory`` is not a directory or the mount point
        does not start with '/'.
        """
        if not os.path.isdir(directory):
            return False
        mount = mount_point or "/"
        if not mount.startswith("/"):
            return False
        self._mount_points.append(_MountPoint(mount, directory, Headers(headers or {})))
        return True

    def remove_mount_point(self, mount_point: str) -> bool:
        """Remove the first mount point registered as ``mount_point``."""
        for position, entry in enumerate(self._mount_points):
            if entry.mount_point == mount_point:
                del self._mount_points[position]
                return True
        return False

    def connection_closed(self, conn: Any) -> None:
        """Forget the keep-alive state of a connection that has gone away."""
        with self._lock:
            self._keep_alive.pop(conn, None)

    def handle_message(self, conn: Any, buffer: bytearray) -> None:
        """Parse one request from ``buffer``, answer it on ``conn``."""
        request = HttpRequest(buffer, getattr(conn, "read_more", None))
        request.conn = conn
        response = HttpResponse()
        try:
            request.parse_request_line()
            request.parse_headers()
            request.parse_body()
        except ValueError as exc:
            _log.debug("bad request: %s", exc)
            response.status = HttpStatus.CODE_400
            self._send_response(conn, response)
            conn.force_close()
            self.connection_closed(conn)
            return

        with self._lock:
            if conn not in self._keep_alive:
                connection = request.header(HttpHeader.CONNECTION)
                keep_alive = (
                    request.version == "HTTP/1.0"
                    and connection == HeaderValue.CONNECTION_KEEP_ALIVE
                ) or (
                    request.version == "HTTP/1.1"
                    and connection != HeaderValue.CONNECTION_CLOSE
                )
                limit = self.max_keep_alive_requests if keep_alive else 0
                self._keep_alive[conn] = _KeepAlive(0, limit)

        if not self._handle_file_request(request, response):
            self._handle_request(request, response)

        if response.status != HttpStatus.CODE_200:
            conn.force_close()
            self.connection_closed(conn)
            return

        with self._lock:
            state = self._keep_alive.setdefault(conn, _KeepAlive(0, 0))
            state.count += 1
            exhausted = state.count >= state.limit
            if exhausted:
                del self._keep_alive[conn]
        if exhausted:
            conn.force_close()

    def _handle_request(self, request: HttpRequest, response: HttpResponse) -> None:
        _log.debug("method: %s, path: %s", request.method, request.path)
        if request.method == "GET":
            routes = self._get_routes
        elif request.method == "POST":
            routes = self._post_routes
        else:
            response.status = HttpStatus.CODE_405
            self._send_response(request.conn, response)
            return
        handler = routes.get(request.path)
        if handler is None:
            response.status = HttpStatus.CODE_404
        else:
            handler(request, response)
        self._send_response(request.conn, response)

    def _handle_file_request(self, request: HttpRequest, response: HttpResponse) -> bool:
        if request.method != "GET":
            return False
        for entry in self._mount_points:
            if not request.path.startswith(entry.mount_point):
                continue
            sub_path = "/" + request.path[len(entry.mount_point):]
            if not _is_valid_path(sub_path):
                continue
            path = entry.base_dir + sub_path
            if path.endswith("/"):
                path += "index.html"
            if not os.path.isfile(path):
                continue
            if self.file_auth_callback is not None and not self.file_auth_callback(path):
                response.status = HttpStatus.CODE_403
                self._send_response(request.conn, response)
                return True
            for key, value in entry.headers.items():
                response.headers[key] = value
            response.content_writer = HttpContentWriter(path, _content_type(path))
            self._send_response(request.conn, response)
            return True
        return False

    def _send_response(self, conn: Any, response: HttpResponse) -> None:
        response.headers[HttpHeader.SERVER] = HeaderValue.SERVER
        with self._lock:
            state = self._keep_alive.get(conn)
        limit = state.limit if state is not None else 0
        if limit == 0:
            response.headers[HttpHeader.CONNECTION] = (
                f"timeout={self.keep_alive_timeout}, max={limit}"
            )
        body = response.body
        body_bytes = body.encode("utf-8") if isinstance(body, str) else bytes(body)
        if body_bytes:
            response.headers[HttpHeader.CONTENT_LENGTH] = str(len(body_bytes))
        writer = response.content_writer
        if writer is not None:
            writer.size = os.path.getsize(writer.file)
            response.headers[HttpHeader.CONTENT_TYPE] = writer.content_type
            if writer.size > 0:
                response.headers[HttpHeader.CONTENT_LENGTH] = str(writer.size)
        lines = [f"{response.version} {response.status.code} {response.status.description}"]
        lines.extend(f"{key}: {value}" for key, value in response.headers.items())
        head = ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")
        conn.send(head if writer is not None else head + body_bytes)
        if writer is not None:
            writer.write(conn)