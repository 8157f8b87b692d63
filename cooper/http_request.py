"""HTTP/1.x request parsing, including streamed multipart/form-data bodies."""

from __future__ import annotations

import enum
import re
from collections.abc import Mapping
from typing import Any, Callable, Optional

from .http_types import (
    FLAG_CONTENT,
    FLAG_FILENAME,
    HTTP_METHODS,
    Headers,
    HttpHeader,
    MultipartFormData,
    MultipartWriteCallback,
)

ReadMore = Callable[[bytearray], bool]
"""Appends newly received bytes to the buffer; returns False once no more can arrive."""

_CRLF = b"\r\n"
_DASH = b"--"
_SUPPORTED_VERSIONS = frozenset({"HTTP/1.1", "HTTP/1.0"})
_BOUNDARY_KEYWORD = "boundary="
_CONTENT_TYPE_PREFIX = "content-type:"
_CONTENT_DISPOSITION = re.compile(r"Content-Disposition:\s*form-data;\s*(.*)", re.IGNORECASE)
_DISPOSITION_PARAM = re.compile(r'\s*([^=;\s]+)\s*=\s*("(?:[^"\\]|\\.)*"|[^;]*)')


def _trim_double_quotes(text: str) -> str:
    if len(text) >= 2 and text[0] == '"' and text[-1] == '"':
        return text[1:-1]
    return text


def _take_line(buffer: bytearray) -> Optional[bytes]:
    """Remove and return the next CRLF-terminated line, without the CRLF."""
    end = buffer.find(_CRLF)
    if end < 0:
        return None
    line = bytes(buffer[:end])
    del buffer[: end + len(_CRLF)]
    return line


def _parse_disposition_params(text: str) -> dict[str, str]:
    params: dict[str, str] = {}
    for match in _DISPOSITION_PARAM.finditer(text):
        key = match.group(1)
        value = _trim_double_quotes(match.group(2).strip())
        params.setdefault(key, value)
    return params


def parse_multipart_boundary(content_type: str) -> Optional[str]:
    """Return the boundary of a multipart Content-Type value, or None if absent or empty."""
    pos = content_type.find(_BOUNDARY_KEYWORD)
    if pos < 0:
        return None
    start = pos + len(_BOUNDARY_KEYWORD)
    end = content_type.find(";", pos)
    raw = content_type[start:] if end < 0 else content_type[start:end]
    boundary = _trim_double_quotes(raw)
    return boundary or None


class _State(enum.Enum):
    START = enum.auto()
    NEW_PART = enum.auto()
    HEADERS = enum.auto()
    CONTENT = enum.auto()
    AFTER_PART = enum.auto()
    DONE = enum.auto()


class MultipartFormDataParser:
    """Streams the parts of a multipart/form-data body to per-field callbacks.

    For each part whose field name has a callback, the callback is called once
    with ``FLAG_FILENAME`` when the part headers are read, then one or more
    times with ``FLAG_CONTENT`` and successive slices of the part's content.
    """

    def __init__(self, boundary: str) -> None:
        self.boundary = boundary
        encoded = boundary.encode("latin-1")
        self._dash_boundary_crlf = _DASH + encoded + _CRLF
        self._crlf_dash_boundary = _CRLF + _DASH + encoded
        self._state = _State.START
        self.file = MultipartFormData()

    def _read(self, buffer: bytearray, read_more: Optional[ReadMore]) -> None:
        if read_more is None or not read_more(buffer):
            raise ValueError("multipart body ended before its closing boundary")

    def _need(self, buffer: bytearray, size: int, read_more: Optional[ReadMore]) -> None:
        while len(buffer) < size:
            self._read(buffer, read_more)

    def _parse_part_header(self, header: str) -> None:
        if header[: len(_CONTENT_TYPE_PREFIX)].lower() == _CONTENT_TYPE_PREFIX:
            self.file.content_type = header[len(_CONTENT_TYPE_PREFIX):].strip()
            return
        match = _CONTENT_DISPOSITION.fullmatch(header)
        if match is None:
            raise ValueError(f"unexpected multipart header: {header!r}")
        params = _parse_disposition_params(match.group(1))
        if "name" not in params:
            raise ValueError("multipart part has no field name")
        self.file.name = params["name"]
        if "filename" in params:
            self.file.filename = params["filename"]

    def parse(
        self,
        buffer: bytearray,
        write_callbacks: Mapping[str, MultipartWriteCallback],
        read_more: Optional[ReadMore] = None,
    ) -> None:
        """Consume the body from ``buffer``, reading more with ``read_more`` as needed.

        Raises ValueError if the body is malformed or ends too early.
        """
        while self._state is not _State.DONE:
            if self._state is _State.START:
                self._need(buffer, len(self._dash_boundary_crlf), read_more)
                pos = buffer.find(self._dash_boundary_crlf)
                if pos < 0:
                    raise ValueError("multipart body does not start with its boundary")
                del buffer[: pos + len(self._dash_boundary_crlf)]
                self._state = _State.NEW_PART
            elif self._state is _State.NEW_PART:
                self.file.clear()
                self._state = _State.HEADERS
            elif self._state is _State.HEADERS:
                line = _take_line(buffer)
                if line is None:
                    self._read(buffer, read_more)
                    continue
                if line:
                    self._parse_part_header(line.decode("latin-1"))
                    continue
                self._state = _State.CONTENT
                callback = write_callbacks.get(self.file.name)
                if callback is not None:
                    callback(self.file, None, FLAG_FILENAME)
            elif self._state is _State.CONTENT:
                self._parse_content(buffer, write_callbacks, read_more)
            elif self._state is _State.AFTER_PART:
                self._need(buffer, len(_CRLF), read_more)
                if buffer.startswith(_CRLF):
                    del buffer[: len(_CRLF)]
                    self._state = _State.NEW_PART
                elif buffer.startswith(_DASH):
                    buffer.clear()
                    self._state = _State.DONE
                else:
                    raise ValueError("malformed data after multipart boundary")

    def _parse_content(
        self,
        buffer: bytearray,
        write_callbacks: Mapping[str, MultipartWriteCallback],
        read_more: Optional[ReadMore],
    ) -> None:
        delimiter = self._crlf_dash_boundary
        self._need(buffer, len(delimiter), read_more)
        callback = write_callbacks.get(self.file.name)
        pos = buffer.find(delimiter)
        if pos >= 0:
            if callback is not None:
                callback(self.file, bytes(buffer[:pos]), FLAG_CONTENT)
            del buffer[: pos + len(delimiter)]
            self._state = _State.AFTER_PART
            return
        safe = len(buffer) - len(delimiter)
        if safe > 0:
            if callback is not None:
                callback(self.file, bytes(buffer[:safe]), FLAG_CONTENT)
            del buffer[:safe]
        self._read(buffer, read_more)


class HttpRequest:
    """A request read from a connection's input buffer.

    The parse methods consume bytes from ``buffer`` and raise ValueError on
    malformed or incomplete input.
    """

    def __init__(self, buffer: bytearray, read_more: Optional[ReadMore] = None) -> None:
        self.buffer = buffer
        self.read_more = read_more
        self.conn: Any = None
        self.method = ""
        self.path = ""
        self.version = ""
        self.headers = Headers()
        self.body = b""
        self._multipart: Optional[MultipartFormDataParser] = None

    def parse_request_line(self) -> None:
        line = _take_line(self.buffer)
        if line is None:
            raise ValueError("incomplete request line")
        parts = line.decode("latin-1").split(" ")
        if len(parts) != 3:
            raise ValueError(f"malformed request line: {line!r}")
        method, path, version = parts
        if method not in HTTP_METHODS:
            raise ValueError(f"unknown method: {method!r}")
        if version not in _SUPPORTED_VERSIONS:
            raise ValueError(f"unsupported HTTP version: {version!r}")
        self.method, self.path, self.version = method, path, version

    def parse_headers(self) -> None:
        while True:
            line = _take_line(self.buffer)
            if line is None:
                raise ValueError("incomplete header section")
            if not line:
                return
            text = line.decode("latin-1").rstrip(" \t")
            key, sep, value = text.partition(":")
            if not sep:
                raise ValueError(f"malformed header line: {line!r}")
            value = value.lstrip(" \t")
            if value:
                self.headers[key] = value

    def parse_body(self) -> None:
        """Read the body, or prepare multipart parsing for multipart requests."""
        if self.is_multipart_form_data():
            boundary = parse_multipart_boundary(self.headers[HttpHeader.CONTENT_TYPE])
            if boundary is None:
                raise ValueError("multipart request without a boundary")
            self._multipart = MultipartFormDataParser(boundary)
            return
        content_length = self.headers.get(HttpHeader.CONTENT_LENGTH, "")
        if not content_length:
            self.body = bytes(self.buffer)
            self.buffer.clear()
            return
        try:
            length = int(content_length)
        except ValueError:
            raise ValueError(f"invalid Content-Length: {content_length!r}") from None
        if length < 0 or length > len(self.buffer):
            raise ValueError("body is shorter than Content-Length")
        self.body = bytes(self.buffer[:length])
        del self.buffer[:length]

    def is_multipart_form_data(self) -> bool:
        return self.headers.get(HttpHeader.CONTENT_TYPE, "").startswith("multipart/form-data")

    def header(self, key: str) -> str:
        """Return the value of header ``key`` (case-insensitive), or ""."""
        return self.headers.get(key, "")

    def parse_multipart_form_data(
        self, write_callbacks: Mapping[str, MultipartWriteCallback]
    ) -> None:
        """Stream the multipart body to ``write_callbacks``, keyed by field name."""
        if self._multipart is None:
            raise ValueError("request body is not multipart/form-data")
        self._multipart.parse(self.buffer, write_callbacks, self.read_more)