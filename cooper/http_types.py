"""HTTP status codes, header names, header maps and response objects."""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Iterator, Mapping, MutableMapping
from typing import Any, Callable, Optional, Union

COOPER_VERSION = "1.0"
KEEP_ALIVE_TIMEOUT = 60
MAX_KEEP_ALIVE_REQUESTS = 100

HTTP_METHODS = frozenset(
    {"GET", "HEAD", "POST", "PUT", "DELETE", "CONNECT", "OPTIONS", "TRACE", "PATCH", "PRI"}
)

FLAG_FILENAME = 1
FLAG_CONTENT = 2


@dataclasses.dataclass(frozen=True)
class HttpStatus:
    """A status code with its reason phrase; statuses compare by code only."""

    code: int
    description: str = dataclasses.field(compare=False)

    @classmethod
    def from_code(cls, code: int) -> "HttpStatus":
        """Return the known status for ``code``."""
        try:
            return _STATUS_BY_CODE[code]
        except KeyError:
            raise ValueError(f"unknown HTTP status code: {code}") from None

    def __str__(self) -> str:
        return f"{self.code} {self.description}"


_STATUS_TABLE = (
    (100, "Continue"),
    (101, "Switching"),
    (102, "Processing"),
    (200, "OK"),
    (201, "Created"),
    (202, "Accepted"),
    (203, "Non-Authoritative Information"),
    (204, "No Content"),
    (205, "Reset Content"),
    (206, "Partial Content"),
    (207, "Multi-HttpStatus"),
    (226, "IM Used"),
    (300, "Multiple Choices"),
    (301, "Moved Permanently"),
    (302, "Moved Temporarily"),
    (303, "See Other"),
    (304, "Not Modified"),
    (305, "Use Proxy"),
    (306, "Reserved"),
    (307, "Temporary Redirect"),
    (400, "Bad Request"),
    (401, "Unauthorized"),
    (402, "Payment Required"),
    (403, "Forbidden"),
    (404, "Not Found"),
    (405, "Method Not Allowed"),
    (406, "Not Acceptable"),
    (407, "Proxy Authentication Required"),
    (408, "Request Timeout"),
    (409, "Conflict"),
    (410, "Gone"),
    (411, "Length Required"),
    (412, "Precondition Failed"),
    (413, "Request Entity Too Large"),
    (414, "Request-URI Too Large"),
    (415, "Unsupported Media Type"),
    (416, "Requested Range Not Satisfiable"),
    (417, "Expectation Failed"),
    (418, "I'm a Teapot"),
    (422, "Unprocessable Entity"),
    (423, "Locked"),
    (424, "Failed Dependency"),
    (425, "Unordered Collection"),
    (426, "Upgrade Required"),
    (428, "Precondition Required"),
    (429, "Too Many Requests"),
    (431, "Request HttpHeader Fields Too Large"),
    (434, "Requested host unavailable"),
    (444, "Close connection without sending headers"),
    (449, "Retry With"),
    (451, "Unavailable For Legal Reasons"),
    (500, "Internal Server Error"),
    (501, "Not Implemented"),
    (502, "Bad Gateway"),
    (503, "Service Unavailable"),
    (504, "Gateway Timeout"),
    (505, "HTTP Version Not Supported"),
    (506, "Variant Also Negotiates"),
    (507, "Insufficient Storage"),
    (508, "Loop Detected"),
    (509, "Bandwidth Limit Exceeded"),
    (510, "Not Extended"),
    (511, "Network Authentication Required"),
)

_STATUS_BY_CODE: dict[int, HttpStatus] = {}
for _code, _description in _STATUS_TABLE:
    _status = HttpStatus(_code, _description)
    _STATUS_BY_CODE[_code] = _status
    setattr(HttpStatus, f"CODE_{_code}", _status)


class HeaderValue:
    """Common header values."""

    CONNECTION_CLOSE = "close"
    CONNECTION_KEEP_ALIVE = "keep-alive"
    CONNECTION_UPGRADE = "Upgrade"
    SERVER = "cooper/" + COOPER_VERSION
    USER_AGENT = "cooper/" + COOPER_VERSION
    TRANSFER_ENCODING_CHUNKED = "chunked"
    CONTENT_TYPE_APPLICATION_JSON = "application/json"
    EXPECT_100_CONTINUE = "100-continue"


class HttpHeader:
    """Header names."""

    Value = HeaderValue

    ACCEPT = "Accept"
    AUTHORIZATION = "Authorization"
    WWW_AUTHENTICATE = "WWW-Authenticate"
    CONNECTION = "Connection"
    TRANSFER_ENCODING = "Transfer-Encoding"
    CONTENT_ENCODING = "Content-Encoding"
    CONTENT_LENGTH = "Content-Length"
    CONTENT_TYPE = "Content-Type"
    CONTENT_RANGE = "Content-Range"
    RANGE = "Range"
    HOST = "Host"
    USER_AGENT = "User-Agent"
    SERVER = "Server"
    UPGRADE = "Upgrade"
    CORS_ORIGIN = "Access-Control-Allow-Origin"
    CORS_METHODS = "Access-Control-Allow-Methods"
    CORS_HEADERS = "Access-Control-Allow-Headers"
    CORS_MAX_AGE = "Access-Control-Max-Age"
    ACCEPT_ENCODING = "Accept-Encoding"
    EXPECT = "Expect"


class Headers(MutableMapping[str, str]):
    """Header map with case-insensitive keys.

    A key keeps the spelling it was first stored with.
    """

    def __init__(
        self, data: Union[Mapping[str, str], Iterable[tuple[str, str]], None] = None
    ) -> None:
        self._items: dict[str, tuple[str, str]] = {}
        if data is not None:
            self.update(data)

    def __getitem__(self, key: str) -> str:
        return self._items[key.lower()][1]

    def __setitem__(self, key: str, value: str) -> None:
        folded = key.lower()
        existing = self._items.get(folded)
        name = existing[0] if existing is not None else key
        self._items[folded] = (name, value)

    def __delitem__(self, key: str) -> None:
        del self._items[key.lower()]

    def __iter__(self) -> Iterator[str]:
        return (name for name, _ in self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.lower() in self._items

    def __repr__(self) -> str:
        return f"Headers({dict(self.items())!r})"


@dataclasses.dataclass
class MultipartFormData:
    """Description of one part of a multipart/form-data body."""

    name: str = ""
    filename: str = ""
    content_type: str = ""

    def clear(self) -> None:
        self.name = ""
        self.filename = ""
        self.content_type = ""


MultipartWriteCallback = Callable[[MultipartFormData, Optional[bytes], int], None]


class HttpContentWriter:
    """Sends a file as the body of a response."""

    def __init__(self, file: str, content_type: str) -> None:
        self.file = file
        self.size = 0
        self.content_type = content_type

    def write(self, conn: Any) -> None:
        """Send ``size`` bytes of the file over ``conn``; nothing if empty."""
        if not self.file or self.size == 0:
            return
        conn.send_file(self.file, 0, self.size)


@dataclasses.dataclass
class HttpResponse:
    """A response under construction."""

    version: str = "HTTP/1.1"
    status: HttpStatus = dataclasses.field(default_factory=lambda: _STATUS_BY_CODE[200])
    headers: Headers = dataclasses.field(default_factory=Headers)
    body: str = ""
    content_writer: Optional[HttpContentWriter] = None


HttpHandler = Callable[[Any, HttpResponse], None]