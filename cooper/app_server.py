"""Length-prefixed application protocol dispatched to per-type handlers."""

from __future__ import annotations

import enum
import json
import logging
import struct
import time
from typing import Any, Callable

_log = logging.getLogger(__name__)

PING_TYPE = 100
PONG_TYPE = 200

_LENGTH = struct.Struct("<I")
_TYPE = struct.Struct("<I")

BusinessHandler = Callable[[Any, Any], None]
MediaHandler = Callable[[Any, bytes], None]


class Mode(enum.IntEnum):
    """How message payloads are interpreted."""

    BUSINESS = 1
    MEDIA = 2


class AppTcpServer:
    """Dispatches framed messages to handlers registered by protocol type.

    Every message is a 4-byte little-endian payload length followed by the
    payload. In business mode the payload is a JSON object whose ``type``
    field selects the handler; in media mode its first four bytes hold the
    type as a little-endian integer and the handler gets the whole payload.
    """

    def __init__(self, port: int = 8888, ping_pong: bool = True) -> None:
        self.port = port
        self.ping_pong = ping_pong
        self.mode = Mode.BUSINESS
        self.last_pong: dict[Any, float] = {}
        self._business_handlers: dict[int, BusinessHandler] = {}
        self._media_handlers: dict[int, MediaHandler] = {}

    def set_mode(self, mode: int) -> None:
        self.mode = Mode(mode)

    def register_business_handler(self, protocol_type: int, handler: BusinessHandler) -> None:
        if self.mode is not Mode.BUSINESS:
            raise RuntimeError("business handlers require business mode")
        self._business_handlers[protocol_type] = handler

    def register_media_handler(self, protocol_type: int, handler: MediaHandler) -> None:
        if self.mode is not Mode.MEDIA:
            raise RuntimeError("media handlers require media mode")
        self._media_handlers[protocol_type] = handler

    def handle_message(self, conn: Any, buffer: bytearray) -> None:
        """Dispatch every complete message in ``buffer``; keep any partial one."""
        while len(buffer) >= _LENGTH.size:
            (size,) = _LENGTH.unpack_from(buffer)
            end = _LENGTH.size + size
            if len(buffer) < end:
                return
            payload = bytes(buffer[_LENGTH.size:end])
            del buffer[:end]
            if self.mode is Mode.BUSINESS:
                self._dispatch_business(conn, payload)
            else:
                self._dispatch_media(conn, payload)

    def _pong(self, conn: Any) -> None:
        self.last_pong[conn] = time.monotonic()

    def _dispatch_business(self, conn: Any, payload: bytes) -> None:
        message = json.loads(payload)
        protocol_type = int(message["type"])
        if protocol_type == PONG_TYPE and self.ping_pong:
            self._pong(conn)
            return
        handler = self._business_handlers.get(protocol_type)
        if handler is None:
            _log.error("no handler for protocol type: %d", protocol_type)
            return
        handler(conn, message)

    def _dispatch_media(self, conn: Any, payload: bytes) -> None:
        if len(payload) < _TYPE.size:
            raise ValueError("media message too short to hold a protocol type")
        (protocol_type,) = _TYPE.unpack_from(payload)
        if protocol_type == PONG_TYPE and self.ping_pong:
            self._pong(conn)
            return
        handler = self._media_handlers.get(protocol_type)
        if handler is None:
            _log.error("no handler for protocol type: %d", protocol_type)
            return
        handler(conn, payload)