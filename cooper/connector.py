"""Non-blocking outgoing connection attempts with optional retries."""

from __future__ import annotations

import enum
import errno
import logging
import os
import socket
import threading
from typing import Any, Callable, Optional

from .channel import Channel
from .inet_address import InetAddress

_log = logging.getLogger(__name__)

NewConnectionCallback = Callable[[socket.socket], None]
ConnectionErrorCallback = Callable[[], None]
SockOptCallback = Callable[[socket.socket], None]

INIT_RETRY_DELAY_MS = 500
MAX_RETRY_DELAY_MS = 30 * 1000

_IN_PROGRESS = {0, errno.EINPROGRESS, errno.EINTR, errno.EISCONN}
_RETRYABLE = {
    errno.EAGAIN,
    errno.EADDRINUSE,
    errno.EADDRNOTAVAIL,
    errno.ECONNREFUSED,
    errno.ENETUNREACH,
}


class Status(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class Connector:
    """Connects to a server from inside an event loop.

    On success ``new_connection_callback`` receives the connected socket.
    Failed attempts are retried with doubling delays when ``retry`` is set.
    """

    def __init__(self, loop: Any, addr: InetAddress, retry: bool = True) -> None:
        self._loop = loop
        self._server_addr = addr
        self._retry_enabled = retry
        self.new_connection_callback: Optional[NewConnectionCallback] = None
        self.error_callback: Optional[ConnectionErrorCallback] = None
        self.sock_opt_callback: Optional[SockOptCallback] = None
        self._connect = False
        self._status = Status.DISCONNECTED
        self._status_lock = threading.Lock()
        self._retry_interval_ms = INIT_RETRY_DELAY_MS
        self._max_retry_interval_ms = MAX_RETRY_DELAY_MS
        self._channel: Optional[Channel] = None
        self._sock: Optional[socket.socket] = None

    @property
    def server_address(self) -> InetAddress:
        return self._server_addr

    @property
    def status(self) -> Status:
        return self._status

    def start(self) -> None:
        self._connect = True
        self._loop.run_in_loop(self._start_in_loop)

    def restart(self) -> None:
        """Begin connecting again from the initial retry delay."""
        self._loop.assert_in_loop_thread()
        self._status = Status.DISCONNECTED
        self._retry_interval_ms = INIT_RETRY_DELAY_MS
        self._connect = True
        self._start_in_loop()

    def stop(self) -> None:
        self._status = Status.DISCONNECTED
        self._loop.run_in_loop(self._drop_pending)

    def _drop_pending(self) -> None:
        sock = self._remove_and_reset_channel()
        if sock is not None:
            sock.close()

    def _start_in_loop(self) -> None:
        self._loop.assert_in_loop_thread()
        if self._status is not Status.DISCONNECTED:
            raise RuntimeError(f"connector cannot start while {self._status.value}")
        if self._connect:
            self._do_connect()
        else:
            _log.debug("do not connect")

    def _do_connect(self) -> None:
        sock = socket.socket(self._server_addr.family(), socket.SOCK_STREAM)
        sock.setblocking(False)
        if self.sock_opt_callback is not None:
            self.sock_opt_callback(sock)
        err = sock.connect_ex(self._server_addr.sockaddr())
        if err in _IN_PROGRESS:
            _log.debug("connecting")
            self._connecting(sock)
        elif err in _RETRYABLE:
            if self._retry_enabled:
                self._retry(sock)
            else:
                sock.close()
        else:
            _log.error("connect error to %s: %s", self._server_addr, os.strerror(err))
            sock.close()
            if self.error_callback is not None:
                self.error_callback()

    def _connecting(self, sock: socket.socket) -> None:
        self._status = Status.CONNECTING
        if self._channel is not None:
            raise RuntimeError("connector already has a pending connection")
        self._sock = sock
        channel = Channel(self._loop, sock.fileno())
        channel.write_callback = self._handle_write
        channel.error_callback = self._handle_error
        channel.close_callback = self._handle_error
        self._channel = channel
        channel.enable_writing()

    def _remove_and_reset_channel(self) -> Optional[socket.socket]:
        if self._channel is None:
            return None
        self._channel.disable_all()
        self._channel.remove()
        self._channel = None
        sock, self._sock = self._sock, None
        return sock

    def _handle_write(self) -> None:
        if self._status is not Status.CONNECTING:
            return
        sock = self._remove_and_reset_channel()
        if sock is None:
            return
        err = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
        if err:
            _log.warning("Connector SO_ERROR = %d %s", err, os.strerror(err))
            self._fail(sock)
        elif _is_self_connect(sock):
            _log.warning("Connector self connect")
            self._fail(sock)
        else:
            self._status = Status.CONNECTED
            if self._connect and self.new_connection_callback is not None:
                self.new_connection_callback(sock)
            else:
                sock.close()

    def _fail(self, sock: socket.socket) -> None:
        if self._retry_enabled:
            self._retry(sock)
        else:
            sock.close()
        if self.error_callback is not None:
            self.error_callback()

    def _handle_error(self) -> None:
        if self._status is not Status.CONNECTING:
            return
        self._status = Status.DISCONNECTED
        sock = self._remove_and_reset_channel()
        if sock is None:
            return
        err = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
        _log.debug("SO_ERROR = %d %s", err, os.strerror(err))
        self._fail(sock)

    def _retry(self, sock: socket.socket) -> None:
        sock.close()
        self._status = Status.DISCONNECTED
        if not self._connect:
            _log.debug("do not connect")
            return
        _log.info(
            "retry connecting to %s in %d milliseconds",
            self._server_addr.to_ip_port(),
            self._retry_interval_ms,
        )
        self._loop.run_after(self._retry_interval_ms / 1000.0, self._start_in_loop)
        self._retry_interval_ms = min(self._retry_interval_ms * 2, self._max_retry_interval_ms)


def _is_self_connect(sock: socket.socket) -> bool:
    try:
        return sock.getsockname() == sock.getpeername()
    except OSError:
        return False