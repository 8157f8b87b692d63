"""Listening socket that accepts connections from inside an event loop."""

from __future__ import annotations

import errno
import logging
import os
import socket
from typing import Any, Callable, Optional

from .channel import Channel
from .inet_address import InetAddress

_log = logging.getLogger(__name__)

NewConnectionCallback = Callable[[socket.socket, InetAddress], None]
SockOptCallback = Callable[[socket.socket], None]


def _open_idle_fd() -> int:
    return os.open(os.devnull, os.O_RDONLY | getattr(os, "O_CLOEXEC", 0))


class Acceptor:
    """Binds to an address and hands every accepted connection to a callback.

    Without ``new_connection_callback`` accepted connections are closed at once.
    """

    def __init__(
        self,
        loop: Any,
        addr: InetAddress,
        reuse_addr: bool = True,
        reuse_port: bool = True,
    ) -> None:
        self._loop = loop
        self._idle_fd: Optional[int] = _open_idle_fd()
        self._sock = socket.socket(addr.family(), socket.SOCK_STREAM)
        try:
            self._sock.setblocking(False)
            self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, int(reuse_addr))
            if hasattr(socket, "SO_REUSEPORT"):
                self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, int(reuse_port))
            self._sock.bind(addr.sockaddr())
        except BaseException:
            self._sock.close()
            os.close(self._idle_fd)
            raise
        self._addr = addr
        if addr.to_port() == 0:
            self._addr = InetAddress.from_sockaddr(self._sock.getsockname(), addr.is_ip_v6())
        self.new_connection_callback: Optional[NewConnectionCallback] = None
        self.before_listen_callback: Optional[SockOptCallback] = None
        self.after_accept_callback: Optional[SockOptCallback] = None
        self._channel = Channel(loop, self._sock.fileno())
        self._channel.read_callback = self._handle_read
        self._closed = False

    @property
    def addr(self) -> InetAddress:
        """The bound address, with the real port if port 0 was requested."""
        return self._addr

    def __enter__(self) -> "Acceptor":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def listen(self) -> None:
        """Start listening and watching for incoming connections."""
        self._loop.assert_in_loop_thread()
        if self.before_listen_callback is not None:
            self.before_listen_callback(self._sock)
        self._sock.listen(socket.SOMAXCONN)
        self._channel.enable_reading()

    def _handle_read(self) -> None:
        try:
            conn, peer_sockaddr = self._sock.accept()
        except (BlockingIOError, InterruptedError):
            return
        except OSError as exc:
            _log.error("Acceptor accept failed: %s", exc)
            if exc.errno == errno.EMFILE:
                self._shed_pending_connection()
            return
        conn.setblocking(False)
        peer = InetAddress.from_sockaddr(peer_sockaddr, self._addr.is_ip_v6())
        if self.after_accept_callback is not None:
            self.after_accept_callback(conn)
        if self.new_connection_callback is not None:
            self.new_connection_callback(conn, peer)
        else:
            conn.close()

    def _shed_pending_connection(self) -> None:
        """Out of descriptors: free the spare one to accept and drop a client."""
        if self._idle_fd is not None:
            os.close(self._idle_fd)
            self._idle_fd = None
        try:
            conn, _ = self._sock.accept()
            conn.close()
        except OSError:
            pass
        try:
            self._idle_fd = _open_idle_fd()
        except OSError:
            self._idle_fd = None

    def close(self) -> None:
        """Stop watching the socket and release it."""
        if self._closed:
            return
        self._closed = True
        self._channel.disable_all()
        self._channel.remove()
        self._sock.close()
        if self._idle_fd is not None:
            os.close(self._idle_fd)
            self._idle_fd = None