"""IPv4/IPv6 socket endpoint."""

from __future__ import annotations

import socket
import struct

_V4_ANY = bytes(4)
_V4_LOOPBACK = socket.inet_pton(socket.AF_INET, "127.0.0.1")
_V6_ANY = bytes(16)
_V6_LOOPBACK = socket.inet_pton(socket.AF_INET6, "::1")

_V4_LOOPBACK_INT = 0x7F000001


def _check_port(port: int) -> None:
    if not 0 <= port <= 0xFFFF:
        raise ValueError(f"port out of range: {port}")


def _is_private_v4(value: int) -> bool:
    return (
        0x0A000000 <= value <= 0x0AFFFFFF
        or 0xAC100000 <= value <= 0xAC1FFFFF
        or 0xC0A80000 <= value <= 0xC0A8FFFF
        or value == _V4_LOOPBACK_INT
    )


class InetAddress:
    """An IP address and port, either IPv4 or IPv6."""

    __slots__ = ("_ipv6", "_packed", "_port", "_flowinfo", "_scope_id", "_unspecified")

    def __init__(self, port: int = 0, loopback_only: bool = False, ipv6: bool = False) -> None:
        _check_port(port)
        self._ipv6 = ipv6
        if ipv6:
            self._packed = _V6_LOOPBACK if loopback_only else _V6_ANY
        else:
            self._packed = _V4_LOOPBACK if loopback_only else _V4_ANY
        self._port = port
        self._flowinfo = 0
        self._scope_id = 0
        self._unspecified = False

    @classmethod
    def from_ip(cls, ip: str, port: int, ipv6: bool = False) -> InetAddress:
        """Build an endpoint from an address string.

        An address that cannot be parsed leaves the endpoint unspecified,
        holding the wildcard address and the given port.
        """
        addr = cls(port, ipv6=ipv6)
        try:
            addr._packed = socket.inet_pton(addr.family(), ip)
        except (OSError, ValueError):
            addr._unspecified = True
        return addr

    @classmethod
    def from_sockaddr(cls, sockaddr: tuple, ipv6: bool | None = None) -> InetAddress:
        """Build an endpoint from a socket-module address tuple."""
        if ipv6 is None:
            ipv6 = len(sockaddr) == 4
        host, port = sockaddr[0], sockaddr[1]
        host = host.split("%", 1)[0]
        addr = cls(port, ipv6=ipv6)
        try:
            addr._packed = socket.inet_pton(addr.family(), host)
        except (OSError, ValueError) as exc:
            raise ValueError(f"invalid address: {sockaddr!r}") from exc
        if ipv6 and len(sockaddr) == 4:
            addr._flowinfo = sockaddr[2]
            addr._scope_id = sockaddr[3]
        return addr

    def family(self) -> int:
        return socket.AF_INET6 if self._ipv6 else socket.AF_INET

    def sockaddr(self) -> tuple:
        """Return the address tuple accepted by the socket module."""
        if self._ipv6:
            return (self.to_ip(), self._port, self._flowinfo, self._scope_id)
        return (self.to_ip(), self._port)

    def to_ip(self) -> str:
        return socket.inet_ntop(self.family(), self._packed)

    def to_ip_port(self) -> str:
        return f"{self.to_ip()}:{self._port}"

    def to_ip_net_endian(self) -> bytes:
        return self._packed

    def to_ip_port_net_endian(self) -> bytes:
        return self._packed + struct.pack("!H", self._port)

    def to_port(self) -> int:
        return self._port

    def is_ip_v6(self) -> bool:
        return self._ipv6

    def is_intranet_ip(self) -> bool:
        if not self._ipv6:
            return _is_private_v4(struct.unpack("!I", self._packed)[0])
        w0, w1, w2, w3 = struct.unpack("!4I", self._packed)
        if w0 == 0 and w1 == 0 and w2 == 0 and w3 == 1:
            return True
        prefix = w0 & 0xFFC00000
        if prefix in (0xFEC00000, 0xFE800000):
            return True
        if w0 == 0 and w1 == 0 and w2 == 0xFFFF:
            return _is_private_v4(w3)
        return False

    def is_loopback_ip(self) -> bool:
        if not self._ipv6:
            return struct.unpack("!I", self._packed)[0] == _V4_LOOPBACK_INT
        w0, w1, w2, w3 = struct.unpack("!4I", self._packed)
        if w0 == 0 and w1 == 0 and w2 == 0 and w3 == 1:
            return True
        return w0 == 0 and w1 == 0 and w2 == 0xFFFF and w3 == _V4_LOOPBACK_INT

    def is_unspecified(self) -> bool:
        """Return True if the endpoint was built from an unparsable address."""
        return self._unspecified

    def _key(self) -> tuple:
        return (self._ipv6, self._packed, self._port, self._flowinfo, self._scope_id)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, InetAddress):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        return self.to_ip_port()

    def __repr__(self) -> str:
        return f"InetAddress({self.to_ip_port()!r})"