"""poll(2)-based I/O multiplexer that reports ready channels to an event loop."""

from __future__ import annotations

import enum
import logging
import select
from typing import Any

from .channel import Channel, Event

_log = logging.getLogger(__name__)

NEW = -1
ADDED = 1
DELETED = 2


class _Op(enum.Enum):
    ADD = "add"
    MOD = "mod"
    DEL = "del"


class Poller:
    """Watches the descriptors of registered channels.

    The owning loop must provide ``assert_in_loop_thread()``; every change to
    the registered channels is checked against it.
    """

    def __init__(self, loop: Any) -> None:
        self._loop = loop
        self._poll = select.poll()
        self._channels: dict[int, Channel] = {}

    def poll(self, timeout_ms: int) -> list[Channel]:
        """Wait up to ``timeout_ms`` and return the channels with pending events."""
        try:
            ready = self._poll.poll(timeout_ms)
        except OSError:
            _log.exception("Poller.poll()")
            return []
        active = []
        for fd, revents in ready:
            channel = self._channels.get(fd)
            if channel is None:
                continue
            channel.revents = Event(revents)
            active.append(channel)
        return active

    def _check_registered(self, channel: Channel) -> None:
        if self._channels.get(channel.fd) is not channel:
            raise ValueError(f"channel for fd {channel.fd} is not registered with this poller")

    def update_channel(self, channel: Channel) -> None:
        """Register a channel, or bring its registration in line with its events."""
        self._loop.assert_in_loop_thread()
        if channel.fd < 0:
            raise ValueError(f"invalid fd: {channel.fd}")
        index = channel.index
        if index in (NEW, DELETED):
            if index == NEW:
                if channel.fd in self._channels:
                    raise ValueError(f"fd {channel.fd} is already registered")
                self._channels[channel.fd] = channel
            else:
                self._check_registered(channel)
            channel.index = ADDED
            self._control(_Op.ADD, channel)
        else:
            self._check_registered(channel)
            if index != ADDED:
                raise ValueError(f"unexpected channel index: {index}")
            if channel.is_none_event():
                self._control(_Op.DEL, channel)
                channel.index = DELETED
            else:
                self._control(_Op.MOD, channel)

    def remove_channel(self, channel: Channel) -> None:
        """Forget a channel whose events have all been disabled."""
        self._loop.assert_in_loop_thread()
        self._check_registered(channel)
        if not channel.is_none_event():
            raise ValueError("cannot remove a channel with events still enabled")
        index = channel.index
        if index not in (ADDED, DELETED):
            raise ValueError(f"unexpected channel index: {index}")
        del self._channels[channel.fd]
        if index == ADDED:
            self._control(_Op.DEL, channel)
        channel.index = NEW

    def _control(self, op: _Op, channel: Channel) -> None:
        fd = channel.fd
        try:
            if op is _Op.ADD:
                self._poll.register(fd, int(channel.events))
            elif op is _Op.MOD:
                self._poll.modify(fd, int(channel.events))
            else:
                self._poll.unregister(fd)
        except (OSError, KeyError, ValueError):
            _log.debug("poll control %s failed for fd %d", op.value, fd)

    def close(self) -> None:
        """Drop every registration."""
        for fd, channel in list(self._channels.items()):
            if channel.index == ADDED:
                try:
                    self._poll.unregister(fd)
                except (OSError, KeyError, ValueError):
                    pass
            channel.index = NEW
        self._channels.clear()