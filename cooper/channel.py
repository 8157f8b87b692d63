"""Reactor channel: the events wanted on one file descriptor and their handlers."""

from __future__ import annotations

import enum
import weakref
from typing import Any, Callable, Optional

EventCallback = Callable[[], None]


class Event(enum.IntFlag):
    """Poll event bits (the values epoll and poll share on Linux)."""

    NONE = 0
    IN = 0x001
    PRI = 0x002
    OUT = 0x004
    ERR = 0x008
    HUP = 0x010
    NVAL = 0x020
    RDHUP = 0x2000


class Channel:
    """Tracks the events enabled on a descriptor and dispatches those that occur.

    The loop must provide ``update_channel(channel)`` and
    ``remove_channel(channel)``. The poller sets ``revents`` and ``index``.
    """

    NONE_EVENT = Event.NONE
    READ_EVENT = Event.IN | Event.PRI
    WRITE_EVENT = Event.OUT

    def __init__(self, loop: Any, fd: int) -> None:
        self.loop = loop
        self.fd = fd
        self._events = Event.NONE
        self.revents = Event.NONE
        self.index = -1
        self.read_callback: Optional[EventCallback] = None
        self.write_callback: Optional[EventCallback] = None
        self.close_callback: Optional[EventCallback] = None
        self.error_callback: Optional[EventCallback] = None
        self.event_callback: Optional[EventCallback] = None
        self._tie: Optional[weakref.ref] = None

    @property
    def events(self) -> Event:
        return self._events

    def _update(self) -> None:
        self.loop.update_channel(self)

    def enable_reading(self) -> None:
        self._events |= self.READ_EVENT
        self._update()

    def disable_reading(self) -> None:
        self._events &= ~self.READ_EVENT
        self._update()

    def enable_writing(self) -> None:
        self._events |= self.WRITE_EVENT
        self._update()

    def disable_writing(self) -> None:
        self._events &= ~self.WRITE_EVENT
        self._update()

    def disable_all(self) -> None:
        self._events = Event.NONE
        self._update()

    def is_reading(self) -> bool:
        return bool(self._events & self.READ_EVENT)

    def is_writing(self) -> bool:
        return bool(self._events & self.WRITE_EVENT)

    def is_none_event(self) -> bool:
        return self._events == Event.NONE

    def update_events(self, events: int) -> None:
        self._events = Event(events)
        self._update()

    def tie(self, owner: object) -> None:
        """Only dispatch events while ``owner`` is still alive (held weakly)."""
        self._tie = weakref.ref(owner)

    def remove(self) -> None:
        """Remove the channel from its loop; all events must be disabled first."""
        if not self.is_none_event():
            raise RuntimeError("cannot remove a channel with events still enabled")
        self.loop.remove_channel(self)

    def handle_event(self) -> None:
        if self._events == Event.NONE:
            return
        if self._tie is not None:
            guard = self._tie()
            if guard is None:
                return
            self._handle_event_safely()
            del guard
        else:
            self._handle_event_safely()

    def _handle_event_safely(self) -> None:
        if self.event_callback is not None:
            self.event_callback()
            return
        revents = self.revents
        if (revents & Event.HUP) and not (revents & Event.IN):
            if self.close_callback is not None:
                self.close_callback()
        if revents & (Event.NVAL | Event.ERR):
            if self.error_callback is not None:
                self.error_callback()
        if revents & (Event.IN | Event.PRI | Event.RDHUP):
            if self.read_callback is not None:
                self.read_callback()
        if revents & Event.OUT:
            if self.write_callback is not None:
                self.write_callback()