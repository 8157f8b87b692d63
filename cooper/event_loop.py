"""Single-threaded reactor: I/O events, timers and queued functions."""

from __future__ import annotations

import collections
import datetime
import heapq
import itertools
import logging
import math
import os
import threading
import time
import weakref
from typing import Callable, Optional, Union

from .channel import Channel
from .poller import Poller

_log = logging.getLogger(__name__)

Func = Callable[[], None]
TimerId = int
INVALID_TIMER_ID = 0
POLL_TIME_MS = 10000

_registry_lock = threading.Lock()
_loops: "weakref.WeakValueDictionary[int, EventLoop]" = weakref.WeakValueDictionary()


def get_event_loop_of_current_thread() -> Optional["EventLoop"]:
    """Return the loop that belongs to the calling thread, or None."""
    with _registry_lock:
        return _loops.get(threading.get_ident())


def _seconds(value: Union[float, datetime.timedelta]) -> float:
    if isinstance(value, datetime.timedelta):
        return value.total_seconds()
    return float(value)


class EventLoop:
    """An event loop owned by one thread; at most one loop per thread."""

    def __init__(self) -> None:
        tid = threading.get_ident()
        with _registry_lock:
            if _loops.get(tid) is not None:
                raise RuntimeError("there is already an EventLoop in this thread")
        self._thread_id = tid
        self._looping = False
        self._quit = False
        self._closed = False
        self._calling_funcs = False
        self._event_handling = False
        self.current_active_channel: Optional[Channel] = None
        self.index: Optional[int] = None
        self._funcs: collections.deque[Func] = collections.deque()
        self._funcs_on_quit: collections.deque[Func] = collections.deque()
        self._timers: list[tuple[float, int, float, Func]] = []
        self._active_timers: set[int] = set()
        self._timer_ids = itertools.count(INVALID_TIMER_ID + 1)
        self._timer_id_lock = threading.Lock()
        self._poller = Poller(self)
        self._wakeup_read_fd, self._wakeup_write_fd = os.pipe()
        os.set_blocking(self._wakeup_read_fd, False)
        os.set_blocking(self._wakeup_write_fd, False)
        self._wakeup_channel = Channel(self, self._wakeup_read_fd)
        self._wakeup_channel.read_callback = self._wakeup_read
        self._wakeup_channel.enable_reading()
        with _registry_lock:
            _loops[tid] = self

    def __enter__(self) -> "EventLoop":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def is_in_loop_thread(self) -> bool:
        return self._thread_id == threading.get_ident()

    def assert_in_loop_thread(self) -> None:
        if not self.is_in_loop_thread():
            raise RuntimeError("this operation must run in the event loop's own thread")

    def is_running(self) -> bool:
        return self._looping and not self._quit

    def is_calling_functions(self) -> bool:
        return self._calling_funcs

    def loop(self) -> None:
        """Run until quit() is called; then run the functions given to run_on_quit()."""
        if self._looping:
            raise RuntimeError("the event loop is already looping")
        self.assert_in_loop_thread()
        self._looping = True
        self._quit = False
        try:
            try:
                while not self._quit:
                    active = self._poller.poll(self._poll_timeout_ms())
                    self._event_handling = True
                    for channel in active:
                        self.current_active_channel = channel
                        channel.handle_event()
                    self.current_active_channel = None
                    self._event_handling = False
                    self._run_expired_timers()
                    self._do_run_in_loop_funcs()
            finally:
                self._looping = False
        except Exception as exc:
            _log.warning("exception thrown from event loop, rethrowing after running quit functions: %s", exc)
            raise
        finally:
            while self._funcs_on_quit:
                self._funcs_on_quit.popleft()()

    def quit(self) -> None:
        self._quit = True
        if not self.is_in_loop_thread():
            self._wakeup()

    def run_in_loop(self, func: Func) -> None:
        """Call ``func`` now if in the loop thread, otherwise queue it."""
        if self.is_in_loop_thread():
            func()
        else:
            self.queue_in_loop(func)

    def queue_in_loop(self, func: Func) -> None:
        """Queue ``func`` to run in the loop thread after the current iteration."""
        self._funcs.append(func)
        if not self.is_in_loop_thread() or not self._looping:
            self._wakeup()

    def run_at(self, when: Union[float, datetime.datetime], func: Func) -> TimerId:
        """Run ``func`` at a wall-clock time (epoch seconds or datetime)."""
        timestamp = when.timestamp() if isinstance(when, datetime.datetime) else float(when)
        delay = timestamp - time.time()
        return self._add_timer(func, time.monotonic() + delay, 0.0)

    def run_after(self, delay: Union[float, datetime.timedelta], func: Func) -> TimerId:
        """Run ``func`` once after ``delay`` seconds."""
        return self._add_timer(func, time.monotonic() + _seconds(delay), 0.0)

    def run_every(self, interval: Union[float, datetime.timedelta], func: Func) -> TimerId:
        """Run ``func`` every ``interval`` seconds."""
        seconds = _seconds(interval)
        if seconds <= 0:
            raise ValueError("interval must be positive")
        return self._add_timer(func, time.monotonic() + seconds, seconds)

    def invalidate_timer(self, timer_id: TimerId) -> None:
        if self.is_running():
            self.run_in_loop(lambda: self._active_timers.discard(timer_id))

    def _add_timer(self, func: Func, when: float, interval: float) -> TimerId:
        with self._timer_id_lock:
            timer_id = next(self._timer_ids)

        def insert() -> None:
            self._active_timers.add(timer_id)
            heapq.heappush(self._timers, (when, timer_id, interval, func))

        self.run_in_loop(insert)
        return timer_id

    def _poll_timeout_ms(self) -> int:
        if not self._timers:
            return POLL_TIME_MS
        wait = self._timers[0][0] - time.monotonic()
        return max(0, min(POLL_TIME_MS, math.ceil(wait * 1000)))

    def _run_expired_timers(self) -> None:
        now = time.monotonic()
        while self._timers and self._timers[0][0] <= now:
            _, timer_id, interval, func = heapq.heappop(self._timers)
            if timer_id not in self._active_timers:
                continue
            if interval <= 0:
                self._active_timers.discard(timer_id)
            func()
            if interval > 0 and timer_id in self._active_timers:
                heapq.heappush(self._timers, (time.monotonic() + interval, timer_id, interval, func))

    def update_channel(self, channel: Channel) -> None:
        if channel.loop is not self:
            raise ValueError("channel belongs to another loop")
        self.assert_in_loop_thread()
        self._poller.update_channel(channel)

    def remove_channel(self, channel: Channel) -> None:
        if channel.loop is not self:
            raise ValueError("channel belongs to another loop")
        self.assert_in_loop_thread()
        self._poller.remove_channel(channel)

    def run_on_quit(self, func: Func) -> None:
        """Run ``func`` in the loop thread once the loop has exited."""
        self._funcs_on_quit.append(func)

    def move_to_current_thread(self) -> None:
        """Hand the loop over to the calling thread; only while it is not running."""
        if self.is_running():
            raise RuntimeError("an EventLoop cannot be moved while running")
        if self.is_in_loop_thread():
            _log.warning("this EventLoop is already in the current thread")
            return
        tid = threading.get_ident()
        with _registry_lock:
            if _loops.get(tid) is not None:
                raise RuntimeError("there is already an EventLoop in this thread")
            if _loops.get(self._thread_id) is self:
                del _loops[self._thread_id]
            _loops[tid] = self
        self._thread_id = tid

    def close(self) -> None:
        """Stop the loop, wait for it to exit and release its resources."""
        if self._closed:
            return
        if self._looping and self.is_in_loop_thread():
            raise RuntimeError("cannot close an EventLoop from inside its own loop")
        self.quit()
        while self._looping:
            time.sleep(0.001)
        with _registry_lock:
            if _loops.get(self._thread_id) is self:
                del _loops[self._thread_id]
        self._poller.close()
        os.close(self._wakeup_read_fd)
        os.close(self._wakeup_write_fd)
        self._closed = True

    def _do_run_in_loop_funcs(self) -> None:
        self._calling_funcs = True
        try:
            while self._funcs:
                self._funcs.popleft()()
        finally:
            self._calling_funcs = False

    def _wakeup(self) -> None:
        if self._closed:
            return
        try:
            os.write(self._wakeup_write_fd, b"\x01")
        except (BlockingIOError, OSError):
            pass

    def _wakeup_read(self) -> None:
        while True:
            try:
                data = os.read(self._wakeup_read_fd, 4096)
            except BlockingIOError:
                return
            except OSError:
                _log.exception("wakeup read error")
                return
            if not data:
                return