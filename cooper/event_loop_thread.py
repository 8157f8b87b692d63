"""Threads that each own and run an event loop, and a pool of them."""

from __future__ import annotations

import itertools
import threading
from concurrent.futures import Future
from typing import Optional

from .event_loop import EventLoop


class EventLoopThread:
    """A thread that owns one event loop and runs it once ``run()`` is called."""

    def __init__(self, name: str = "EventLoopThread") -> None:
        self._name = name
        self._loop_future: Future = Future()
        self._run_requested = threading.Event()
        self._looping = threading.Event()
        self._once_lock = threading.Lock()
        self._started = False
        self._loop_lock = threading.Lock()
        self._loop: Optional[EventLoop] = None
        self._thread = threading.Thread(target=self._loop_funcs, name=name, daemon=True)
        self._thread.start()
        self._loop = self._loop_future.result()

    @property
    def name(self) -> str:
        return self._name

    @property
    def loop(self) -> Optional[EventLoop]:
        """The thread's event loop, or None once it has exited."""
        with self._loop_lock:
            return self._loop

    def __enter__(self) -> "EventLoopThread":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _loop_funcs(self) -> None:
        try:
            loop = EventLoop()
        except BaseException as exc:
            self._loop_future.set_exception(exc)
            return
        loop.queue_in_loop(self._looping.set)
        self._loop_future.set_result(loop)
        self._run_requested.wait()
        try:
            loop.loop()
        finally:
            with self._loop_lock:
                self._loop = None
            loop.close()

    def run(self) -> None:
        """Start the loop; returns once it is looping. Later calls do nothing."""
        with self._once_lock:
            if self._started:
                return
            self._started = True
            self._run_requested.set()
            self._looping.wait()

    def wait(self) -> None:
        """Block until the loop has exited and its thread has finished."""
        self._thread.join()

    def close(self) -> None:
        """Make the loop quit and wait for its thread to finish."""
        self.run()
        with self._loop_lock:
            if self._loop is not None:
                self._loop.quit()
        if self._thread is not threading.current_thread() and self._thread.is_alive():
            self._thread.join()


class EventLoopThreadPool:
    """A fixed number of event loop threads handed out round-robin."""

    def __init__(self, thread_num: int, name: str = "EventLoopThreadPool") -> None:
        self._threads = [EventLoopThread(name) for _ in range(thread_num)]
        self._counter = itertools.count()
        self._counter_lock = threading.Lock()

    def __enter__(self) -> "EventLoopThreadPool":
        return self

    def __exit__(self, *exc_info) -> None:
        for thread in self._threads:
            thread.close()

    def start(self) -> None:
        """Run every loop in the pool; does not block."""
        for thread in self._threads:
            thread.run()

    def wait(self) -> None:
        """Block until every loop in the pool has exited."""
        for thread in self._threads:
            thread.wait()

    def __len__(self) -> int:
        return len(self._threads)

    def next_loop(self) -> Optional[EventLoop]:
        """Return the next loop in turn, or None for an empty pool."""
        if not self._threads:
            return None
        with self._counter_lock:
            index = next(self._counter)
        return self._threads[index % len(self._threads)].loop

    def get_loop(self, index: int) -> Optional[EventLoop]:
        """Return the loop at ``index``, or None if there is no such loop."""
        if 0 <= index < len(self._threads):
            return self._threads[index].loop
        return None

    def loops(self) -> list[Optional[EventLoop]]:
        return [thread.loop for thread in self._threads]