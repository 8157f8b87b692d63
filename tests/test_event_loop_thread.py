import threading

import pytest

from cooper.event_loop_thread import EventLoopThread, EventLoopThreadPool


def _run_in(loop, func):
    done = threading.Event()
    result = {}

    def task():
        result["value"] = func()
        done.set()

    loop.run_in_loop(task)
    assert done.wait(5)
    return result["value"]


@pytest.fixture
def pool3():
    with EventLoopThreadPool(3) as pool:
        pool.start()
        yield pool


def test_runs_functions_in_own_thread():
    with EventLoopThread() as t:
        t.run()
        ident = _run_in(t.loop, threading.get_ident)
        assert ident != threading.get_ident()
        assert not t.loop.is_in_loop_thread()


def test_thread_name():
    with EventLoopThread("worker") as t:
        t.run()
        assert t.name == "worker"
        assert _run_in(t.loop, lambda: threading.current_thread().name) == "worker"


def test_run_makes_loop_running_and_is_idempotent():
    with EventLoopThread() as t:
        t.run()
        t.run()
        assert t.loop.is_running()


def test_close_stops_loop():
    t = EventLoopThread()
    t.run()
    loop = t.loop
    t.close()
    assert t.loop is None
    assert not loop.is_running()


def test_close_without_run():
    t = EventLoopThread()
    assert t.loop is not None and not t.loop.is_running()
    t.close()
    assert t.loop is None


def test_wait_returns_after_quit():
    t = EventLoopThread()
    t.run()
    t.loop.quit()
    t.wait()
    assert t.loop is None


def test_pool_len_and_distinct_loops(pool3):
    loops = pool3.loops()
    assert len(pool3) == 3
    assert len({id(loop) for loop in loops}) == 3


def test_pool_next_loop_round_robin(pool3):
    loops = pool3.loops()
    picked = [pool3.next_loop() for _ in range(6)]
    assert picked == loops + loops


def test_pool_get_loop(pool3):
    loops = pool3.loops()
    assert [pool3.get_loop(i) for i in range(3)] == loops
    assert pool3.get_loop(3) is None
    assert pool3.get_loop(-1) is None


def test_empty_pool():
    pool = EventLoopThreadPool(0)
    assert len(pool) == 0
    assert pool.next_loop() is None
    assert pool.loops() == []


def test_pool_loops_run_in_separate_threads(pool3):
    idents = [_run_in(loop, threading.get_ident) for loop in pool3.loops()]
    assert len(set(idents)) == 3
    assert threading.get_ident() not in idents


def test_pool_wait_after_quit():
    pool = EventLoopThreadPool(2)
    pool.start()
    for loop in pool.loops():
        loop.quit()
    pool.wait()
    assert pool.loops() == [None, None]