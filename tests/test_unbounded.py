import itertools
import threading

import pytest

from utilkit.unbounded import Buffer, Empty


def test_pop_pull_buffer():
    size = 100000
    b = Buffer()

    def produce():
        for i in range(size):
            b.push(i)

    producer = threading.Thread(target=produce)
    producer.start()

    got = [b.pull() for _ in range(size)]
    producer.join()

    assert got == list(range(size))


def test_pop_on_empty_raises():
    b = Buffer()
    with pytest.raises(Empty):
        b.pop()


def test_pop_is_fifo_and_then_empty():
    b = Buffer()
    for value in ("a", "b", "c"):
        b.push(value)
    assert [b.pop(), b.pop(), b.pop()] == ["a", "b", "c"]
    with pytest.raises(Empty):
        b.pop()


def test_len_tracks_items():
    b = Buffer()
    b.push(1)
    b.push(2)
    assert len(b) == 2
    b.pop()
    assert len(b) == 1


def test_next_yields_in_order():
    size = 1000
    b = Buffer()
    for i in range(size):
        b.push(i)
    got = list(itertools.islice(b.next(), size))
    assert got == list(range(size))


def test_next_after_close_yields_nothing():
    b = Buffer()
    for i in range(100000):
        b.push(i)
    b.close()
    assert list(b.next()) == []


def test_close_wakes_blocked_next():
    b = Buffer()
    b.push("x")
    it = b.next()
    assert next(it) == "x"

    closer = threading.Timer(0.1, b.close)
    closer.start()
    rest = list(it)
    closer.join(timeout=5)

    assert rest == []


def test_pull_blocks_until_push():
    b = Buffer()
    pusher = threading.Timer(0.05, b.push, args=(42,))
    pusher.start()
    value = b.pull()
    pusher.join(timeout=5)
    assert value == 42