import queue
import threading

import pytest

from utilkit.signaling import Acker, Signaler


def test_buffer_size():
    sig = Signaler(buffer_size=5)
    for i in range(5):
        sig.signal(i)

    receiver = sig.receive()
    for i in range(5):
        ack = next(receiver)
        assert ack.data == i
        ack.ack(None)


def test_promise():
    sig = Signaler()
    promises = []
    want = []
    threads = []

    for i in range(100):
        def worker(i=i):
            ack = next(sig.receive())
            ack.ack(i)

        t = threading.Thread(target=worker)
        t.start()
        threads.append(t)
        promises.append(queue.Queue(1))
        want.append(i)

    for p in promises:
        sig.signal(None, promise=p)

    got = sorted(p.get(timeout=5) for p in promises)
    for t in threads:
        t.join(timeout=5)

    assert got == sorted(want)


def test_close():
    sig = Signaler(buffer_size=3)

    def produce():
        sig.signal("Hello")
        sig.signal("World")
        sig.close()

    producer = threading.Thread(target=produce)
    producer.start()

    got = []
    for v in sig.receive():
        v.ack(None)
        got.append(v.data)
    producer.join(timeout=5)

    assert got == ["Hello", "World"]


def test_signal_wait():
    hello = "hello everyone"
    out = "I'm out!"
    go_return = []

    def receiver():
        ack = next(sig.receive())
        go_return.append(ack.data)
        ack.ack(out)

    sig = Signaler()
    t = threading.Thread(target=receiver)
    t.start()

    ack_return = sig.signal(hello, wait=True)
    t.join(timeout=5)

    assert go_return == [hello]
    assert ack_return == out


def test_wait_and_promise_together_raise():
    sig = Signaler()
    with pytest.raises(ValueError):
        sig.signal("x", wait=True, promise=queue.Queue(1))


def test_signal_without_options_returns_none():
    sig = Signaler()
    assert sig.signal("data") is None
    ack = next(sig.receive())
    assert ack.data == "data"


def test_double_ack_raises():
    acker = Acker("data")
    acker.ack(1)
    with pytest.raises(RuntimeError):
        acker.ack(2)


def test_signal_after_close_raises():
    sig = Signaler()
    sig.close()
    with pytest.raises(RuntimeError):
        sig.signal("late")


def test_receive_after_close_is_empty():
    sig = Signaler()
    sig.close()
    assert list(sig.receive()) == []


def test_negative_buffer_size_raises():
    with pytest.raises(ValueError):
        Signaler(buffer_size=-1)


def test_unbuffered_signal_waits_for_receiver():
    sig = Signaler(buffer_size=0)
    sender = threading.Thread(target=sig.signal, args=("ping",))
    sender.start()

    ack = next(sig.receive())
    ack.ack(None)
    sender.join(timeout=5)

    assert ack.data == "ping"