"""Two-way signalling between threads.

A sender calls Signaler.signal() with some data; a receiver takes an Acker
from Signaler.receive() and acknowledges it, optionally returning data to the
sender, who may wait for it or collect it later through a promise queue.
"""

from __future__ import annotations

import threading
from collections import deque
from typing import Any, Iterator, Optional, Protocol


class _Putter(Protocol):
    def put(self, item: Any) -> Any: ...


class Acker:
    """Lets a receiver acknowledge a signal and return a value."""

    def __init__(self, data: Any = None) -> None:
        self.data = data
        self._done = threading.Event()
        self._value: Any = None
        self._lock = threading.Lock()
        self._delivered = False

    def ack(self, x: Any) -> None:
        """Acknowledge receipt, handing x back to the sender."""
        with self._lock:
            if self._done.is_set():
                raise RuntimeError("signal has already been acknowledged")
            self._value = x
            self._done.set()

    def _result(self) -> Any:
        self._done.wait()
        return self._value


class Signaler:
    """A channel of signals that one thread sends and another receives.

    buffer_size is how many signals can be pending before signal() blocks
    waiting for a receiver; zero makes every signal wait for a receiver.
    """

    def __init__(self, buffer_size: int = 1) -> None:
        if buffer_size < 0:
            raise ValueError("buffer_size cannot be negative")
        self._capacity = buffer_size
        self._pending: deque[Acker] = deque()
        self._cond = threading.Condition()
        self._closed = False

    def signal(
        self,
        x: Any = None,
        wait: bool = False,
        promise: Optional[_Putter] = None,
    ) -> Any:
        """Send x to a receiver.

        With wait=True, block until the receiver acknowledges and return the
        value it acknowledged with. With a promise (anything with a put()
        method, such as queue.Queue), return at once and put the acknowledged
        value into the promise later. Otherwise return None.
        """
        if wait and promise is not None:
            raise ValueError("signal() cannot be called with both wait and promise")

        acker = Acker(x)
        with self._cond:
            if self._capacity > 0:
                self._cond.wait_for(
                    lambda: self._closed or len(self._pending) < self._capacity
                )
            if self._closed:
                raise RuntimeError("signal on a closed Signaler")
            self._pending.append(acker)
            self._cond.notify_all()
            if self._capacity == 0:
                self._cond.wait_for(lambda: acker._delivered or self._closed)
                if not acker._delivered:
                    raise RuntimeError("Signaler closed before the signal was received")

        if wait:
            return acker._result()

        if promise is not None:
            threading.Thread(
                target=lambda: promise.put(acker._result()), daemon=True
            ).start()
        return None

    def receive(self) -> Iterator[Acker]:
        """Yield Ackers for incoming signals until the Signaler is closed.

        Signals still pending at close time are delivered before it ends.
        """
        while True:
            with self._cond:
                self._cond.wait_for(lambda: self._closed or bool(self._pending))
                if not self._pending:
                    return
                acker = self._pending.popleft()
                acker._delivered = True
                self._cond.notify_all()
            yield acker

    def close(self) -> None:
        """Close the Signaler, ending every receive() iteration."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()