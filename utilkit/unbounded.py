"""An unbounded FIFO buffer that never blocks on push.

FIFO order is guaranteed only with a single receiver; with several receivers
the order is close to FIFO.
"""

from __future__ import annotations

import threading
from collections import deque
from typing import Any, Iterator


class Empty(Exception):
    """Raised by Buffer.pop() when there is nothing in the buffer."""


class Buffer:
    """A FIFO queue that grows without limit; pushing never fails.

    Use pop()/pull() or next() to consume items, not both.
    """

    def __init__(self) -> None:
        self._items: deque[Any] = deque()
        self._cond = threading.Condition()
        self._closed = False

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)

    def push(self, item: Any) -> None:
        """Add an item to the end of the buffer."""
        with self._cond:
            self._items.append(item)
            self._cond.notify()

    def pop(self) -> Any:
        """Remove and return the next item, raising Empty if there is none."""
        with self._cond:
            if not self._items:
                raise Empty("buffer is empty")
            return self._items.popleft()

    def pull(self) -> Any:
        """Remove and return the next item, blocking until one is available."""
        with self._cond:
            self._cond.wait_for(lambda: bool(self._items))
            return self._items.popleft()

    def next(self) -> Iterator[Any]:
        """Yield items as they arrive until close() is called.

        Once the buffer is closed the iteration ends, even if items remain.
        """
        while True:
            with self._cond:
                self._cond.wait_for(lambda: self._closed or bool(self._items))
                if self._closed:
                    return
                item = self._items.popleft()
            yield item

    def close(self) -> None:
        """Stop all iterations started by next()."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()