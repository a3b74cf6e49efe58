"""A state machine driven by state functions.

Each state is a callable that takes no arguments and returns the next state
to run, or None when execution is finished. A state signals failure by
raising an exception, which stops execution and propagates out of
Executor.execute().
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional

StateFn = Callable[[], Optional["StateFn"]]
LogFn = Callable[[str], None]


def scrub_name(name: str) -> str:
    """Strip module and class qualifiers (and a trailing "-fm") from a name."""
    return name.rsplit(".", 1)[-1].removesuffix("-fm")


def _state_name(fn: StateFn) -> str:
    name = getattr(fn, "__qualname__", None) or getattr(fn, "__name__", None)
    return scrub_name(name if name is not None else repr(fn))


class Executor:
    """Runs a state machine starting at a given state function.

    name prefixes every log message. reset, if given, is called at the start
    of every execute() so states can clear their data. logger receives
    formatted log messages once logging is switched on with log(True).
    """

    def __init__(
        self,
        name: str,
        start: StateFn,
        reset: Optional[Callable[[], None]] = None,
        logger: Optional[LogFn] = None,
    ) -> None:
        self.name = name
        self._start = start
        self._reset_fn = reset
        self._logger = logger
        self._nodes: List[str] = []
        self._current: Optional[StateFn] = None
        self._log_on = False
        self._lock = threading.Lock()

    def execute(self) -> None:
        """Run states until one returns None or raises.

        An exception raised by a state is logged and re-raised.
        """
        try:
            self._reset()
            fn: Optional[StateFn] = self._start
            while fn is not None:
                try:
                    fn = self._run(fn)
                except Exception as err:
                    self._log(f'Execute() completed with an error: "{err}"')
                    raise
            self._log("Execute() completed with no issues")
        finally:
            if self._log_on:
                self._log("The following is the StateFn's called with this execution:")
                for node in self.nodes():
                    self._log(f"\t{node}")

    def nodes(self) -> List[str]:
        """Names of the state functions run during the last execute()."""
        with self._lock:
            return list(self._nodes)

    def log(self, b: bool) -> None:
        """Turn detailed logging on or off; does nothing without a logger."""
        if self._logger is None:
            return
        with self._lock:
            self._log_on = b

    def _reset(self) -> None:
        with self._lock:
            self._nodes = []
            self._current = None
            if self._reset_fn is not None:
                self._reset_fn()

    def _run(self, fn: StateFn) -> Optional[StateFn]:
        name = _state_name(fn)
        with self._lock:
            self._nodes.append(name)
            self._current = fn
        self._log(f"StateFn({name}) starting")
        next_fn = fn()
        self._log(f"StateFn({name}) finished")
        return next_fn

    def _log(self, message: str) -> None:
        if self._log_on and self._logger is not None:
            self._logger(f"StateMachine[{self.name}]: {message}")


@dataclass
class MockExecutor:
    """Stand-in for Executor in tests.

    execute() raises return_val if it is set, calling side_effect afterwards
    either way; nodes() returns nodes_val; log() records the switch in log_on.
    """

    return_val: Optional[BaseException] = None
    side_effect: Optional[Callable[[], None]] = None
    nodes_val: List[str] = field(default_factory=list)
    log_on: bool = False

    def execute(self) -> None:
        """Raise return_val if set, then run side_effect."""
        try:
            if self.return_val is not None:
                raise self.return_val
        finally:
            if self.side_effect is not None:
                self.side_effect()

    def nodes(self) -> List[str]:
        """Return nodes_val."""
        return self.nodes_val

    def log(self, b: bool) -> None:
        """Record the logging switch in log_on."""
        self.log_on = b