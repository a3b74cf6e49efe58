import inspect

import pytest

from utilkit.statemachine import Executor, MockExecutor, scrub_name


class StateError(Exception):
    pass


class StateMachine:
    def __init__(self):
        self.err = False
        self.call_trace = []

    def Start(self):
        self._trace()
        return self.Middle

    def Middle(self):
        self._trace()
        if self.err:
            return self.Error
        return self.End

    def End(self):
        self._trace()
        return None

    def Error(self):
        self._trace()
        raise StateError("error")

    def reset(self):
        self.call_trace = []

    def _trace(self):
        caller = inspect.currentframe().f_back
        self.call_trace.append(scrub_name(caller.f_code.co_name))


class Logging:
    def __init__(self):
        self.msgs = []

    def log(self, s):
        self.msgs.append(s)


def test_executor_with_error():
    sm = StateMachine()
    sm.err = True
    logs = Logging()
    ex = Executor("tester", sm.Start, reset=sm.reset, logger=logs.log)
    ex.log(False)

    with pytest.raises(StateError, match="error"):
        ex.execute()

    assert ex.nodes() == sm.call_trace
    assert ex.nodes() == ["Start", "Middle", "Error"]
    assert logs.msgs == []


def test_executor_success_logs():
    sm = StateMachine()
    logs = Logging()
    ex = Executor("tester", sm.Start, reset=sm.reset, logger=logs.log)
    ex.log(True)

    ex.execute()

    assert ex.nodes() == sm.call_trace
    assert logs.msgs == [
        "StateMachine[tester]: StateFn(Start) starting",
        "StateMachine[tester]: StateFn(Start) finished",
        "StateMachine[tester]: StateFn(Middle) starting",
        "StateMachine[tester]: StateFn(Middle) finished",
        "StateMachine[tester]: StateFn(End) starting",
        "StateMachine[tester]: StateFn(End) finished",
        "StateMachine[tester]: Execute() completed with no issues",
        "StateMachine[tester]: The following is the StateFn's called with this execution:",
        "StateMachine[tester]: \tStart",
        "StateMachine[tester]: \tMiddle",
        "StateMachine[tester]: \tEnd",
    ]


def test_reset_called_each_execution():
    sm = StateMachine()
    ex = Executor("tester", sm.Start, reset=sm.reset)
    ex.execute()
    ex.execute()
    assert sm.call_trace == ["Start", "Middle", "End"]
    assert ex.nodes() == ["Start", "Middle", "End"]


def test_log_without_logger_does_nothing():
    sm = StateMachine()
    ex = Executor("tester", sm.Start)
    ex.log(True)
    ex.execute()
    assert ex.nodes() == ["Start", "Middle", "End"]


def test_scrub_name():
    assert scrub_name("pkg.StateMachine.Start-fm") == "Start"
    assert scrub_name("outer.<locals>.inner") == "inner"
    assert scrub_name("plain") == "plain"


def test_mock_executor_returns_error_and_runs_side_effect():
    calls = []
    mock = MockExecutor(
        return_val=StateError("boom"),
        side_effect=lambda: calls.append(1),
        nodes_val=["a", "b"],
    )
    mock.log(True)
    with pytest.raises(StateError, match="boom"):
        mock.execute()
    assert calls == [1]
    assert mock.nodes() == ["a", "b"]


def test_mock_executor_success():
    calls = []
    mock = MockExecutor(side_effect=lambda: calls.append("done"))
    mock.execute()
    assert calls == ["done"]
    assert mock.nodes() == []