import pytest

from ics_orchestrator.cancel import Cancellation
from ics_orchestrator.errors import DriverError, ScenarioAborted, ScenarioTimeoutError
from ics_orchestrator.polling import wait_for_height, wait_for_num_blocks, wait_for_ok


class ScriptedChain:
    """Returns heights from a script; ``None`` entries raise like a node that is still booting."""

    def __init__(self, heights):
        self.heights = list(heights)
        self.polls = 0

    def block_height(self):
        self.polls += 1
        value = self.heights[min(self.polls, len(self.heights)) - 1]
        if value is None:
            raise DriverError("connection refused")
        return value


def no_sleep(_delay):
    pass


def test_height_reached_within_tries():
    chain = ScriptedChain([None, 0, 2, 5, 9])
    assert wait_for_height(chain, 10, 0.5, 5, sleep=no_sleep) == 5
    assert chain.polls == 4


def test_height_never_reached_raises_timeout():
    chain = ScriptedChain([1])
    sleeps = []
    with pytest.raises(TimeoutError):
        wait_for_height(chain, 4, 0.5, 5, sleep=sleeps.append)
    assert chain.polls == 4
    # no sleep after the last attempt
    assert sleeps == [0.5, 0.5, 0.5]


def test_timeout_is_a_scenario_error():
    chain = ScriptedChain([None])
    with pytest.raises(ScenarioTimeoutError, match="height 1 not reached after 2 polls"):
        wait_for_height(chain, 2, 0, 1, sleep=no_sleep)


def test_num_blocks_counts_from_current_height():
    chain = ScriptedChain([7, 8, 9, 10, 11, 12])
    assert wait_for_num_blocks(chain, 3, 10, 0, sleep=no_sleep) == 10


def test_wait_for_ok_retries_transient_errors():
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise DriverError("not yet")
        return "ok"

    assert wait_for_ok(5, 0, flaky, sleep=no_sleep) == "ok"
    assert len(calls) == 3


def test_wait_for_ok_does_not_retry_other_errors():
    def broken():
        raise KeyError("result")

    with pytest.raises(KeyError):
        wait_for_ok(5, 0, broken, sleep=no_sleep)


def test_cancellation_stops_polling():
    cancellation = Cancellation()
    chain = ScriptedChain([0])

    def cancel_on_sleep(_delay):
        cancellation.cancel("test abort")

    with pytest.raises(ScenarioAborted, match="test abort"):
        wait_for_height(chain, 10, 1, 5, cancellation, sleep=cancel_on_sleep)
    assert chain.polls == 1
