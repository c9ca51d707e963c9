from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

import requests

from .cancel import Cancellation
from .errors import DriverError, ScenarioTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures that mean "not yet", e.g. a daemon that is still booting.
TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (DriverError, requests.RequestException)


def wait_for_ok(
    tries: int,
    delay: float,
    func: Callable[[], T],
    cancellation: Optional[Cancellation] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call ``func`` until it returns without a transient error.

    This and the functions built on it are the only retrying operations in
    the scenario; when the tries run out the wait fails for good.
    """
    last_error: Optional[BaseException] = None
    for attempt in range(tries):
        if cancellation is not None:
            cancellation.check()
        try:
            return func()
        except TRANSIENT_ERRORS as exc:
            last_error = exc
            logger.debug("Attempt %d/%d failed: %s", attempt + 1, tries, exc)
        if attempt + 1 < tries:
            sleep(delay)
    raise ScenarioTimeoutError(f"gave up after {tries} tries: {last_error}")


def wait_for_height(
    chain,
    tries: int,
    delay: float,
    target: int,
    cancellation: Optional[Cancellation] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Poll ``chain.block_height()`` until it reaches ``target``; returns the observed height."""
    last_height: Optional[int] = None
    for attempt in range(tries):
        if cancellation is not None:
            cancellation.check()
        try:
            last_height = chain.block_height()
        except TRANSIENT_ERRORS as exc:
            logger.debug("Height query %d/%d failed: %s", attempt + 1, tries, exc)
        else:
            if last_height >= target:
                logger.info("Reached height %d (target %d)", last_height, target)
                return last_height
        if attempt + 1 < tries:
            sleep(delay)
    raise ScenarioTimeoutError(
        f"height {target} not reached after {tries} polls (last seen: {last_height})"
    )


def wait_for_num_blocks(
    chain,
    num_blocks: int,
    tries: int,
    delay: float,
    cancellation: Optional[Cancellation] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Wait until ``num_blocks`` blocks past the current height have been produced."""
    start = wait_for_ok(tries, delay, chain.block_height, cancellation, sleep)
    return wait_for_height(chain, tries, delay, start + num_blocks, cancellation, sleep)
