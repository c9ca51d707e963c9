from __future__ import annotations

import logging
import signal
import sys
import threading
from typing import Optional

from .errors import ScenarioAborted

logger = logging.getLogger(__name__)


class Cancellation:
    """Scenario-wide abort flag checked at every suspension point."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def check(self) -> None:
        if self._event.is_set():
            raise ScenarioAborted(self.reason or "cancelled")


def install_signal_handlers(cancellation: Cancellation) -> None:
    def _sig_handler(signum, frame):
        logger.info("Caught signal %s; aborting scenario", signum)
        cancellation.cancel(f"signal {signum}")

    for _s in (signal.SIGINT, signal.SIGTERM):
        try:
            signal.signal(_s, _sig_handler)
        except ValueError:
            # only the main thread may install handlers
            logger.debug("Could not install handler for signal %s", _s)


def install_exit_handlers() -> None:
    """Turn SIGINT/SIGTERM into ``SystemExit`` so pending teardown still runs."""

    def _sig_handler(signum, frame):
        logger.info("Caught signal %s; cleaning up...", signum)
        sys.exit(128 + signum)

    for _s in (signal.SIGINT, signal.SIGTERM):
        signal.signal(_s, _sig_handler)
