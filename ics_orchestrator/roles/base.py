from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from ..cancel import Cancellation
from ..command import DaemonHandle
from ..config import ScenarioConfig
from ..errors import TeardownError
from ..messaging import Messenger

logger = logging.getLogger(__name__)

Step = Callable[[], None]


class Role:
    """
    One participant's half of the scenario.

    ``steps()`` lists the checkpoints in order. ``run()`` executes them one
    at a time on the calling thread, checking the cancellation between
    steps; the only other suspension points are channel receives and
    polling waits inside the steps themselves.
    """

    name = "role"

    def __init__(self, config: ScenarioConfig, cancellation: Optional[Cancellation] = None):
        self.config = config
        self.cancellation = cancellation or Cancellation()
        self.links: Dict[str, Messenger] = {}
        self.daemons: Dict[str, DaemonHandle] = {}
        self.reached: List[str] = []

    def steps(self) -> List[Step]:
        raise NotImplementedError

    def open_links(self) -> None:
        """Open the rendezvous channels this role owns; tests inject them instead."""

    def run(self) -> None:
        logger.info("[%s] starting", self.name)
        try:
            if not self.links:
                self.open_links()
            for step in self.steps():
                self.cancellation.check()
                step()
                self.reached.append(step.__name__)
                logger.info("[%s] %s", self.name, step.__name__)
        except Exception:
            self._stop_daemons()
            raise
        finally:
            for link in self.links.values():
                link.close()
        logger.info("[%s] done", self.name)

    def stop_daemon(self, key: str) -> None:
        handle = self.daemons.pop(key)
        handle.stop(self.config.stop_timeout)

    def _stop_daemons(self) -> None:
        for key in list(self.daemons):
            try:
                self.stop_daemon(key)
            except TeardownError as exc:
                logger.error("[%s] %s", self.name, exc)
