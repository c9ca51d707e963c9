from __future__ import annotations

import atexit
import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional

from .config import ScenarioConfig, ScenarioSpec
from .docker import Container, ContainerNetwork
from .errors import ScenarioError

logger = logging.getLogger(__name__)

CONTAINER_ROOT = "/orchestrator"
CONTAINER_PYTHON = "python3"


def remove_files_in_dir(directory: Path, suffixes: Iterable[str]) -> int:
    """Delete files ending in one of ``suffixes``; keyrings keep stale address files otherwise."""
    suffixes = tuple(suffixes)
    removed = 0
    if not directory.is_dir():
        return removed
    for path in directory.iterdir():
        if path.is_file() and path.name.endswith(suffixes):
            path.unlink()
            removed += 1
    return removed


def build_network(spec: ScenarioSpec, script: str) -> ContainerNetwork:
    entry_args = [f"{CONTAINER_ROOT}/{script}"]
    containers = [Container.from_spec(c, CONTAINER_PYTHON, entry_args) for c in spec.containers]
    return ContainerNetwork(
        spec.network, containers, spec.dockerfiles_dir, spec.logs_dir, spec.common_volumes
    )


def run_scenario(
    spec: ScenarioSpec,
    script: str,
    config: ScenarioConfig,
    prepare: Optional[Callable[[ScenarioSpec, ScenarioConfig], None]] = None,
    network_factory: Callable[[ScenarioSpec, str], ContainerNetwork] = build_network,
) -> bool:
    """
    Launch every role container, wait for all of them under the global
    timeout and report whether the whole scenario passed.

    A failing role or the timeout tears down every container. On an
    interrupt the containers are removed too, and the exit hook stays
    registered.
    """
    if prepare is not None:
        prepare(spec, config)
    network = network_factory(spec, script)
    atexit.register(network.stop_all)
    try:
        network.run_all()
        outcomes = network.wait_with_timeout_all(config.timeout)
    except ScenarioError as exc:
        network.stop_all()
        atexit.unregister(network.stop_all)
        logger.error("Scenario %s FAILED: %s", spec.name, exc)
        return False
    except BaseException:
        logger.error("Scenario %s interrupted, removing containers", spec.name)
        network.stop_all()
        raise
    atexit.unregister(network.stop_all)
    summary: Dict[str, Optional[int]] = {o.name: o.exit_code for o in outcomes}
    logger.info("Scenario %s PASSED: %s", spec.name, summary)
    return True
