from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Callable, Dict, Mapping, Optional, Sequence

from .cancel import Cancellation, install_exit_handlers, install_signal_handlers
from .config import ScenarioConfig, ScenarioSpec, default_scenarios_path, load_scenarios
from .errors import ConfigurationError, ScenarioError
from .roles import Role
from .scenario import run_scenario

logger = logging.getLogger(__name__)

RoleFactory = Callable[[ScenarioConfig, Cancellation], Role]
Prepare = Callable[[ScenarioSpec, ScenarioConfig], None]


def build_parser(description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument(
        "--entry-name",
        type=str,
        help="Role to run inside a container. Without it this process launches the whole scenario.",
    )
    parser.add_argument("--daemon-name", type=str, help="Chain daemon binary (default: $DAEMON_NAME)")
    parser.add_argument("--daemon-home", type=str, help="Chain home directory (default: $DAEMON_HOME)")
    parser.add_argument("--hermes-home", type=str, help="Hermes home directory (default: $HERMES_HOME)")
    parser.add_argument("--logs-dir", type=str, help="Directory for role logs and exports", default=None)
    parser.add_argument("--timeout", type=float, help="Global scenario timeout in seconds")
    parser.add_argument(
        "--scenarios",
        type=str,
        help="Scenario table used by the launcher",
        default=str(default_scenarios_path()),
    )
    parser.add_argument(
        "--imageBulk",
        type=str,
        default="{}",
        help='Per-container image overrides, e.g. \'{"hermes": "my/hermes:dev"}\'',
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity.",
    )
    return parser


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger().setLevel(level.upper())


def main(
    scenario: str,
    script: str,
    roles: Mapping[str, RoleFactory],
    prepare: Optional[Prepare] = None,
    argv: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> int:
    """Entry point shared by the scenario scripts; returns the process exit code."""
    args = build_parser(f"{scenario} scenario").parse_args(argv)
    setup_logging(args.log_level)
    environ = os.environ if environ is None else environ

    try:
        config = ScenarioConfig.from_args(scenario, args, environ)
        if config.entry_name is None:
            specs: Dict[str, ScenarioSpec] = load_scenarios(Path(args.scenarios), args.imageBulk)
            if scenario not in specs:
                raise ConfigurationError(f"scenario '{scenario}' not found in {args.scenarios}")
            install_exit_handlers()
            return 0 if run_scenario(specs[scenario], script, config, prepare) else 1

        factory = roles.get(config.entry_name)
        if factory is None:
            raise ConfigurationError(f"entry_name \"{config.entry_name}\" is not recognized")
        cancellation = Cancellation()
        install_signal_handlers(cancellation)
        factory(config, cancellation).run()
    except ScenarioError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 1
    return 0
