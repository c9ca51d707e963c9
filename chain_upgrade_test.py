#!/usr/bin/env python3
"""Software-upgrade smoke test: one node upgraded in place by cosmovisor."""

import sys

from ics_orchestrator.cli import main
from ics_orchestrator.cosmovisor import ChainDriver
from ics_orchestrator.roles import ChainUpgradeRole

ROLES = {
    "main": lambda config, cancellation: ChainUpgradeRole(
        config,
        ChainDriver(config.require("daemon_home"), config.require("daemon_name"), config.rpc_url),
        cancellation,
    ),
}

if __name__ == "__main__":
    sys.exit(main("chain_upgrade_test", "chain_upgrade_test.py", ROLES))
