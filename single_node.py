#!/usr/bin/env python3
"""Start one provider node, let it produce a few blocks and export its state."""

import sys

from ics_orchestrator.cli import main
from ics_orchestrator.cosmovisor import ChainDriver
from ics_orchestrator.roles import SingleNodeRole

ROLES = {
    "main": lambda config, cancellation: SingleNodeRole(
        config,
        ChainDriver(config.require("daemon_home"), config.daemon_name, config.rpc_url),
        cancellation,
    ),
}

if __name__ == "__main__":
    sys.exit(main("single_node", "single_node.py", ROLES))
