"""Single-container scenarios: a plain node and a cosmovisor upgrade smoke test."""

from __future__ import annotations

import logging
from typing import List, Optional

from ..cancel import Cancellation
from ..config import PROVIDER_BASE_DENOM, ScenarioConfig
from ..cosmovisor import ChainDriver
from ..errors import CheckError
from ..polling import wait_for_height, wait_for_num_blocks
from ..setups import provider_setup
from .base import Role
from .provider import PROPOSAL_ID

logger = logging.getLogger(__name__)

UPGRADE_NAME = "v1.1.0"
UPGRADE_HEIGHT = 20
POST_UPGRADE_BLOCKS = 3


class SingleNodeRole(Role):
    name = "single_node"

    def __init__(self, config: ScenarioConfig, chain: ChainDriver,
                 cancellation: Optional[Cancellation] = None):
        super().__init__(config, cancellation)
        self.chain = chain

    def steps(self) -> List:
        return [self.init_chain, self.start_local_chain, self.await_blocks,
                self.stop_local_chain, self.export_state]

    def init_chain(self) -> None:
        provider_setup(self.chain, self.config.provider_chain_id)

    def start_local_chain(self) -> None:
        self.daemons["chain"] = self.chain.start(
            self.config.log_path(f"{self.name}_runner.log"),
            self.config.block_tries, self.config.block_delay, self.cancellation,
        )

    def await_blocks(self) -> None:
        wait_for_num_blocks(
            self.chain, 3, self.config.block_tries, self.config.block_delay, self.cancellation
        )

    def stop_local_chain(self) -> None:
        self.stop_daemon("chain")

    def export_state(self) -> None:
        self.config.log_path(f"{self.name}_export.json").write_text(self.chain.export(), encoding="utf-8")


class ChainUpgradeRole(SingleNodeRole):
    """
    Governance-driven software upgrade under cosmovisor.

    The upgrade binary must already be installed under
    ``$DAEMON_HOME/cosmovisor/upgrades/<name>/bin``; cosmovisor swaps it in
    when the chain halts at the upgrade height.
    """

    name = "chain_upgrade"

    def steps(self) -> List:
        return [
            self.init_chain,
            self.start_local_chain,
            self.submit_upgrade_proposal,
            self.vote_proposal,
            self.await_upgrade,
            self.verify_upgrade,
            self.stop_local_chain,
            self.export_state,
        ]

    def submit_upgrade_proposal(self) -> None:
        self.chain.tx(
            "gov", "submit-proposal", "software-upgrade", UPGRADE_NAME,
            "--upgrade-height", str(UPGRADE_HEIGHT),
            "--title", f"upgrade to {UPGRADE_NAME}",
            "--description", "chain upgrade smoke test",
            "--deposit", f"2000000000000000000000{PROVIDER_BASE_DENOM}",
        )

    def vote_proposal(self) -> None:
        self.chain.tx("gov", "vote", PROPOSAL_ID, "yes")

    def await_upgrade(self) -> None:
        wait_for_height(
            self.chain, self.config.block_tries, self.config.block_delay,
            UPGRADE_HEIGHT + POST_UPGRADE_BLOCKS, self.cancellation,
        )

    def verify_upgrade(self) -> None:
        applied = self.chain.query_json("upgrade", "applied", UPGRADE_NAME)
        height = applied.get("header", {}).get("height") if isinstance(applied, dict) else None
        if str(height) != str(UPGRADE_HEIGHT):
            raise CheckError(f"upgrade {UPGRADE_NAME} applied at {height!r}, expected {UPGRADE_HEIGHT}")
        logger.info("upgrade %s applied at height %s", UPGRADE_NAME, height)
