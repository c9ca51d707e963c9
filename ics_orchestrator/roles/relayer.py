from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from ..cancel import Cancellation
from ..config import ScenarioConfig
from ..hermes import HermesDriver
from ..messaging import NetMessenger
from ..models import IbcPair
from ..protocol import PROVIDER, Step
from .base import Role

logger = logging.getLogger(__name__)


class RelayerRole(Role):
    """Hermes: bridges the two chains and reports the channels it made."""

    name = "hermes"

    def __init__(self, config: ScenarioConfig, relay: HermesDriver,
                 cancellation: Optional[Cancellation] = None):
        super().__init__(config, cancellation)
        self.relay = relay
        self.ibc_pair: Optional[IbcPair] = None

    def open_links(self) -> None:
        self.links[PROVIDER] = NetMessenger.listen_single_connect(
            f"0.0.0.0:{self.config.relayer_port}", self.config.timeout, self.cancellation
        )

    @property
    def provider(self):
        return self.links[PROVIDER]

    @property
    def mnemonic_path(self) -> Path:
        return self.relay.home / "mnemonic.txt"

    def steps(self) -> List:
        return [
            self.import_keys,
            self.await_chains_ready,
            self.establish_channels,
            self.start_relaying,
            self.verify_acks,
            self.report_pair,
            self.restart_with_gas_denom,
            self.await_termination,
            self.stop_relaying,
        ]

    def import_keys(self) -> None:
        mnemonic = self.provider.recv(Step.MNEMONIC)
        self.mnemonic_path.parent.mkdir(parents=True, exist_ok=True)
        self.mnemonic_path.write_text(mnemonic, encoding="utf-8")
        for chain_id in (self.config.provider_chain_id, self.config.consumer_chain_id):
            self.relay.keys_add(chain_id, self.mnemonic_path)

    def await_chains_ready(self) -> None:
        self.provider.recv(Step.CHAINS_READY)

    def establish_channels(self) -> None:
        # the consumer must initiate the ICS handshake, so it is the a-chain
        self.ibc_pair = self.relay.setup_pair(
            self.config.consumer_chain_id, self.config.provider_chain_id
        )
        logger.info("IbcPair: %s", self.ibc_pair)

    def start_relaying(self) -> None:
        self.daemons["relayer"] = self.relay.start(
            self.config.log_path("hermes_bootstrap_runner.log")
        )

    def verify_acks(self) -> None:
        self.relay.check_acks(self.ibc_pair)

    def report_pair(self) -> None:
        self.provider.send(Step.IBC_PAIR, self.ibc_pair.to_dict())

    def restart_with_gas_denom(self) -> None:
        ibc_nom = self.provider.recv(Step.GAS_DENOM)
        self.stop_daemon("relayer")
        self.relay.set_gas_price_denom(self.config.consumer_chain_id, ibc_nom)
        self.daemons["relayer"] = self.relay.start(self.config.log_path("hermes_runner.log"))
        self.provider.send(Step.RELAYER_RESTARTED)

    def await_termination(self) -> None:
        self.provider.recv(Step.TERMINATE)
        self.provider.send(Step.TERMINATE_ACK)

    def stop_relaying(self) -> None:
        self.stop_daemon("relayer")
