from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional

from ..cancel import Cancellation
from ..config import PROVIDER_BASE_DENOM, ScenarioConfig
from ..cosmovisor import ChainDriver, consensus_pubkey
from ..denom import reprefix_bech32
from ..errors import CheckError
from ..genesis import read_genesis
from ..messaging import NetMessenger
from ..models import IbcPair
from ..polling import wait_for_height, wait_for_num_blocks
from ..protocol import CONSUMER, RELAYER, Step
from ..setups import provider_setup
from .base import Role

logger = logging.getLogger(__name__)

PROPOSAL_ID = "1"
CONSUMER_GENESIS_HEIGHT = 5
TRANSFER_AMOUNT = "100000"
SETTLE_BLOCKS = 4
ROUND_TRIP_ADDR = "onomy1gk7lg5kd73mcr8xuyw727ys22t7mtz9gh07ul3"
ROUND_TRIP_AMOUNT = "5000"


def consumer_addition_proposal(consumer_id: str) -> dict:
    return {
        "title": "Propose the addition of a new chain",
        "description": f"add consumer chain {consumer_id}",
        "chain_id": consumer_id,
        "initial_height": {"revision_number": 0, "revision_height": 1},
        "genesis_hash": "Z2VuX2hhc2g=",
        "binary_hash": "YmluX2hhc2g=",
        "spawn_time": "2023-05-18T01:15:49.83019476-05:00",
        "consumer_redistribution_fraction": "0.75",
        "blocks_per_distribution_transmission": 1000,
        "historical_entries": 10000,
        "ccv_timeout_period": 2419200000000000,
        "transfer_timeout_period": 3600000000000,
        "unbonding_period": 1728000000000000,
        "deposit": f"2000000000000000000000{PROVIDER_BASE_DENOM}",
    }


class ProviderRole(Role):
    """The provider chain (``onomyd``); the only role connected to both peers."""

    name = "onomyd"

    def __init__(self, config: ScenarioConfig, chain: ChainDriver,
                 cancellation: Optional[Cancellation] = None):
        super().__init__(config, cancellation)
        self.chain = chain
        self.mnemonic: Optional[str] = None
        self.address: Optional[str] = None
        self.ccvconsumer_state: Optional[str] = None
        self.ibc_pair: Optional[IbcPair] = None

    def open_links(self) -> None:
        c = self.config
        self.links[RELAYER] = NetMessenger.connect(
            c.tries, c.delay, c.relayer_address, c.timeout, self.cancellation
        )
        self.links[CONSUMER] = NetMessenger.connect(
            c.tries, c.delay, c.consumer_address, c.timeout, self.cancellation
        )

    @property
    def relayer(self):
        return self.links[RELAYER]

    @property
    def consumer(self):
        return self.links[CONSUMER]

    def steps(self) -> List:
        return [
            self.init_chain,
            self.start_local_chain,
            self.submit_proposal,
            self.vote_proposal,
            self.assign_consensus_key,
            self.await_height,
            self.extract_consumer_genesis,
            self.forward_secrets,
            self.forward_bootstrap,
            self.await_consumer_ready,
            self.notify_relayer,
            self.receive_ibc_pair,
            self.transfer_asset,
            self.await_settlement,
            self.forward_ibc_pair,
            self.forward_gas_denom,
            self.verify_round_trip,
            self.exchange_termination,
            self.stop_local_chain,
            self.export_state,
        ]

    def init_chain(self) -> None:
        self.mnemonic = provider_setup(self.chain, self.config.provider_chain_id)
        self.address = self.chain.get_addr("validator")

    def start_local_chain(self) -> None:
        self.daemons["chain"] = self.chain.start(
            self.config.log_path(f"{self.name}_runner.log"),
            self.config.block_tries, self.config.block_delay, self.cancellation,
        )

    def submit_proposal(self) -> None:
        # the deposit is part of the proposal itself
        proposal_path = Path(self.chain.home) / "config" / "consumer_add_proposal.json"
        proposal_path.write_text(
            json.dumps(consumer_addition_proposal(self.config.consumer_chain_id), indent=4),
            encoding="utf-8",
        )
        self.chain.tx("gov", "submit-proposal", "consumer-addition", str(proposal_path))

    def vote_proposal(self) -> None:
        self.chain.tx("gov", "vote", PROPOSAL_ID, "yes")

    def assign_consensus_key(self) -> None:
        # must happen before the consumer genesis is generated
        pubkey = consensus_pubkey(self.chain.validator_key_path.read_text(encoding="utf-8"))
        self.chain.tx("provider", "assign-consensus-key", self.config.consumer_chain_id, pubkey)

    def await_height(self) -> None:
        wait_for_height(
            self.chain, self.config.tries, self.config.delay,
            CONSUMER_GENESIS_HEIGHT, self.cancellation,
        )

    def extract_consumer_genesis(self) -> None:
        self.ccvconsumer_state = self.chain.consumer_genesis(self.config.consumer_chain_id)

    def forward_secrets(self) -> None:
        self.relayer.send(Step.MNEMONIC, self.mnemonic)

    def forward_bootstrap(self) -> None:
        genesis = read_genesis(self.chain.genesis_path)
        self.consumer.send(Step.CONSUMER_GENESIS, self.ccvconsumer_state)
        self.consumer.send(Step.GENESIS_ACCOUNTS, json.dumps(genesis["app_state"]["auth"]["accounts"]))
        self.consumer.send(Step.GENESIS_BANK, json.dumps(genesis["app_state"]["bank"]))
        # the consumer validates with the provider's keys
        self.consumer.send(Step.NODE_KEY, self.chain.node_key_path.read_text(encoding="utf-8"))
        self.consumer.send(Step.VALIDATOR_KEY, self.chain.validator_key_path.read_text(encoding="utf-8"))

    def await_consumer_ready(self) -> None:
        self.consumer.recv(Step.CONSUMER_READY)

    def notify_relayer(self) -> None:
        self.relayer.send(Step.CHAINS_READY)

    def receive_ibc_pair(self) -> None:
        self.ibc_pair = IbcPair.from_dict(self.relayer.recv(Step.IBC_PAIR))
        logger.info("IbcPair: %s", self.ibc_pair)

    def transfer_asset(self) -> None:
        receiver = reprefix_bech32(self.address, self.config.consumer_prefix)
        self.chain.ibc_transfer(
            self.ibc_pair.b.transfer_channel, receiver, TRANSFER_AMOUNT, PROVIDER_BASE_DENOM
        )

    def await_settlement(self) -> None:
        wait_for_num_blocks(
            self.chain, SETTLE_BLOCKS, self.config.block_tries, self.config.block_delay,
            self.cancellation,
        )

    def forward_ibc_pair(self) -> None:
        self.consumer.send(Step.IBC_PAIR, self.ibc_pair.to_dict())

    def forward_gas_denom(self) -> None:
        ibc_nom = self.consumer.recv(Step.GAS_DENOM)
        self.relayer.send(Step.GAS_DENOM, ibc_nom)
        self.relayer.recv(Step.RELAYER_RESTARTED)
        self.consumer.send(Step.RELAYER_RESTARTED)

    def verify_round_trip(self) -> None:
        self.consumer.recv(Step.ROUND_TRIP_DONE)
        # the bridged NOM must have unwrapped back into plain anom
        balance = self.chain.get_balances(ROUND_TRIP_ADDR).get(PROVIDER_BASE_DENOM)
        if balance != ROUND_TRIP_AMOUNT:
            raise CheckError(
                f"{ROUND_TRIP_ADDR} holds {balance!r}{PROVIDER_BASE_DENOM}, expected {ROUND_TRIP_AMOUNT}"
            )

    def exchange_termination(self) -> None:
        self.relayer.send(Step.TERMINATE)
        self.consumer.send(Step.TERMINATE)
        self.relayer.recv(Step.TERMINATE_ACK)
        self.consumer.recv(Step.TERMINATE_ACK)

    def stop_local_chain(self) -> None:
        self.stop_daemon("chain")

    def export_state(self) -> None:
        self.config.log_path(f"{self.name}_export.json").write_text(self.chain.export(), encoding="utf-8")
