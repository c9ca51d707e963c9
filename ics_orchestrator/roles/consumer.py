from __future__ import annotations

import json
import logging
from typing import List, Optional

from ..cancel import Cancellation
from ..config import CONSUMER_BASE_DENOM, GAS_PRICE, PROVIDER_BASE_DENOM, ScenarioConfig
from ..cosmovisor import ChainDriver
from ..denom import ONOMY_IBC_NOM, reprefix_bech32
from ..errors import CheckError
from ..messaging import NetMessenger
from ..models import TRANSFER_PORT, IbcPair
from ..polling import wait_for_num_blocks
from ..protocol import PROVIDER, Step
from ..setups import consumer_setup
from .base import Role
from .provider import ROUND_TRIP_ADDR, ROUND_TRIP_AMOUNT, SETTLE_BLOCKS, TRANSFER_AMOUNT

logger = logging.getLogger(__name__)

LOCAL_TRANSFER_AMOUNT = "5000"


class ConsumerRole(Role):
    """The consumer chain; it only talks to the provider."""

    name = "consumer"

    def __init__(self, config: ScenarioConfig, chain: ChainDriver,
                 cancellation: Optional[Cancellation] = None):
        super().__init__(config, cancellation)
        self.chain = chain
        self.address: Optional[str] = None
        self.ibc_pair: Optional[IbcPair] = None
        self.ibc_nom: Optional[str] = None

    @property
    def chain_id(self) -> str:
        return self.config.consumer_chain_id

    def open_links(self) -> None:
        self.links[PROVIDER] = NetMessenger.listen_single_connect(
            f"0.0.0.0:{self.config.consumer_port}", self.config.timeout, self.cancellation
        )

    @property
    def provider(self):
        return self.links[PROVIDER]

    def steps(self) -> List:
        return [
            self.await_bootstrap,
            self.start_local_chain,
            self.signal_ready,
            self.await_ibc_pair,
            self.derive_denom,
            self.verify_balance,
            self.update_gas_price,
            self.verify_local_transfer,
            self.send_reverse_transfer,
            self.await_settlement,
            self.signal_round_trip,
            self.exchange_termination,
            self.stop_local_chain,
            self.export_state,
        ]

    def await_bootstrap(self) -> None:
        ccvconsumer = self.provider.recv(Step.CONSUMER_GENESIS)
        accounts = self.provider.recv(Step.GENESIS_ACCOUNTS)
        bank = self.provider.recv(Step.GENESIS_BANK)
        node_key = self.provider.recv(Step.NODE_KEY)
        validator_key = self.provider.recv(Step.VALIDATOR_KEY)

        genesis = consumer_setup(self.chain, self.chain_id, ccvconsumer, accounts, bank)
        self.config.log_path(f"{self.chain_id}_genesis.json").write_text(
            json.dumps(genesis), encoding="utf-8"
        )
        self.chain.node_key_path.write_text(node_key, encoding="utf-8")
        self.chain.validator_key_path.write_text(validator_key, encoding="utf-8")
        self.chain.set_minimum_gas_price(f"{GAS_PRICE}{CONSUMER_BASE_DENOM}")

    def start_local_chain(self) -> None:
        self.daemons["chain"] = self.chain.start(
            self.config.log_path(f"{self.chain_id}d_bootstrap_runner.log"),
            self.config.block_tries, self.config.block_delay, self.cancellation,
        )
        self.address = self.chain.get_addr("validator")

    def signal_ready(self) -> None:
        self.provider.send(Step.CONSUMER_READY)

    def await_ibc_pair(self) -> None:
        self.ibc_pair = IbcPair.from_dict(self.provider.recv(Step.IBC_PAIR))

    def derive_denom(self) -> None:
        # the voucher name depends on the consumer's end of the transfer channel
        self.ibc_nom = self.ibc_pair.a.ibc_denom(TRANSFER_PORT, PROVIDER_BASE_DENOM)
        if self.ibc_nom != ONOMY_IBC_NOM:
            raise CheckError(f"bridged denom {self.ibc_nom} does not match {ONOMY_IBC_NOM}")

    def verify_balance(self) -> None:
        balances = self.chain.get_balances(self.address)
        if balances.get(self.ibc_nom) != TRANSFER_AMOUNT:
            raise CheckError(
                f"{self.address} holds {balances.get(self.ibc_nom)!r} of {self.ibc_nom}, "
                f"expected {TRANSFER_AMOUNT}"
            )

    def update_gas_price(self) -> None:
        self.stop_daemon("chain")
        gas_price = f"{GAS_PRICE}{self.ibc_nom}"
        self.chain.set_minimum_gas_price(gas_price)
        self.chain.gas_prices = gas_price
        self.daemons["chain"] = self.chain.start(
            self.config.log_path(f"{self.chain_id}d_runner.log"),
            self.config.block_tries, self.config.block_delay, self.cancellation,
        )
        self.provider.send(Step.GAS_DENOM, self.ibc_nom)
        self.provider.recv(Step.RELAYER_RESTARTED)
        logger.info("restarted with new gas denom")

    def verify_local_transfer(self) -> None:
        dst_addr = reprefix_bech32(ROUND_TRIP_ADDR, self.config.consumer_prefix)
        self.chain.bank_send(self.address, dst_addr, LOCAL_TRANSFER_AMOUNT, self.ibc_nom)
        balance = self.chain.get_balances(dst_addr).get(self.ibc_nom)
        if balance != LOCAL_TRANSFER_AMOUNT:
            raise CheckError(f"{dst_addr} holds {balance!r} of {self.ibc_nom}, expected {LOCAL_TRANSFER_AMOUNT}")

    def send_reverse_transfer(self) -> None:
        test_addr = reprefix_bech32(ROUND_TRIP_ADDR, self.config.provider_prefix)
        logger.info("sending back to %s", test_addr)
        self.chain.ibc_transfer(
            self.ibc_pair.a.transfer_channel, test_addr, ROUND_TRIP_AMOUNT, self.ibc_nom
        )

    def await_settlement(self) -> None:
        wait_for_num_blocks(
            self.chain, SETTLE_BLOCKS, self.config.block_tries, self.config.block_delay,
            self.cancellation,
        )

    def signal_round_trip(self) -> None:
        self.provider.send(Step.ROUND_TRIP_DONE)

    def exchange_termination(self) -> None:
        self.provider.recv(Step.TERMINATE)
        self.provider.send(Step.TERMINATE_ACK)

    def stop_local_chain(self) -> None:
        self.stop_daemon("chain")

    def export_state(self) -> None:
        self.config.log_path(f"{self.chain_id}_export.json").write_text(self.chain.export(), encoding="utf-8")
