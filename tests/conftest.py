from __future__ import annotations

import json
import queue
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

from ics_orchestrator.config import ScenarioConfig
from ics_orchestrator.cosmovisor import ChainDriver
from ics_orchestrator.denom import ibc_denom
from ics_orchestrator.errors import DriverError, ScenarioError, ScenarioTimeoutError
from ics_orchestrator.messaging import Messenger
from ics_orchestrator.models import IbcPair, IbcSide

VALIDATOR_ADDR = "onomy1fk7lgmkd73mcr8xuyw727ys22t7mtz9g357w2h"
MNEMONIC = "abandon " * 23 + "art"
BASE_GENESIS = {
    "chain_id": "",
    "app_state": {
        "auth": {"accounts": []},
        "bank": {"balances": [], "supply": []},
        "staking": {"params": {"bond_denom": "stake"}},
        "gov": {"voting_params": {"voting_period": "172800s"}},
    },
}
APP_TOML = 'minimum-gas-prices = ""\npruning = "default"\n'


class QueueMessenger(Messenger):
    """In-memory link end that records every send and receive."""

    def __init__(self, inbox: "queue.Queue[bytes]", outbox: "queue.Queue[bytes]",
                 peer: str, timeout: float = 5.0):
        self.inbox = inbox
        self.outbox = outbox
        self.peer = peer
        self.timeout = timeout
        self.trace: List[Tuple[str, str]] = []
        self.closed = False

    @classmethod
    def pair(cls, a: str, b: str, timeout: float = 5.0) -> Tuple["QueueMessenger", "QueueMessenger"]:
        q1: "queue.Queue[bytes]" = queue.Queue()
        q2: "queue.Queue[bytes]" = queue.Queue()
        return cls(q1, q2, b, timeout), cls(q2, q1, a, timeout)

    def send(self, step, payload=None) -> None:
        self.trace.append(("send", getattr(step, "value", step)))
        super().send(step, payload)

    def recv(self, step):
        self.trace.append(("recv", getattr(step, "value", step)))
        return super().recv(step)

    def _send_frame(self, frame: bytes) -> None:
        self.outbox.put(frame)

    def _recv_frame(self) -> bytes:
        try:
            return self.inbox.get(timeout=self.timeout)
        except queue.Empty:
            raise ScenarioTimeoutError(f"nothing received from {self.peer} within {self.timeout}s")

    def close(self) -> None:
        self.closed = True


class FakeHandle:
    def __init__(self, name: str):
        self.name = name
        self.stopped = False

    def stop(self, timeout: float) -> None:
        if self.stopped:
            raise ScenarioError(f"{self.name} stopped twice")
        self.stopped = True


class FakeLedger:
    """Balances of both chains plus the channel routing between them."""

    def __init__(self, routes: Dict[Tuple[str, str], Tuple[str, str]]):
        self.routes = routes
        self.balances: Dict[str, Dict[str, Dict[str, int]]] = {}
        self.vouchers: Dict[str, str] = {}
        self.txs: List[Tuple[str, Tuple[str, ...]]] = []

    def credit(self, chain_id: str, addr: str, denom: str, amount: int) -> None:
        account = self.balances.setdefault(chain_id, {}).setdefault(addr, {})
        account[denom] = account.get(denom, 0) + amount

    def debit(self, chain_id: str, addr: str, denom: str, amount: int) -> None:
        account = self.balances.setdefault(chain_id, {}).setdefault(addr, {})
        if account.get(denom, 0) < amount:
            raise DriverError(f"insufficient {denom} on {chain_id} for {addr}")
        account[denom] -= amount

    def transfer(self, src_chain: str, src_channel: str, receiver: str, amount: int, denom: str) -> None:
        dst_chain, dst_channel = self.routes[(src_chain, src_channel)]
        if denom in self.vouchers:
            self.credit(dst_chain, receiver, self.vouchers[denom], amount)
        else:
            voucher = ibc_denom("transfer", dst_channel, denom)
            self.vouchers[voucher] = denom
            self.credit(dst_chain, receiver, voucher, amount)


class FakeChain(ChainDriver):
    """A chain driver whose node is a dictionary; file handling stays real."""

    def __init__(self, home: Path, chain_id: str, ledger: FakeLedger):
        super().__init__(str(home), f"{chain_id}d", env={})
        self.chain_id = chain_id
        self.ledger = ledger
        self.height = 0
        self.handles: List[FakeHandle] = []
        self.started_with_gas: List[Optional[str]] = []

    def run(self, *args: str) -> str:
        raise AssertionError(f"unexpected command {args}")

    def init(self, chain_id: str) -> None:
        config = self.home / "config"
        config.mkdir(parents=True, exist_ok=True)
        self.genesis_path.write_text(json.dumps(dict(BASE_GENESIS, chain_id=chain_id)))
        self.app_toml_path.write_text(APP_TOML)
        self.node_key_path.write_text(json.dumps({"priv_key": {"value": f"{chain_id}-node"}}))
        self.validator_key_path.write_text(
            json.dumps({"pub_key": {"type": "tendermint/PubKeyEd25519", "value": f"{chain_id}-pub"}})
        )

    def keys_add(self, name: str) -> str:
        return MNEMONIC

    def get_addr(self, name: str) -> str:
        return VALIDATOR_ADDR

    def add_genesis_account(self, name: str, coins: str) -> None:
        self.ledger.txs.append((self.chain_id, ("add-genesis-account", name, coins)))

    def gentx(self, name: str, coins: str, chain_id: str) -> None:
        self.ledger.txs.append((self.chain_id, ("gentx", name, coins, chain_id)))

    def collect_gentxs(self) -> None:
        self.ledger.txs.append((self.chain_id, ("collect-gentxs",)))

    def tx(self, *args: str, sign_with_key: bool = True):
        self.ledger.txs.append((self.chain_id, args))
        return {"code": 0}

    def query_json(self, *args: str):
        if args[:2] == ("upgrade", "applied"):
            return {"header": {"height": "20"}}
        raise AssertionError(f"unexpected query {args}")

    def get_balances(self, address: str) -> Dict[str, str]:
        account = self.ledger.balances.get(self.chain_id, {}).get(address, {})
        return {denom: str(amount) for denom, amount in account.items() if amount}

    def bank_send(self, from_addr: str, to_addr: str, amount: str, denom: str):
        self.ledger.debit(self.chain_id, from_addr, denom, int(amount))
        self.ledger.credit(self.chain_id, to_addr, denom, int(amount))
        return {"code": 0}

    def ibc_transfer(self, channel: str, receiver: str, amount: str, denom: str, port: str = "transfer"):
        self.ledger.txs.append((self.chain_id, ("ibc-transfer", channel, receiver, amount, denom)))
        self.ledger.debit(self.chain_id, self.get_addr(self.from_key), denom, int(amount))
        self.ledger.transfer(self.chain_id, channel, receiver, int(amount), denom)
        return {"code": 0}

    def consumer_genesis(self, consumer_id: str) -> str:
        return json.dumps({"params": {"enabled": True}, "provider_client_id": "07-tendermint-0"})

    def export(self) -> str:
        return json.dumps({"chain_id": self.chain_id, "app_state": {}})

    def block_height(self) -> int:
        self.height += 1
        return self.height

    def start(self, log_path: Path, tries: int, delay: float, cancellation=None) -> FakeHandle:
        handle = FakeHandle(f"{self.chain_id}d")
        self.handles.append(handle)
        self.started_with_gas.append(self.gas_prices)
        return handle


class FakeRelay:
    def __init__(self, home: Path, pair: IbcPair):
        self.home = home
        self.pair = pair
        self.keys: List[str] = []
        self.handles: List[FakeHandle] = []
        self.acks_checked = False
        self.gas_denoms: Dict[str, str] = {}

    def keys_add(self, chain_id: str, mnemonic_file: Path) -> None:
        assert mnemonic_file.read_text() == MNEMONIC
        self.keys.append(chain_id)

    def setup_pair(self, a_chain: str, b_chain: str) -> IbcPair:
        assert (a_chain, b_chain) == (self.pair.a.chain_id, self.pair.b.chain_id)
        return self.pair

    def start(self, log_path: Path) -> FakeHandle:
        handle = FakeHandle("hermes")
        self.handles.append(handle)
        return handle

    def check_acks(self, pair: IbcPair) -> None:
        self.acks_checked = True

    def set_gas_price_denom(self, chain_id: str, denom: str) -> None:
        self.gas_denoms[chain_id] = denom


@pytest.fixture
def ibc_pair() -> IbcPair:
    return IbcPair(
        a=IbcSide("market", "connection-0", "channel-1", "channel-0", "consumer"),
        b=IbcSide("onomy", "connection-0", "channel-0", "channel-1", "provider"),
    )


@pytest.fixture
def ledger(ibc_pair: IbcPair) -> FakeLedger:
    ledger = FakeLedger({
        ("onomy", ibc_pair.b.transfer_channel): ("market", ibc_pair.a.transfer_channel),
        ("market", ibc_pair.a.transfer_channel): ("onomy", ibc_pair.b.transfer_channel),
    })
    ledger.credit("onomy", VALIDATOR_ADDR, "anom", 10**24)
    return ledger


@pytest.fixture
def config(tmp_path: Path) -> ScenarioConfig:
    logs = tmp_path / "logs"
    logs.mkdir()
    return ScenarioConfig(
        scenario="ics_basic",
        logs_dir=str(logs),
        timeout=5.0,
        tries=10,
        delay=0.0,
        block_tries=50,
        block_delay=0.0,
        stop_timeout=1.0,
    )
