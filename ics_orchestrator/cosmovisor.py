from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from .cancel import Cancellation
from .command import DaemonHandle, run
from .errors import DriverError, TeardownError
from .polling import wait_for_height

logger = logging.getLogger(__name__)

GAS_ARGS: List[str] = [
    "--gas",
    "auto",
    "--gas-adjustment",
    "1.3",
    "-y",
    "-b",
    "block",
]


class ChainDriver:
    """
    Drives one Cosmos SDK daemon, by default through ``cosmovisor run``.

    Every method is a single command; a non-zero exit or output that does
    not parse is a ``DriverError``.
    """

    def __init__(
        self,
        daemon_home: str,
        daemon_name: Optional[str] = None,
        rpc_url: str = "http://127.0.0.1:26657",
        use_cosmovisor: bool = True,
        from_key: str = "validator",
        env: Optional[Dict[str, str]] = None,
    ):
        self.home = Path(daemon_home)
        self.daemon_name = daemon_name
        self.rpc_url = rpc_url.rstrip("/")
        self.from_key = from_key
        self.gas_prices: Optional[str] = None
        if use_cosmovisor:
            self.base_cmd = ["cosmovisor", "run"]
        elif daemon_name:
            self.base_cmd = [daemon_name]
        else:
            raise DriverError("a daemon name is required when not running under cosmovisor")
        self.env = dict(env) if env is not None else os.environ.copy()
        self.env["DAEMON_HOME"] = str(self.home)
        if daemon_name:
            self.env["DAEMON_NAME"] = daemon_name

    @property
    def genesis_path(self) -> Path:
        return self.home / "config" / "genesis.json"

    @property
    def node_key_path(self) -> Path:
        return self.home / "config" / "node_key.json"

    @property
    def validator_key_path(self) -> Path:
        return self.home / "config" / "priv_validator_key.json"

    @property
    def app_toml_path(self) -> Path:
        return self.home / "config" / "app.toml"

    def run(self, *args: str) -> str:
        return run(self.base_cmd + list(args), env=self.env)

    def run_json(self, *args: str) -> Any:
        output = self.run(*args)
        try:
            return json.loads(output)
        except json.JSONDecodeError as exc:
            raise DriverError(f"unparsable JSON from '{' '.join(args)}'", output=output) from exc

    # setup

    def init(self, chain_id: str) -> None:
        self.config_set("chain-id", chain_id)
        self.config_set("keyring-backend", "test")
        self.run("init", "--overwrite", chain_id)

    def config_set(self, key: str, value: str) -> None:
        self.run("config", key, value)

    def keys_add(self, name: str) -> str:
        """Create a key in the test keyring and return its mnemonic."""
        created = self.run_json("keys", "add", name, "--output", "json")
        mnemonic = created.get("mnemonic") if isinstance(created, dict) else None
        if not mnemonic:
            raise DriverError(f"no mnemonic returned for key '{name}'")
        return mnemonic

    def get_addr(self, name: str) -> str:
        return self.run("keys", "show", name, "-a").strip()

    def add_genesis_account(self, name: str, coins: str) -> None:
        self.run("add-genesis-account", name, coins)

    def gentx(self, name: str, coins: str, chain_id: str) -> None:
        self.run("gentx", name, coins, "--chain-id", chain_id)

    def collect_gentxs(self) -> None:
        self.run("collect-gentxs")

    # transactions and queries

    def tx(self, *args: str, sign_with_key: bool = True) -> Any:
        cmd = ["tx", *args, *GAS_ARGS, "--output", "json"]
        if sign_with_key:
            cmd += ["--from", self.from_key]
        if self.gas_prices:
            cmd += ["--gas-prices", self.gas_prices]
        result = self.run_json(*cmd)
        code = result.get("code", 0) if isinstance(result, dict) else 0
        if code:
            raise DriverError(
                f"transaction '{' '.join(args[:2])}' failed with code {code}: {result.get('raw_log', '')}"
            )
        return result

    def query(self, *args: str) -> str:
        return self.run("query", *args)

    def query_json(self, *args: str) -> Any:
        return self.run_json("query", *args, "--output", "json")

    def get_balances(self, address: str) -> Dict[str, str]:
        data = self.query_json("bank", "balances", address)
        try:
            return {coin["denom"]: coin["amount"] for coin in data["balances"]}
        except (KeyError, TypeError) as exc:
            raise DriverError(f"unexpected balances output for {address}: {data}") from exc

    def bank_send(self, from_addr: str, to_addr: str, amount: str, denom: str) -> Any:
        # the sender is positional for `bank send`
        return self.tx("bank", "send", from_addr, to_addr, f"{amount}{denom}", sign_with_key=False)

    def ibc_transfer(self, channel: str, receiver: str, amount: str, denom: str,
                     port: str = "transfer") -> Any:
        return self.tx("ibc-transfer", "transfer", port, channel, receiver, f"{amount}{denom}")

    def consumer_genesis(self, consumer_id: str) -> str:
        return self.query("provider", "consumer-genesis", consumer_id, "-o", "json")

    def export(self) -> str:
        return run(self.base_cmd + ["export"], env=self.env, log_output=False)

    # node lifecycle

    def block_height(self) -> int:
        resp = requests.get(f"{self.rpc_url}/status", timeout=5)
        resp.raise_for_status()
        try:
            return int(resp.json()["result"]["sync_info"]["latest_block_height"])
        except (KeyError, TypeError, ValueError) as exc:
            raise DriverError(f"unexpected /status response from {self.rpc_url}") from exc

    def start(self, log_path: Path, tries: int, delay: float,
              cancellation: Optional[Cancellation] = None) -> DaemonHandle:
        """Start the node and return once it has produced its first block."""
        handle = DaemonHandle.spawn(
            self.daemon_name or "daemon", self.base_cmd + ["start"], log_path, env=self.env
        )
        try:
            wait_for_height(self, tries, delay, 1, cancellation)
        except Exception:
            try:
                handle.stop(10)
            except TeardownError as exc:
                logger.error("Could not stop %s after a failed start: %s", handle.name, exc)
            raise
        return handle

    def set_minimum_gas_price(self, price: str) -> None:
        text = self.app_toml_path.read_text(encoding="utf-8")
        updated, count = re.subn(
            r'^minimum-gas-prices\s*=\s*".*"$',
            f'minimum-gas-prices = "{price}"',
            text,
            flags=re.MULTILINE,
        )
        if count == 0:
            raise DriverError(f"no minimum-gas-prices entry in {self.app_toml_path}")
        self.app_toml_path.write_text(updated, encoding="utf-8")
        logger.info("Set minimum-gas-prices to %s", price)


def consensus_pubkey(priv_validator_key: str) -> str:
    """The ``--pubkey`` JSON for key assignment, taken from a ``priv_validator_key.json``."""
    try:
        key = json.loads(priv_validator_key)["pub_key"]["value"]
    except (json.JSONDecodeError, KeyError, TypeError) as exc:
        raise DriverError("unparsable priv_validator_key.json") from exc
    return json.dumps({"@type": "/cosmos.crypto.ed25519.PubKey", "key": key}, separators=(",", ":"))

