from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, List, Optional, Tuple

from .command import DaemonHandle, run
from .errors import DriverError
from .models import TRANSFER_PORT, IbcPair, IbcSide

logger = logging.getLogger(__name__)

CONSUMER_PORT = "consumer"
PROVIDER_PORT = "provider"

GLOBAL_CONFIG = """[global]
log_level = 'info'

[mode.clients]
enabled = true
refresh = true
misbehaviour = true

[mode.connections]
enabled = true

[mode.channels]
enabled = true

[mode.packets]
enabled = true
clear_interval = 100
clear_on_start = true
tx_confirmation = true

[rest]
enabled = false
host = '127.0.0.1'
port = 3000

[telemetry]
enabled = false
host = '127.0.0.1'
port = 3001
"""


@dataclass(slots=True)
class HermesChainConfig:
    chain_id: str
    address_prefix: str
    host: str
    gas_denom: str
    ccv_consumer_chain: bool = False
    key_name: str = "validator"
    gas_price: str = "0.01"

    def render(self) -> str:
        return f"""
[[chains]]
id = '{self.chain_id}'
rpc_addr = 'http://{self.host}:26657'
grpc_addr = 'http://{self.host}:9090'
event_source = {{ mode = 'push', url = 'ws://{self.host}:26657/websocket', batch_delay = '200ms' }}
rpc_timeout = '10s'
account_prefix = '{self.address_prefix}'
key_name = '{self.key_name}'
store_prefix = 'ibc'
default_gas = 100000
max_gas = 3000000
gas_price = {{ price = {self.gas_price}, denom = '{self.gas_denom}' }}
gas_multiplier = 1.1
max_msg_num = 30
max_tx_size = 2097152
clock_drift = '5s'
max_block_time = '30s'
trusting_period = '14days'
trust_threshold = {{ numerator = '1', denominator = '3' }}
ccv_consumer_chain = {'true' if self.ccv_consumer_chain else 'false'}
"""


def write_hermes_config(chains: Iterable[HermesChainConfig], path: Path) -> Path:
    text = GLOBAL_CONFIG + "".join(chain.render() for chain in chains)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    logger.info("Wrote hermes config to %s", path)
    return path


def set_gas_price_denom(config_text: str, chain_id: str, denom: str) -> str:
    """Return ``config_text`` with the gas price denomination of ``chain_id`` replaced."""
    blocks = re.split(r"(?m)^(?=\[\[chains\]\])", config_text)
    found = False
    for i, block in enumerate(blocks):
        if re.search(rf"(?m)^id\s*=\s*'{re.escape(chain_id)}'\s*$", block):
            blocks[i], count = re.subn(
                r"(?m)^gas_price\s*=\s*\{\s*price\s*=\s*([^,]+),\s*denom\s*=\s*'[^']*'\s*\}",
                lambda m: f"gas_price = {{ price = {m.group(1).strip()}, denom = '{denom}' }}",
                block,
            )
            found = found or count > 0
    if not found:
        raise DriverError(f"no gas_price entry for chain '{chain_id}' in hermes config")
    return "".join(blocks)


def parse_json_output(output: str) -> Any:
    """Return the ``result`` of the final status line hermes prints with ``--json``."""
    for line in reversed(output.strip().splitlines()):
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict) and "status" in data:
            if data["status"] != "success":
                raise DriverError(f"hermes reported {data['status']}: {data.get('result')}")
            return data.get("result")
    raise DriverError("no status line in hermes output", output=output)


class HermesDriver:
    def __init__(self, hermes_home: str, binary: str = "hermes"):
        self.home = Path(hermes_home)
        self.binary = binary

    @property
    def config_path(self) -> Path:
        return self.home / "config.toml"

    def run(self, *args: str) -> Any:
        output = run([self.binary, "--config", str(self.config_path), "--json", *args])
        return parse_json_output(output)

    def keys_add(self, chain_id: str, mnemonic_file: Path) -> None:
        self.run("keys", "add", "--chain", chain_id, "--mnemonic-file", str(mnemonic_file))

    def create_connection(self, a_chain: str, b_chain: str) -> Tuple[str, str]:
        result = self.run("create", "connection", "--a-chain", a_chain, "--b-chain", b_chain)
        return _side_ids(result, "connection_id")

    def create_channel(self, a_chain: str, a_connection: str, a_port: str, b_port: str,
                       ordered: bool = False, version: Optional[str] = None) -> Tuple[str, str]:
        args = [
            "create", "channel",
            "--a-chain", a_chain,
            "--a-connection", a_connection,
            "--a-port", a_port,
            "--b-port", b_port,
            "--order", "ordered" if ordered else "unordered",
        ]
        if version:
            args += ["--channel-version", version]
        return _side_ids(self.run(*args), "channel_id")

    def query_packet_acks(self, chain_id: str, port: str, channel: str) -> Any:
        return self.run("query", "packet", "acks", "--chain", chain_id, "--port", port, "--channel", channel)

    def start(self, log_path: Path) -> DaemonHandle:
        return DaemonHandle.spawn(
            "hermes", [self.binary, "--config", str(self.config_path), "start"], log_path
        )

    def set_gas_price_denom(self, chain_id: str, denom: str) -> None:
        text = self.config_path.read_text(encoding="utf-8")
        self.config_path.write_text(set_gas_price_denom(text, chain_id, denom), encoding="utf-8")
        logger.info("Hermes now pays gas on %s in %s", chain_id, denom)

    def setup_pair(self, a_chain: str, b_chain: str) -> IbcPair:
        """
        Create the connection and both channel pairs between the consumer
        (``a_chain``) and the provider (``b_chain``).

        The client pair already exists from the ICS genesis, so the order is
        connection, transfer channels, then the ordered consumer/provider
        channels.
        """
        a_conn, b_conn = self.create_connection(a_chain, b_chain)
        a_transfer, b_transfer = self.create_channel(a_chain, a_conn, TRANSFER_PORT, TRANSFER_PORT)
        a_ics, b_ics = self.create_channel(
            a_chain, a_conn, CONSUMER_PORT, PROVIDER_PORT, ordered=True, version="1"
        )
        return IbcPair(
            a=IbcSide(a_chain, a_conn, a_transfer, a_ics, CONSUMER_PORT),
            b=IbcSide(b_chain, b_conn, b_transfer, b_ics, PROVIDER_PORT),
        )

    def check_acks(self, pair: IbcPair) -> None:
        for side in (pair.a, pair.b):
            self.query_packet_acks(side.chain_id, TRANSFER_PORT, side.transfer_channel)
            self.query_packet_acks(side.chain_id, side.ics_port, side.ics_channel)


def _side_ids(result: Any, key: str) -> Tuple[str, str]:
    try:
        return result["a_side"][key], result["b_side"][key]
    except (KeyError, TypeError) as exc:
        raise DriverError(f"no {key} for both sides in hermes result: {result}") from exc


def hermes_chain_configs(provider_id: str, provider_prefix: str, provider_denom: str,
                         consumer_id: str, consumer_prefix: str, consumer_denom: str) -> List[HermesChainConfig]:
    return [
        HermesChainConfig(provider_id, provider_prefix, f"{provider_id}d", provider_denom),
        HermesChainConfig(consumer_id, consumer_prefix, f"{consumer_id}d", consumer_denom,
                          ccv_consumer_chain=True),
    ]
