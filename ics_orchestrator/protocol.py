"""
Static message order of every link in the ICS scenario.

Each link is a list of ``(sender, step)`` pairs. The role on the other end
of a pair receives exactly that step at exactly that position, so both
endpoints' send/receive sequences are two views of one table.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Tuple

PROVIDER = "onomyd"
CONSUMER = "consumer"
RELAYER = "hermes"


class Step(str, Enum):
    MNEMONIC = "mnemonic"
    CHAINS_READY = "chains_ready"
    IBC_PAIR = "ibc_pair"
    GAS_DENOM = "gas_denom"
    RELAYER_RESTARTED = "relayer_restarted"
    CONSUMER_GENESIS = "consumer_genesis"
    GENESIS_ACCOUNTS = "genesis_accounts"
    GENESIS_BANK = "genesis_bank"
    NODE_KEY = "node_key"
    VALIDATOR_KEY = "validator_key"
    CONSUMER_READY = "consumer_ready"
    ROUND_TRIP_DONE = "round_trip_done"
    TERMINATE = "terminate"
    TERMINATE_ACK = "terminate_ack"


PROVIDER_RELAYER: List[Tuple[str, Step]] = [
    (PROVIDER, Step.MNEMONIC),
    (PROVIDER, Step.CHAINS_READY),
    (RELAYER, Step.IBC_PAIR),
    (PROVIDER, Step.GAS_DENOM),
    (RELAYER, Step.RELAYER_RESTARTED),
    (PROVIDER, Step.TERMINATE),
    (RELAYER, Step.TERMINATE_ACK),
]

PROVIDER_CONSUMER: List[Tuple[str, Step]] = [
    (PROVIDER, Step.CONSUMER_GENESIS),
    (PROVIDER, Step.GENESIS_ACCOUNTS),
    (PROVIDER, Step.GENESIS_BANK),
    (PROVIDER, Step.NODE_KEY),
    (PROVIDER, Step.VALIDATOR_KEY),
    (CONSUMER, Step.CONSUMER_READY),
    (PROVIDER, Step.IBC_PAIR),
    (CONSUMER, Step.GAS_DENOM),
    (PROVIDER, Step.RELAYER_RESTARTED),
    (CONSUMER, Step.ROUND_TRIP_DONE),
    (PROVIDER, Step.TERMINATE),
    (CONSUMER, Step.TERMINATE_ACK),
]

LINKS: Dict[Tuple[str, str], List[Tuple[str, Step]]] = {
    (PROVIDER, RELAYER): PROVIDER_RELAYER,
    (PROVIDER, CONSUMER): PROVIDER_CONSUMER,
}


def expected_trace(link: List[Tuple[str, Step]], role: str) -> List[Tuple[str, Step]]:
    """The ``("send" | "recv", step)`` sequence ``role`` performs on ``link``."""
    return [("send" if sender == role else "recv", step) for sender, step in link]
