"""Genesis preparation for the provider and consumer nodes."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict

from .config import CONSUMER_BASE_DENOM, PROVIDER_BASE_DENOM
from .errors import ProtocolMismatchError
from .genesis import Patch, apply_patches, patch_consumer_genesis, read_genesis, substitute_denom, write_genesis

logger = logging.getLogger(__name__)

VALIDATOR_FUNDS = "15000000000000000000000000"
SELF_DELEGATION = "1000000000000000000000000"

PROVIDER_GENESIS_PATCHES = [
    Patch.at("app_state.gov.voting_params.voting_period", "4s"),
    Patch.at("app_state.gov.deposit_params.max_deposit_period", "4s"),
]


def provider_setup(chain, chain_id: str) -> str:
    """Initialise a single-validator provider chain and return the validator mnemonic."""
    chain.init(chain_id)
    genesis = read_genesis(chain.genesis_path)
    genesis = substitute_denom(genesis, "stake", PROVIDER_BASE_DENOM)
    write_genesis(chain.genesis_path, apply_patches(genesis, PROVIDER_GENESIS_PATCHES))

    mnemonic = chain.keys_add("validator")
    chain.add_genesis_account("validator", f"{VALIDATOR_FUNDS}{PROVIDER_BASE_DENOM}")
    chain.gentx("validator", f"{SELF_DELEGATION}{PROVIDER_BASE_DENOM}", chain_id)
    chain.collect_gentxs()
    chain.set_minimum_gas_price(f"0{PROVIDER_BASE_DENOM}")
    return mnemonic


def _parse_fragment(name: str, text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ProtocolMismatchError(name, name, f"{name} fragment is not JSON: {exc}") from exc


def consumer_setup(chain, chain_id: str, ccvconsumer: str, accounts: str, bank: str) -> Dict[str, Any]:
    """
    Initialise the consumer node from the provider's genesis fragments.

    The ``ccvconsumer``, ``auth.accounts`` and ``bank`` subtrees are replaced
    wholesale, then ``"stake"`` is renamed to the consumer's base denom.
    """
    chain.init(chain_id)
    genesis = patch_consumer_genesis(
        read_genesis(chain.genesis_path),
        _parse_fragment("consumer_genesis", ccvconsumer),
        _parse_fragment("genesis_accounts", accounts),
        _parse_fragment("genesis_bank", bank),
        base_denom=CONSUMER_BASE_DENOM,
    )
    write_genesis(chain.genesis_path, genesis)
    logger.info("Patched consumer genesis at %s", chain.genesis_path)
    return genesis
