from __future__ import annotations

import hashlib

import bech32

from .errors import ConfigurationError

# the provider's `anom` as seen on the consumer through transfer/channel-1
ONOMY_IBC_NOM = "ibc/5872224386C093865E42B18BDDA56BCB8CDE1E36B82B391E97697520053B0513"


def ibc_denom(port: str, channel: str, base_denom: str) -> str:
    """Canonical voucher denomination of ``base_denom`` arriving over ``port/channel``."""
    trace = f"{port}/{channel}/{base_denom}"
    return "ibc/" + hashlib.sha256(trace.encode("utf-8")).hexdigest().upper()


def reprefix_bech32(address: str, prefix: str) -> str:
    hrp, data = bech32.bech32_decode(address)
    if hrp is None or data is None:
        raise ConfigurationError(f"'{address}' is not a valid bech32 address")
    return bech32.bech32_encode(prefix, data)
