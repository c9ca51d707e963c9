import pytest

from ics_orchestrator.denom import ONOMY_IBC_NOM, ibc_denom, reprefix_bech32
from ics_orchestrator.errors import ConfigurationError
from ics_orchestrator.models import IbcPair

ADDR = "onomy1gk7lg5kd73mcr8xuyw727ys22t7mtz9gh07ul3"


def test_ibc_denom_of_scenario_channel():
    assert ibc_denom("transfer", "channel-1", "anom") == ONOMY_IBC_NOM
    assert ONOMY_IBC_NOM == "ibc/5872224386C093865E42B18BDDA56BCB8CDE1E36B82B391E97697520053B0513"


def test_ibc_denom_depends_on_channel():
    assert ibc_denom("transfer", "channel-0", "anom") != ONOMY_IBC_NOM
    assert ibc_denom("transfer", "channel-0", "anom") == ibc_denom("transfer", "channel-0", "anom")


def test_pair_side_uses_transfer_channel(ibc_pair: IbcPair):
    assert ibc_pair.a.ibc_denom("transfer", "anom") == ONOMY_IBC_NOM


def test_reprefix():
    assert reprefix_bech32(ADDR, "market") == "market1gk7lg5kd73mcr8xuyw727ys22t7mtz9gy5qwjr"
    assert reprefix_bech32(ADDR, "onomy") == ADDR


def test_reprefix_rejects_garbage():
    with pytest.raises(ConfigurationError):
        reprefix_bech32("onomy1notanaddress", "market")
