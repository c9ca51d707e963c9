"""
Multi-process choreography for the Interchain Security smoke tests.

Each scenario runs one process per role (provider chain, consumer chain,
relayer) in its own container. The roles share nothing but the ordered
rendezvous links in :mod:`ics_orchestrator.messaging`, whose message order
is fixed in :mod:`ics_orchestrator.protocol`.
"""

from . import denom, genesis, polling, protocol
from .errors import (
    CheckError,
    ConfigurationError,
    DriverError,
    ProtocolMismatchError,
    ScenarioAborted,
    ScenarioError,
    ScenarioTimeoutError,
    TeardownError,
)
from .models import IbcPair, IbcSide

__all__ = [
    "denom",
    "genesis",
    "polling",
    "protocol",
    "CheckError",
    "ConfigurationError",
    "DriverError",
    "ProtocolMismatchError",
    "ScenarioAborted",
    "ScenarioError",
    "ScenarioTimeoutError",
    "TeardownError",
    "IbcPair",
    "IbcSide",
]
