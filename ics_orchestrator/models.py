from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict

from .denom import ibc_denom
from .errors import ProtocolMismatchError

TRANSFER_PORT = "transfer"


@dataclass(slots=True)
class IbcSide:
    """One chain's end of the connection and of both channel pairs."""

    chain_id: str
    connection: str
    transfer_channel: str
    ics_channel: str
    ics_port: str

    def ibc_denom(self, port: str, base_denom: str) -> str:
        """Denomination ``base_denom`` takes on this chain after crossing ``port``."""
        channel = self.transfer_channel if port == TRANSFER_PORT else self.ics_channel
        return ibc_denom(port, channel, base_denom)

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "IbcSide":
        return IbcSide(
            chain_id=data["chain_id"],
            connection=data["connection"],
            transfer_channel=data["transfer_channel"],
            ics_channel=data["ics_channel"],
            ics_port=data["ics_port"],
        )


@dataclass(slots=True)
class IbcPair:
    """
    Both ends of the channels the relayer set up.

    ``a`` is the consumer chain, which has to initiate the ICS handshake,
    and ``b`` is the provider chain.
    """

    a: IbcSide
    b: IbcSide

    def to_dict(self) -> Dict[str, Any]:
        return {"a": asdict(self.a), "b": asdict(self.b)}

    @staticmethod
    def from_dict(data: Any) -> "IbcPair":
        try:
            return IbcPair(a=IbcSide.from_dict(data["a"]), b=IbcSide.from_dict(data["b"]))
        except (KeyError, TypeError) as exc:
            raise ProtocolMismatchError(
                "ibc_pair", "ibc_pair", f"malformed ibc_pair payload: {exc}"
            ) from exc
