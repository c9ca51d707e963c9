from .base import Role
from .consumer import ConsumerRole
from .provider import ProviderRole
from .relayer import RelayerRole
from .standalone import ChainUpgradeRole, SingleNodeRole

__all__ = [
    "Role",
    "ConsumerRole",
    "ProviderRole",
    "RelayerRole",
    "ChainUpgradeRole",
    "SingleNodeRole",
]
