from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from .errors import ConfigurationError

DEFAULT_TIMEOUT = 3600.0
STD_TRIES = 300
STD_DELAY = 0.1

PROVIDER_CHAIN_ID = "onomy"
CONSUMER_CHAIN_ID = "market"
PROVIDER_ACCOUNT_PREFIX = "onomy"
CONSUMER_ACCOUNT_PREFIX = "onomy"
PROVIDER_BASE_DENOM = "anom"
# the consumer genesis has `"stake"` rewritten to this before first start
CONSUMER_BASE_DENOM = "anom"
GAS_PRICE = "0.01"

RELAYER_PORT = 26000
CONSUMER_PORT = 26001


@dataclass(frozen=True)
class ScenarioConfig:
    """
    Everything a role process needs to know, built once at entry.

    Values come from the command line first and the environment second.
    Nothing reads ``os.environ`` after this object exists.
    """

    scenario: str
    entry_name: Optional[str] = None
    daemon_name: Optional[str] = None
    daemon_home: Optional[str] = None
    hermes_home: Optional[str] = None
    logs_dir: str = "/logs"
    timeout: float = DEFAULT_TIMEOUT
    tries: int = STD_TRIES
    delay: float = STD_DELAY
    block_tries: int = 600
    block_delay: float = 1.0
    stop_timeout: float = 60.0
    rpc_url: str = "http://127.0.0.1:26657"
    provider_chain_id: str = PROVIDER_CHAIN_ID
    consumer_chain_id: str = CONSUMER_CHAIN_ID
    provider_prefix: str = PROVIDER_ACCOUNT_PREFIX
    consumer_prefix: str = CONSUMER_ACCOUNT_PREFIX
    relayer_host: str = "hermes"
    consumer_host: str = f"{CONSUMER_CHAIN_ID}d"
    relayer_port: int = RELAYER_PORT
    consumer_port: int = CONSUMER_PORT

    @classmethod
    def from_args(cls, scenario: str, args: Any, environ: Mapping[str, str]) -> "ScenarioConfig":
        timeout = getattr(args, "timeout", None) or environ.get("ICS_TIMEOUT") or DEFAULT_TIMEOUT
        try:
            timeout = float(timeout)
        except ValueError as exc:
            raise ConfigurationError(f"invalid timeout: {timeout!r}") from exc
        return cls(
            scenario=scenario,
            entry_name=getattr(args, "entry_name", None),
            daemon_name=getattr(args, "daemon_name", None) or environ.get("DAEMON_NAME"),
            daemon_home=getattr(args, "daemon_home", None) or environ.get("DAEMON_HOME"),
            hermes_home=getattr(args, "hermes_home", None) or environ.get("HERMES_HOME"),
            logs_dir=getattr(args, "logs_dir", None) or "/logs",
            timeout=timeout,
        )

    def require(self, name: str) -> Any:
        value = getattr(self, name)
        if value in (None, ""):
            raise ConfigurationError(
                f"'{name}' is required for entry '{self.entry_name}' "
                f"(set --{name.replace('_', '-')} or {name.upper()})"
            )
        return value

    @property
    def relayer_address(self) -> str:
        return f"{self.relayer_host}:{self.relayer_port}"

    @property
    def consumer_address(self) -> str:
        return f"{self.consumer_host}:{self.consumer_port}"

    def log_path(self, name: str) -> Path:
        return Path(self.logs_dir) / name


@dataclass(slots=True)
class ContainerSpec:
    """One container of a scenario network, as listed in ``scenarios.yaml``."""

    name: str
    entry_name: Optional[str] = None
    image: Optional[str] = None
    dockerfile: Optional[str] = None
    volumes: List[Tuple[str, str]] = field(default_factory=list)
    create_args: List[str] = field(default_factory=list)


@dataclass(slots=True)
class ScenarioSpec:
    name: str
    network: str
    logs_dir: str
    dockerfiles_dir: Optional[str]
    common_volumes: List[Tuple[str, str]]
    containers: List[ContainerSpec]
    resources: Dict[str, Any] = field(default_factory=dict)


def _parse_volume(entry: Any) -> Tuple[str, str]:
    if isinstance(entry, str) and ":" in entry:
        host, _, target = entry.partition(":")
        return host, target
    if isinstance(entry, Mapping) and "host" in entry and "target" in entry:
        return str(entry["host"]), str(entry["target"])
    raise ConfigurationError(f"invalid volume entry: {entry!r}")


def load_scenarios(path: Path, image_overrides: Optional[str] = None) -> Dict[str, ScenarioSpec]:
    """
    Read the scenario table, applying a JSON object of image overrides.

    Overrides map a container name to an image; ``"default"`` keeps the
    image from the file.
    """
    if not path.is_file():
        raise ConfigurationError(f"scenario file not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    overrides: Dict[str, str] = {}
    if image_overrides:
        try:
            overrides = json.loads(image_overrides)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"invalid image overrides: {exc}") from exc

    scenarios: Dict[str, ScenarioSpec] = {}
    for name, entry in (raw.get("scenarios") or {}).items():
        containers = []
        for container_name, c in (entry.get("containers") or {}).items():
            image = c.get("image")
            override = overrides.get(container_name)
            if override and override != "default":
                image = override
            containers.append(
                ContainerSpec(
                    name=container_name,
                    entry_name=c.get("entry_name"),
                    image=image,
                    dockerfile=c.get("dockerfile"),
                    volumes=[_parse_volume(v) for v in c.get("volumes", [])],
                    create_args=[str(a) for a in c.get("create_args", [])],
                )
            )
        if not containers:
            raise ConfigurationError(f"scenario '{name}' has no containers")
        scenarios[name] = ScenarioSpec(
            name=name,
            network=entry.get("network", "test"),
            logs_dir=entry.get("logs_dir", "./logs"),
            dockerfiles_dir=entry.get("dockerfiles_dir"),
            common_volumes=[_parse_volume(v) for v in entry.get("common_volumes", [])],
            containers=containers,
            resources=entry.get("resources") or {},
        )
    return scenarios


def default_scenarios_path() -> Path:
    return Path(os.getcwd()) / "scenarios.yaml"
