#!/usr/bin/env python3
"""
Interchain Security smoke test.

Run without arguments to build and launch three containers (``onomyd``,
``marketd`` and ``hermes``) on one docker network; each container runs this
same script with ``--entry-name`` selecting its role:

* ``onomyd``   - provider chain: adds the consumer by governance, seeds it,
  bridges ``anom`` over and checks the round trip.
* ``consumer`` - consumer chain: boots from the provider's genesis
  fragments, switches its gas to the bridged NOM and sends some back.
* ``hermes``   - relayer: creates the connection and channel pairs and
  relays between the two chains.
"""

import sys
from pathlib import Path

from ics_orchestrator.cli import main
from ics_orchestrator.config import (
    CONSUMER_BASE_DENOM,
    PROVIDER_BASE_DENOM,
    ScenarioConfig,
    ScenarioSpec,
)
from ics_orchestrator.cosmovisor import ChainDriver
from ics_orchestrator.hermes import HermesDriver, hermes_chain_configs, write_hermes_config
from ics_orchestrator.roles import ConsumerRole, ProviderRole, RelayerRole
from ics_orchestrator.scenario import remove_files_in_dir


def chain_driver(config: ScenarioConfig) -> ChainDriver:
    return ChainDriver(config.require("daemon_home"), config.daemon_name, config.rpc_url)


ROLES = {
    "onomyd": lambda config, cancellation: ProviderRole(config, chain_driver(config), cancellation),
    "consumer": lambda config, cancellation: ConsumerRole(config, chain_driver(config), cancellation),
    "hermes": lambda config, cancellation: RelayerRole(
        config, HermesDriver(config.require("hermes_home")), cancellation
    ),
}


def prepare(spec: ScenarioSpec, config: ScenarioConfig) -> None:
    resources = spec.resources
    if "keyring_dir" in resources:
        remove_files_in_dir(Path(resources["keyring_dir"]), [".address", ".info"])
    write_hermes_config(
        hermes_chain_configs(
            config.provider_chain_id, config.provider_prefix, PROVIDER_BASE_DENOM,
            config.consumer_chain_id, config.consumer_prefix, CONSUMER_BASE_DENOM,
        ),
        Path(resources.get("hermes_config", "./resources/hermes/config.toml")),
    )


if __name__ == "__main__":
    sys.exit(main("ics_basic", "ics_basic.py", ROLES, prepare))
