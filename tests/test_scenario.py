import pytest

from ics_orchestrator import docker, scenario
from ics_orchestrator.config import ContainerSpec, ScenarioConfig, ScenarioSpec
from ics_orchestrator.docker import Container, ContainerNetwork, ContainerOutcome
from ics_orchestrator.errors import ConfigurationError, ScenarioError, ScenarioTimeoutError
from ics_orchestrator.scenario import build_network, remove_files_in_dir, run_scenario


def make_spec(tmp_path):
    return ScenarioSpec(
        name="ics_basic",
        network="test",
        logs_dir=str(tmp_path / "logs"),
        dockerfiles_dir=None,
        common_volumes=[("./logs", "/logs")],
        containers=[
            ContainerSpec("hermes", entry_name="hermes", image="onomy/hermes"),
            ContainerSpec("onomyd", entry_name="onomyd", image="onomy/onomyd"),
            ContainerSpec("db", image="postgres"),
        ],
    )


class FakeNetwork:
    def __init__(self, outcome=None, error=None, launch_error=None):
        self.outcome = outcome or []
        self.error = error
        self.launch_error = launch_error
        self.started = False
        self.stopped = 0

    def run_all(self):
        self.started = True
        if self.launch_error:
            raise self.launch_error

    def wait_with_timeout_all(self, timeout):
        self.timeout = timeout
        if self.error:
            raise self.error
        return self.outcome

    def stop_all(self):
        self.stopped += 1


def test_scenario_passes(tmp_path):
    network = FakeNetwork([ContainerOutcome("hermes", "exited", 0)])
    prepared = []
    ok = run_scenario(
        make_spec(tmp_path), "ics_basic.py", ScenarioConfig("ics_basic", timeout=12),
        prepare=lambda spec, config: prepared.append(spec.name),
        network_factory=lambda spec, script: network,
    )
    assert ok
    assert prepared == ["ics_basic"]
    assert network.timeout == 12


def test_scenario_fails_and_tears_down(tmp_path):
    network = FakeNetwork(error=ScenarioTimeoutError("scenario timed out"))
    ok = run_scenario(make_spec(tmp_path), "ics_basic.py", ScenarioConfig("ics_basic"),
                      network_factory=lambda spec, script: network)
    assert not ok
    assert network.stopped == 1


class ExitHooks:
    def __init__(self):
        self.hooks = []

    def register(self, func):
        self.hooks.append(func)

    def unregister(self, func):
        self.hooks.remove(func)


def test_interrupted_launch_removes_containers(tmp_path, monkeypatch):
    hooks = ExitHooks()
    monkeypatch.setattr(scenario, "atexit", hooks)
    network = FakeNetwork(launch_error=KeyboardInterrupt())
    with pytest.raises(KeyboardInterrupt):
        run_scenario(make_spec(tmp_path), "ics_basic.py", ScenarioConfig("ics_basic"),
                     network_factory=lambda spec, script: network)
    assert network.stopped == 1
    # still torn down again when the interpreter exits
    assert hooks.hooks == [network.stop_all]
    for hook in hooks.hooks:
        hook()
    assert network.stopped == 2


def test_exit_hook_released_after_teardown(tmp_path, monkeypatch):
    hooks = ExitHooks()
    monkeypatch.setattr(scenario, "atexit", hooks)
    passing = FakeNetwork([ContainerOutcome("hermes", "exited", 0)])
    failing = FakeNetwork(error=ScenarioError("container 'onomyd' failed"))
    for network in (passing, failing):
        run_scenario(make_spec(tmp_path), "ics_basic.py", ScenarioConfig("ics_basic"),
                     network_factory=lambda spec, script: network)
    assert hooks.hooks == []


def test_build_network_passes_entry_names(tmp_path):
    network = build_network(make_spec(tmp_path), "ics_basic.py")
    hermes, onomyd, db = network.containers
    assert hermes.entrypoint == "python3"
    assert hermes.args == ["/orchestrator/ics_basic.py", "--entry-name", "hermes"]
    assert db.entrypoint is None and db.args == []


def test_duplicate_containers_rejected(tmp_path):
    with pytest.raises(ConfigurationError):
        ContainerNetwork("test", [Container("a", image="x"), Container("a", image="y")], None, str(tmp_path))


def network_with(tmp_path, statuses, monkeypatch):
    containers = [Container("hermes", image="x", entrypoint="python3"),
                  Container("onomyd", image="y", entrypoint="python3")]
    network = ContainerNetwork("test", containers, None, str(tmp_path))
    calls = {"stop": 0, "logs": 0}
    monkeypatch.setattr(network, "inspect", lambda name: statuses[name])
    monkeypatch.setattr(network, "stop_all", lambda: calls.__setitem__("stop", calls["stop"] + 1))
    monkeypatch.setattr(network, "save_logs", lambda: calls.__setitem__("logs", calls["logs"] + 1))
    return network, calls


def test_wait_all_success(tmp_path, monkeypatch):
    network, calls = network_with(tmp_path, {
        "hermes": ContainerOutcome("hermes", "exited", 0),
        "onomyd": ContainerOutcome("onomyd", "exited", 0),
    }, monkeypatch)
    outcomes = network.wait_with_timeout_all(10, poll_interval=0)
    assert all(o.succeeded for o in outcomes)
    assert calls == {"stop": 1, "logs": 1}


def test_first_failure_stops_everything(tmp_path, monkeypatch):
    network, calls = network_with(tmp_path, {
        "hermes": ContainerOutcome("hermes", "running", None),
        "onomyd": ContainerOutcome("onomyd", "exited", 1),
    }, monkeypatch)
    with pytest.raises(ScenarioError, match="onomyd"):
        network.wait_with_timeout_all(10, poll_interval=0)
    assert calls["stop"] == 1


def test_global_timeout(tmp_path, monkeypatch):
    network, calls = network_with(tmp_path, {
        "hermes": ContainerOutcome("hermes", "running", None),
        "onomyd": ContainerOutcome("onomyd", "running", None),
    }, monkeypatch)
    with pytest.raises(ScenarioTimeoutError):
        network.wait_with_timeout_all(0, poll_interval=0)
    assert calls == {"stop": 1, "logs": 1}


def test_run_all_commands(tmp_path, monkeypatch):
    commands = []
    monkeypatch.setattr(docker, "run", lambda cmd, **kwargs: commands.append(cmd) or "id\n")
    network = ContainerNetwork(
        "test", [Container("hermes", image="onomy/hermes", entrypoint="python3", args=["s.py"])],
        None, str(tmp_path / "logs"), [("./logs", "/logs")],
    )
    monkeypatch.setattr(network, "stop_all", lambda: None)
    network.run_all()
    assert commands[0] == ["docker", "network", "create", "test"]
    create = commands[1]
    assert create[create.index("--name") + 1] == "hermes_test"
    assert create[create.index("--network-alias") + 1] == "hermes"
    assert create[-2:] == ["onomy/hermes", "s.py"]
    assert commands[-1] == ["docker", "start", "hermes_test"]
    assert network.container_ids == {"hermes": "id"}


def test_remove_keyring_leftovers(tmp_path):
    for name in ("a.address", "b.info", "keep.txt"):
        (tmp_path / name).write_text("x")
    assert remove_files_in_dir(tmp_path, [".address", ".info"]) == 2
    assert [p.name for p in tmp_path.iterdir()] == ["keep.txt"]
    assert remove_files_in_dir(tmp_path / "missing", [".info"]) == 0
