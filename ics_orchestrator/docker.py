from __future__ import annotations

import logging
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from .command import run
from .config import ContainerSpec
from .errors import ConfigurationError, ScenarioError, ScenarioTimeoutError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ContainerOutcome:
    name: str
    status: str
    exit_code: Optional[int]

    @property
    def succeeded(self) -> bool:
        return self.status == "exited" and self.exit_code == 0


@dataclass
class Container:
    name: str
    image: Optional[str] = None
    dockerfile: Optional[str] = None
    volumes: List[Tuple[str, str]] = field(default_factory=list)
    entrypoint: Optional[str] = None
    args: List[str] = field(default_factory=list)
    create_args: List[str] = field(default_factory=list)

    @classmethod
    def from_spec(cls, spec: ContainerSpec, entrypoint: Optional[str],
                  entry_args: Sequence[str]) -> "Container":
        args = list(entry_args)
        if spec.entry_name:
            args += ["--entry-name", spec.entry_name]
        return cls(
            name=spec.name,
            image=spec.image,
            dockerfile=spec.dockerfile,
            volumes=list(spec.volumes),
            entrypoint=entrypoint if spec.entry_name else None,
            args=args if spec.entry_name else [],
            create_args=list(spec.create_args),
        )


class ContainerNetwork:
    """
    One isolated docker network with a container per scenario role.

    Each container is reachable from the others by its name.
    """

    def __init__(self, network_name: str, containers: List[Container],
                 dockerfiles_dir: Optional[str], logs_dir: str,
                 common_volumes: Sequence[Tuple[str, str]] = ()):
        names = [c.name for c in containers]
        if len(set(names)) != len(names):
            raise ConfigurationError(f"duplicate container names in {names}")
        for c in containers:
            if not c.image and not c.dockerfile:
                raise ConfigurationError(f"container '{c.name}' needs an image or a dockerfile")
        self.network_name = network_name
        self.containers = containers
        self.dockerfiles_dir = Path(dockerfiles_dir) if dockerfiles_dir else None
        self.logs_dir = Path(logs_dir)
        self.common_volumes = list(common_volumes)
        self.container_ids: Dict[str, str] = {}

    def _full_name(self, name: str) -> str:
        return f"{name}_{self.network_name}"

    def _image_for(self, container: Container) -> str:
        if container.image:
            return container.image
        tag = f"{self.network_name}_{container.name}:latest"
        dockerfile = Path(container.dockerfile)
        if self.dockerfiles_dir and not dockerfile.is_absolute():
            dockerfile = self.dockerfiles_dir / dockerfile
        context = self.dockerfiles_dir or dockerfile.parent
        run(["docker", "build", "-t", tag, "-f", str(dockerfile), str(context)])
        return tag

    def run_all(self) -> None:
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        self.stop_all()
        run(["docker", "network", "create", self.network_name])
        for container in self.containers:
            image = self._image_for(container)
            cmd = [
                "docker", "create",
                "--name", self._full_name(container.name),
                "--network", self.network_name,
                "--hostname", container.name,
                "--network-alias", container.name,
            ]
            for host, target in self.common_volumes + container.volumes:
                cmd += ["-v", f"{Path(host).resolve()}:{target}"]
            cmd += container.create_args
            if container.entrypoint:
                cmd += ["--entrypoint", container.entrypoint]
            cmd.append(image)
            cmd += container.args
            self.container_ids[container.name] = run(cmd).strip()
        for container in self.containers:
            run(["docker", "start", self._full_name(container.name)])
        logger.info("Started %d containers on network %s", len(self.containers), self.network_name)

    def inspect(self, name: str) -> ContainerOutcome:
        out = run(
            ["docker", "inspect", "--format", "{{.State.Status}} {{.State.ExitCode}}",
             self._full_name(name)],
            log_output=False,
        ).split()
        status = out[0] if out else "unknown"
        exit_code = int(out[1]) if len(out) > 1 and out[1].lstrip("-").isdigit() else None
        return ContainerOutcome(name, status, exit_code)

    def wait_with_timeout_all(self, timeout: float, poll_interval: float = 1.0) -> List[ContainerOutcome]:
        """
        Wait for every container to exit successfully.

        The first failing container, or the deadline, tears the whole network
        down and raises.
        """
        deadline = time.monotonic() + timeout
        pending = [c.name for c in self.containers if c.entrypoint]
        finished: List[ContainerOutcome] = []
        try:
            while pending:
                for name in list(pending):
                    outcome = self.inspect(name)
                    if outcome.status in ("exited", "dead"):
                        pending.remove(name)
                        finished.append(outcome)
                        if not outcome.succeeded:
                            raise ScenarioError(
                                f"container '{name}' failed with exit code {outcome.exit_code}"
                            )
                        logger.info("Container %s finished successfully", name)
                if not pending:
                    break
                if time.monotonic() >= deadline:
                    raise ScenarioTimeoutError(
                        f"scenario timed out after {timeout}s, still running: {pending}"
                    )
                time.sleep(poll_interval)
        finally:
            self.save_logs()
            self.stop_all()
        return finished

    def save_logs(self) -> None:
        for container in self.containers:
            try:
                out = subprocess.run(
                    ["docker", "logs", self._full_name(container.name)],
                    stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True, check=False,
                )
            except OSError as exc:
                logger.warning("Could not read logs of %s: %s", container.name, exc)
                continue
            (self.logs_dir / f"container_{container.name}.log").write_text(out.stdout, encoding="utf-8")

    def stop_all(self) -> None:
        for container in self.containers:
            subprocess.run(
                ["docker", "rm", "-f", self._full_name(container.name)],
                stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, check=False,
            )
        subprocess.run(
            ["docker", "network", "rm", self.network_name],
            stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, check=False,
        )
