from __future__ import annotations

import logging
import shlex
import subprocess
from pathlib import Path
from typing import IO, List, Mapping, Optional, Sequence

import psutil

from .errors import DriverError, TeardownError

logger = logging.getLogger(__name__)


def run(cmd: Sequence[str], env: Optional[Mapping[str, str]] = None, log_output: bool = True) -> str:
    """Run one command to completion and return its stdout; any failure is fatal."""
    logger.info("[RUN] %s", " ".join(shlex.quote(c) for c in cmd))
    try:
        result = subprocess.run(list(cmd), capture_output=True, text=True, env=env)
    except OSError as exc:
        raise DriverError(f"could not execute {cmd[0]}: {exc}", cmd) from exc
    if result.returncode != 0:
        raise DriverError(
            f"{cmd[0]} failed", cmd, result.returncode, result.stderr or result.stdout
        )
    if log_output and result.stdout:
        logger.debug("%s", result.stdout.rstrip())
    return result.stdout


class DaemonHandle:
    """A long-running chain or relayer process whose output goes to a log file."""

    def __init__(self, name: str, process: subprocess.Popen, log_file: IO, log_path: Path):
        self.name = name
        self.process = process
        self._log_file = log_file
        self.log_path = log_path

    @classmethod
    def spawn(cls, name: str, cmd: Sequence[str], log_path: Path,
              env: Optional[Mapping[str, str]] = None) -> "DaemonHandle":
        log_path.parent.mkdir(parents=True, exist_ok=True)
        log_file = open(log_path, "a", encoding="utf-8")
        logger.info("[RUN] %s > %s", " ".join(shlex.quote(c) for c in cmd), log_path)
        try:
            process = subprocess.Popen(
                list(cmd), stdout=log_file, stderr=subprocess.STDOUT, env=env
            )
        except OSError as exc:
            log_file.close()
            raise DriverError(f"could not start {name}: {exc}", cmd) from exc
        return cls(name, process, log_file, log_path)

    def is_running(self) -> bool:
        return self.process.poll() is None

    def stop(self, timeout: float) -> None:
        """Terminate the process and every child it spawned (cosmovisor forks the daemon)."""
        try:
            if self.is_running():
                try:
                    parent = psutil.Process(self.process.pid)
                    procs: List[psutil.Process] = parent.children(recursive=True) + [parent]
                except psutil.NoSuchProcess:
                    procs = []
                for proc in procs:
                    try:
                        proc.terminate()
                    except psutil.NoSuchProcess:
                        pass
                _, alive = psutil.wait_procs(procs, timeout=timeout)
                for proc in alive:
                    logger.warning("%s (pid %d) ignored SIGTERM, killing", self.name, proc.pid)
                    try:
                        proc.kill()
                    except psutil.NoSuchProcess:
                        pass
                _, alive = psutil.wait_procs(alive, timeout=timeout)
                if alive:
                    raise TeardownError(
                        f"{self.name} still running after kill: {[p.pid for p in alive]}"
                    )
            self.process.wait(timeout=timeout)
        except subprocess.TimeoutExpired as exc:
            raise TeardownError(f"{self.name} did not exit within {timeout}s") from exc
        except psutil.Error as exc:
            raise TeardownError(f"stopping {self.name} failed: {exc}") from exc
        finally:
            self._log_file.close()
        logger.info("Stopped %s", self.name)
