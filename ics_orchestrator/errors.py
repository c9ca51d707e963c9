from __future__ import annotations

from typing import Optional, Sequence


class ScenarioError(Exception):
    """Base class for every failure that aborts a scenario role."""


class ConfigurationError(ScenarioError):
    """A required argument or environment variable is missing."""


class DriverError(ScenarioError):
    """A chain or relayer command failed or printed something unparsable."""

    def __init__(self, message: str, command: Optional[Sequence[str]] = None,
                 returncode: Optional[int] = None, output: str = ""):
        super().__init__(message)
        self.command = list(command) if command else []
        self.returncode = returncode
        self.output = output

    def __str__(self) -> str:
        text = super().__str__()
        if self.command:
            text += f" (command: {' '.join(self.command)}, exit code: {self.returncode})"
        if self.output:
            text += f"\n{self.output.strip()}"
        return text


class ScenarioTimeoutError(ScenarioError, TimeoutError):
    """A bounded wait or a channel receive ran out of time."""


class ProtocolMismatchError(ScenarioError):
    """A received message carries a different step than the one expected."""

    def __init__(self, expected: str, received: str, detail: Optional[str] = None):
        super().__init__(detail or f"expected step '{expected}', received step '{received}'")
        self.expected = expected
        self.received = received


class TeardownError(ScenarioError):
    """Stopping a daemon, relayer or container failed."""


class CheckError(ScenarioError):
    """An on-chain observation did not match what the scenario requires."""


class ScenarioAborted(ScenarioError):
    """The scenario-wide cancellation was observed."""
