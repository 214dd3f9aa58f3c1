"""Errors raised while scanning repositories.

Every `ScanError` is captured on the report field it belongs to. The other
exceptions here end the scan.
"""

from collections.abc import Sequence
from pathlib import Path


class ScanError(Exception):
    """A failure that is recorded on a report instead of aborting the scan."""

    kind = "error"

    def __str__(self) -> str:
        return f"{self.kind}: {super().__str__()}"


class LaunchFailure(ScanError):
    """The external program could not be located or spawned."""

    kind = "launch failure"


class CommandFailure(ScanError):
    """The external program exited with a status the caller did not expect."""

    kind = "command failed"

    def __init__(self, args: Sequence[str], exit_code: int, stderr: str) -> None:
        self.command = tuple(args)
        self.exit_code = exit_code
        self.stderr = stderr.strip()
        message = f"`{' '.join(self.command)}` exited with {exit_code}"
        if self.stderr:
            message = f"{message}: {self.stderr.splitlines()[0]}"
        super().__init__(message)


class ParseFailure(ScanError):
    """Output did not match the expected machine-readable format."""

    kind = "parse failure"


class InvocationTimeout(ScanError):
    """An invocation exceeded its timeout and was killed."""

    kind = "timeout"


class AccessFailure(ScanError):
    """A filesystem path could not be read during discovery."""

    kind = "access failure"

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class Unsupported(ScanError):
    """A capability is unavailable, e.g. the rewrite helper is not installed."""

    kind = "unavailable"


class NoDiscoverableRoots(RuntimeError):
    """None of the requested roots could be scanned."""


class ScanCancelled(RuntimeError):
    """The scan was interrupted; partial results were discarded."""


class ConfigError(RuntimeError):
    """The repository pair configuration could not be read or is invalid."""
