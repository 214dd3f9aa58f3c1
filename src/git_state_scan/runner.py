"""Invoke git (or another program) inside a repository.

Runners return what the program printed and its exit status. They never
interpret the status: a non-zero exit is often a meaningful answer, e.g. "no
upstream configured".
"""

import logging
import subprocess
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from git.cmd import Git
from git.compat import safe_decode
from git.exc import GitCommandNotFound

from .errors import CommandFailure, InvocationTimeout, LaunchFailure, ScanCancelled

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0


@dataclass(frozen=True)
class CommandResult:
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class CommandRunner(Protocol):
    def run(self, repo: Path, args: Sequence[str]) -> CommandResult:
        """Run the program in `repo` with `args`."""

    def terminate(self) -> None:
        """Stop launching programs and kill the ones still running."""


def require_success(result: CommandResult, args: Sequence[str]) -> CommandResult:
    """Raise `CommandFailure` unless the invocation exited with 0."""
    if not result.ok:
        raise CommandFailure(args, result.exit_code, result.stderr)
    return result


class SubprocessRunner:
    """Run a real program through GitPython's process launcher.

    GitPython sets ``LC_ALL=C`` for the child, so the output does not depend on
    the user's locale.
    """

    def __init__(
        self,
        program: str | None = None,
        *,
        timeout: float | None = DEFAULT_TIMEOUT,
        cancel: threading.Event | None = None,
    ) -> None:
        self.program = program or Git.GIT_PYTHON_GIT_EXECUTABLE or "git"
        self.timeout = timeout
        self.cancel = cancel or threading.Event()
        self._running: set[subprocess.Popen] = set()
        self._lock = threading.Lock()

    def run(self, repo: Path, args: Sequence[str]) -> CommandResult:
        if self.cancel.is_set():
            raise ScanCancelled("scan cancelled")
        command = [self.program, *args]
        logger.debug("running %s in %s", " ".join(command), repo)
        try:
            handle = Git(repo).execute(command, as_process=True)
        except (GitCommandNotFound, OSError) as e:
            raise LaunchFailure(f"could not launch {self.program!r}: {e}") from e
        proc = handle.proc
        with self._lock:
            self._running.add(proc)
            if self.cancel.is_set():
                proc.kill()
        try:
            stdout, stderr = proc.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            proc.kill()
            proc.communicate()
            raise InvocationTimeout(
                f"`{' '.join(command)}` did not complete in {self.timeout} secs"
            ) from e
        finally:
            with self._lock:
                self._running.discard(proc)
        if self.cancel.is_set():
            raise ScanCancelled("scan cancelled")
        return CommandResult(
            stdout=safe_decode(stdout) or "",
            stderr=safe_decode(stderr) or "",
            exit_code=proc.returncode,
        )

    def terminate(self) -> None:
        self.cancel.set()
        with self._lock:
            running = list(self._running)
        for proc in running:
            proc.kill()


ScriptedOutcome = CommandResult | Exception


class ScriptedRunner:
    """Replay canned results instead of running anything.

    `script` maps argument tuples to results (or exceptions to raise); `repos`
    holds per-repository scripts that take precedence over `script`.
    """

    def __init__(
        self,
        script: Mapping[tuple[str, ...], ScriptedOutcome] | None = None,
        *,
        repos: Mapping[Path, Mapping[tuple[str, ...], ScriptedOutcome]] | None = None,
    ) -> None:
        self.script = dict(script or {})
        self.repos = {Path(k): dict(v) for k, v in (repos or {}).items()}
        self.calls: list[tuple[Path, tuple[str, ...]]] = []
        self._lock = threading.Lock()

    def run(self, repo: Path, args: Sequence[str]) -> CommandResult:
        key = tuple(args)
        with self._lock:
            self.calls.append((Path(repo), key))
        outcome = self.repos.get(Path(repo), {}).get(key)
        if outcome is None:
            outcome = self.script.get(key)
        if outcome is None:
            raise LookupError(f"no scripted result for `{' '.join(key)}` in {repo}")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def terminate(self) -> None:
        pass
