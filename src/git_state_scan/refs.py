"""Branch, upstream, ahead/behind and commit-time queries."""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from .errors import ParseFailure
from .models import DETACHED, BranchState, UnpushedBranch
from .runner import CommandRunner, require_success

logger = logging.getLogger(__name__)

HEAD_BRANCH_ARGS = ("symbolic-ref", "--quiet", "HEAD")
HEAD_COMMIT_ARGS = ("rev-parse", "--verify", "--quiet", "HEAD")
TRACKING_ARGS = (
    "for-each-ref",
    "--format=%(refname)%09%(upstream)%09%(upstream:track)",
    "refs/heads",
)
LAST_COMMIT_ARGS = ("log", "-1", "--format=%ct", "HEAD")

_COUNTS_RE = re.compile(r"^(\d+)\s+(\d+)$")
_EPOCH_RE = re.compile(r"^\d+$")
_SHORT_PREFIXES = ("refs/heads/", "refs/remotes/")


@dataclass(frozen=True)
class Tracking:
    """Upstream configuration of one local branch.

    `ref` and `upstream` are full ref names, which stay unambiguous when a
    tag has the same short name; `branch` is the short name.
    """

    branch: str
    ref: str
    upstream: str | None
    gone: bool = False

    @property
    def live_upstream(self) -> str | None:
        return None if self.gone else self.upstream


def short_ref(ref: str) -> str:
    """Strip `refs/heads/` or `refs/remotes/` for display."""
    for prefix in _SHORT_PREFIXES:
        if ref.startswith(prefix):
            return ref[len(prefix) :]
    return ref


def parse_epoch(text: str) -> datetime:
    """Parse a unix timestamp in seconds, as printed by ``%ct`` / ``%at``."""
    value = text.strip()
    if not _EPOCH_RE.match(value):
        raise ParseFailure(f"not a unix timestamp: {text!r}")
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (ValueError, OverflowError, OSError) as e:
        raise ParseFailure(f"unix timestamp out of range: {text!r}") from e


def parse_counts(text: str) -> tuple[int, int]:
    """Parse the ``ahead<TAB>behind`` output of ``rev-list --left-right --count``."""
    match = _COUNTS_RE.match(text.strip())
    if match is None:
        raise ParseFailure(f"unexpected ahead/behind output: {text!r}")
    return int(match[1]), int(match[2])


def parse_tracking(text: str) -> dict[str, Tracking]:
    tracking: dict[str, Tracking] = {}
    for line in text.splitlines():
        if not line.strip():
            continue
        parts = line.split("\t")
        if len(parts) != 3:  # noqa: PLR2004
            raise ParseFailure(f"unexpected for-each-ref line: {line!r}")
        ref, upstream, track = parts
        branch = short_ref(ref)
        tracking[branch] = Tracking(
            branch=branch,
            ref=ref,
            upstream=upstream or None,
            gone=bool(upstream) and track.strip() == "[gone]",
        )
    return tracking


def current_branch(runner: CommandRunner, repo: Path) -> str:
    """Return the checked-out branch name, or `DETACHED`."""
    result = runner.run(repo, HEAD_BRANCH_ARGS)
    if result.exit_code == 1:
        return DETACHED
    require_success(result, HEAD_BRANCH_ARGS)
    name = result.stdout.strip()
    if not name:
        raise ParseFailure("symbolic-ref printed no branch name")
    return short_ref(name)


def has_commits(runner: CommandRunner, repo: Path) -> bool:
    result = runner.run(repo, HEAD_COMMIT_ARGS)
    if result.exit_code == 1:
        # freshly initialized repo
        return False
    require_success(result, HEAD_COMMIT_ARGS)
    return True


def tracking_branches(runner: CommandRunner, repo: Path) -> dict[str, Tracking]:
    result = require_success(runner.run(repo, TRACKING_ARGS), TRACKING_ARGS)
    return parse_tracking(result.stdout)


def ahead_behind(
    runner: CommandRunner, repo: Path, branch: str, upstream: str
) -> tuple[int, int]:
    """Count commits only on `branch` and only on `upstream`."""
    args = ("rev-list", "--left-right", "--count", f"{branch}...{upstream}")
    result = require_success(runner.run(repo, args), args)
    return parse_counts(result.stdout)


def last_commit(runner: CommandRunner, repo: Path) -> datetime:
    result = require_success(runner.run(repo, LAST_COMMIT_ARGS), LAST_COMMIT_ARGS)
    return parse_epoch(result.stdout)


def unpushed_bounds(
    runner: CommandRunner, repo: Path, branch: str, upstream: str
) -> tuple[datetime | None, datetime | None]:
    """Return commit times of the oldest and newest commits not on `upstream`."""
    args = ("log", "--format=%ct", f"{upstream}..{branch}")
    result = require_success(runner.run(repo, args), args)
    times = [parse_epoch(line) for line in result.stdout.splitlines() if line.strip()]
    if not times:
        return None, None
    return min(times), max(times)


def _unpushed_branch(
    runner: CommandRunner, repo: Path, tracking: Tracking
) -> UnpushedBranch | None:
    upstream = tracking.live_upstream
    if upstream is None:
        return None
    ahead, _ = ahead_behind(runner, repo, tracking.ref, upstream)
    if not ahead:
        return None
    oldest, newest = unpushed_bounds(runner, repo, tracking.ref, upstream)
    return UnpushedBranch(tracking.branch, short_ref(upstream), ahead, oldest, newest)


def branch_state(
    runner: CommandRunner, repo: Path, *, all_branches: bool = False
) -> BranchState:
    """Query the current branch, its upstream and the last commit time.

    A branch without an upstream (local-only, detached HEAD, or an upstream
    whose remote-tracking ref is gone) has no ahead/behind counts; that is not
    an error.
    """
    branch = current_branch(runner, repo)
    tracking: dict[str, Tracking] = {}
    if branch != DETACHED or all_branches:
        tracking = tracking_branches(runner, repo)

    current = tracking.get(branch) if branch != DETACHED else None
    upstream = current.live_upstream if current else None
    ahead = behind = 0
    oldest = newest = None
    if current is not None and upstream is not None:
        ahead, behind = ahead_behind(runner, repo, current.ref, upstream)
        if ahead:
            oldest, newest = unpushed_bounds(runner, repo, current.ref, upstream)

    committed = last_commit(runner, repo) if has_commits(runner, repo) else None

    others: list[UnpushedBranch] = []
    if all_branches:
        for name, info in tracking.items():
            if name == branch:
                continue
            unpushed = _unpushed_branch(runner, repo, info)
            if unpushed is not None:
                others.append(unpushed)

    return BranchState(
        branch=branch,
        upstream=short_ref(upstream) if upstream else None,
        ahead=ahead,
        behind=behind,
        last_commit=committed,
        upstream_gone=bool(current and current.gone),
        oldest_unpushed=oldest,
        newest_unpushed=newest,
        other_unpushed=tuple(others),
    )
