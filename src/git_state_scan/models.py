"""Report model handed from the collector to the renderer.

All classes are frozen: a report is assembled once per repository and only
read afterwards.
"""

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generic, Literal, TypeVar

from .errors import ScanError

logger = logging.getLogger(__name__)

DETACHED = "detached"

T = TypeVar("T")


@dataclass(frozen=True)
class FieldResult(Generic[T]):
    """The value of one sub-computation, or the error that replaced it."""

    value: T | None = None
    error: ScanError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def capture(func: Callable[..., T], *args: object, **kwargs: object) -> FieldResult[T]:
    """Run `func`, turning a `ScanError` into a failed `FieldResult`."""
    try:
        return FieldResult(value=func(*args, **kwargs))
    except ScanError as e:
        logger.debug("%s failed: %s", getattr(func, "__name__", func), e)
        return FieldResult(error=e)


@dataclass(frozen=True)
class DiffMetrics:
    """Summary of one side of a diff (staged or unstaged)."""

    files_changed: int = 0
    lines_added: int = 0
    lines_removed: int = 0
    has_untracked: bool = False
    untracked_count: int = 0

    def __post_init__(self) -> None:
        counts = (
            self.files_changed,
            self.lines_added,
            self.lines_removed,
            self.untracked_count,
        )
        if min(counts) < 0:
            raise ValueError(f"negative diff metrics: {self}")

    @property
    def is_clean(self) -> bool:
        return not (
            self.files_changed
            or self.lines_added
            or self.lines_removed
            or self.has_untracked
        )


@dataclass(frozen=True)
class UnpushedBranch:
    """A local branch with commits its upstream does not have."""

    branch: str
    upstream: str
    ahead: int
    oldest: datetime | None = None
    newest: datetime | None = None


@dataclass(frozen=True)
class BranchState:
    """Current branch, its upstream and how far apart they are."""

    branch: str
    upstream: str | None = None
    ahead: int = 0
    behind: int = 0
    last_commit: datetime | None = None
    upstream_gone: bool = False
    oldest_unpushed: datetime | None = None
    newest_unpushed: datetime | None = None
    other_unpushed: tuple[UnpushedBranch, ...] = ()

    def __post_init__(self) -> None:
        if self.ahead < 0 or self.behind < 0:
            raise ValueError(f"negative ahead/behind counts: {self}")
        if self.upstream is None and (self.ahead or self.behind):
            raise ValueError("ahead/behind counts require an upstream")

    @property
    def is_detached(self) -> bool:
        return self.branch == DETACHED

    def age(self, now: datetime | None = None) -> timedelta | None:
        """Time since the last commit, or None for a repository without commits."""
        if self.last_commit is None:
            return None
        now = now or datetime.now(timezone.utc)
        return now - self.last_commit


@dataclass(frozen=True)
class RewriteWindow:
    """Inclusive time bounds; a missing bound is unconstrained."""

    since: datetime | None = None
    until: datetime | None = None

    def __post_init__(self) -> None:
        for name, bound in (("since", self.since), ("until", self.until)):
            if bound is not None and bound.utcoffset() is None:
                raise ValueError(f"window bound {name} has no timezone: {bound}")
        if self.since and self.until and self.since > self.until:
            raise ValueError(
                f"window starts after it ends: {self.since} > {self.until}"
            )

    def contains(self, moment: datetime) -> bool:
        if self.since is not None and moment < self.since:
            return False
        return self.until is None or moment <= self.until


@dataclass(frozen=True)
class RewriteEntry:
    commit: str
    authored: datetime
    rewritten: datetime
    window: RewriteWindow


@dataclass(frozen=True)
class Endpoint:
    """One side of a source/target repository pair."""

    path: Path
    branch: str

    @property
    def name(self) -> str:
        return self.path.name or str(self.path)


@dataclass(frozen=True)
class RepoPair:
    key: str
    source: Endpoint
    target: Endpoint


@dataclass(frozen=True)
class PairRewrites:
    """Summary of what the rewrite helper reported for one pair."""

    pair: RepoPair
    commits: int = 0
    earliest: datetime | None = None
    latest: datetime | None = None


@dataclass(frozen=True)
class RewriteHistory:
    entries: tuple[RewriteEntry, ...] = ()
    warnings: tuple[str, ...] = ()
    pairs: tuple[PairRewrites, ...] = ()


@dataclass(frozen=True)
class RepositoryReport:
    """Everything learned about one repository during a scan."""

    path: Path
    root: Path
    branch: FieldResult[BranchState]
    staged: FieldResult[DiffMetrics]
    unstaged: FieldResult[DiffMetrics]
    rewrites: FieldResult[RewriteHistory] | None = None

    def _fields(self) -> dict[str, FieldResult | None]:
        return {
            "branch": self.branch,
            "staged": self.staged,
            "unstaged": self.unstaged,
            "rewrite_history": self.rewrites,
        }

    @property
    def errors(self) -> dict[str, ScanError]:
        return {
            name: result.error
            for name, result in self._fields().items()
            if result is not None and result.error is not None
        }

    @property
    def error(self) -> str | None:
        errors = self.errors
        if not errors:
            return None
        return "; ".join(f"{name}: {error}" for name, error in errors.items())

    @property
    def is_dirty(self) -> bool:
        """Any non-clean staged or unstaged metric; failed fields count as clean."""
        return any(
            result.value is not None and not result.value.is_clean
            for result in (self.staged, self.unstaged)
        )

    @property
    def last_commit(self) -> datetime | None:
        return self.branch.value.last_commit if self.branch.value else None


OTHER_REASONS_TYPE = Literal["ignored", "untracked", "missing"]


@dataclass(frozen=True)
class OtherRepository:
    """A repository outside every configured pair, or a pair endpoint not found.

    `reason` is "ignored" for repositories of an ignored match key,
    "untracked" for scanned repositories no pair mentions, and "missing" for
    configured endpoints that were not among the scanned repositories.
    """

    name: str
    root: str
    path: Path
    reason: OTHER_REASONS_TYPE
    branch: str | None = None
    ahead: int | None = None
    oldest_unpushed: datetime | None = None
    newest_unpushed: datetime | None = None


@dataclass(frozen=True)
class ScanReport:
    """Reports for one scan, in discovery order unless sorted on request."""

    reports: tuple[RepositoryReport, ...] = ()
    roots: tuple[Path, ...] = ()
    warnings: tuple[ScanError, ...] = ()
    other_repositories: tuple[OtherRepository, ...] | None = None

    def __iter__(self) -> Iterator[RepositoryReport]:
        return iter(self.reports)

    def __len__(self) -> int:
        return len(self.reports)

    @property
    def multi_root(self) -> bool:
        return len(self.roots) > 1

    @property
    def pair_rewrites(self) -> list[PairRewrites]:
        """Helper summaries of every scanned pair, by source then target name."""
        summaries = [
            summary
            for report in self.reports
            if report.rewrites is not None and report.rewrites.value is not None
            for summary in report.rewrites.value.pairs
        ]
        return sorted(summaries, key=lambda s: (s.pair.source.name, s.pair.target.name))
