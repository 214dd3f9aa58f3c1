"""Inspect every discovered repository and assemble the scan report."""

import logging
import os
import threading
from collections.abc import Iterable
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from .discovery import DiscoveredRepository, discover
from .errors import ScanCancelled
from .metrics import staged_metrics, unstaged_metrics
from .models import RepositoryReport, ScanReport, capture
from .pairs import other_repositories
from .refs import branch_state
from .rewrites import RewriteConfig, collect_rewrites
from .runner import DEFAULT_TIMEOUT, CommandRunner, SubprocessRunner

logger = logging.getLogger(__name__)

SORT_KEYS = ["discovery", "path", "dirty", "age"]
SORT_KEYS_TYPE = Literal["discovery", "path", "dirty", "age"]
CANCEL_POLL_INTERVAL = 0.1


@dataclass(frozen=True)
class ScanOptions:
    roots: tuple[Path, ...] = field(default_factory=lambda: (Path(),))
    max_depth: int = 3
    jobs: int | None = None
    timeout: float | None = DEFAULT_TIMEOUT
    include_untracked: bool = True
    all_branches: bool = False
    rewrites: RewriteConfig | None = None
    exclude_dirs: tuple[str, ...] = ()
    include_hidden: bool = False
    sort: SORT_KEYS_TYPE = "discovery"

    @property
    def workers(self) -> int:
        return max(1, self.jobs or os.cpu_count() or 1)


def inspect_repository(
    runner: CommandRunner,
    repo: DiscoveredRepository,
    options: ScanOptions,
    helper_runner: CommandRunner | None = None,
) -> RepositoryReport:
    """Compute every field of one repository's report.

    Each field is computed on its own; a failure is recorded on that field
    and the others are still filled in.
    """
    path = repo.path
    rewrites = None
    if options.rewrites is not None:
        rewrites = capture(
            collect_rewrites,
            runner,
            path,
            options.rewrites,
            helper_runner=helper_runner,
        )
    report = RepositoryReport(
        path=path,
        root=repo.root,
        branch=capture(branch_state, runner, path, all_branches=options.all_branches),
        staged=capture(staged_metrics, runner, path),
        unstaged=capture(
            unstaged_metrics, runner, path, include_untracked=options.include_untracked
        ),
        rewrites=rewrites,
    )
    if report.error:
        logger.info("%s: %s", path, report.error)
    return report


def _age_key(report: RepositoryReport) -> tuple[bool, float]:
    last = report.last_commit
    return last is None, last.timestamp() if last else 0.0


def sort_reports(
    reports: Iterable[RepositoryReport], key: SORT_KEYS_TYPE
) -> list[RepositoryReport]:
    """Order reports; every ordering is stable, so ties keep discovery order."""
    reports = list(reports)
    if key == "discovery":
        return reports
    if key == "path":
        return sorted(reports, key=lambda r: r.path.as_posix())
    if key == "dirty":
        return sorted(reports, key=lambda r: not r.is_dirty)
    if key == "age":
        return sorted(reports, key=_age_key)
    raise ValueError(f"sort_reports got an unsupported {key=}")


def _inspect_all(
    repos: tuple[DiscoveredRepository, ...],
    options: ScanOptions,
    runner: CommandRunner,
    helper_runner: CommandRunner | None,
    cancel: threading.Event,
) -> list[RepositoryReport]:
    with ThreadPoolExecutor(
        max_workers=options.workers, thread_name_prefix="git-state-scan"
    ) as executor:
        futures = [
            executor.submit(inspect_repository, runner, repo, options, helper_runner)
            for repo in repos
        ]
        pending = set(futures)
        try:
            # `cancel` may be set from another thread at any time
            while pending and not cancel.is_set():
                done, pending = wait(
                    pending, timeout=CANCEL_POLL_INTERVAL, return_when=FIRST_EXCEPTION
                )
                for future in done:
                    future.result()
            if cancel.is_set():
                raise ScanCancelled("scan cancelled")
            return [future.result() for future in futures]
        except (KeyboardInterrupt, ScanCancelled):
            cancel.set()
            runner.terminate()
            if helper_runner is not None:
                helper_runner.terminate()
            executor.shutdown(wait=True, cancel_futures=True)
            raise ScanCancelled("scan cancelled, partial results discarded") from None


def collect_report(
    options: ScanOptions,
    *,
    runner: CommandRunner | None = None,
    helper_runner: CommandRunner | None = None,
    cancel: threading.Event | None = None,
) -> ScanReport:
    """Discover repositories under `options.roots` and report on each of them.

    Repositories are processed on a bounded thread pool; the report keeps
    discovery order unless `options.sort` asks otherwise. Setting `cancel`
    (or a KeyboardInterrupt) kills running git processes and raises
    `ScanCancelled` instead of returning a partial report.

    With repository pairs configured, the report also lists the scanned
    repositories outside every pair and the pair endpoints not found.
    """
    discovery = discover(
        options.roots,
        options.max_depth,
        options.exclude_dirs,
        include_hidden=options.include_hidden,
    )
    logger.info(
        "found %d repositories under %s",
        len(discovery.repositories),
        ", ".join(str(root) for root in discovery.roots),
    )
    cancel = cancel or threading.Event()
    runner = runner or SubprocessRunner(timeout=options.timeout, cancel=cancel)
    helper = options.rewrites.helper if options.rewrites else None
    if helper and helper_runner is None:
        helper_runner = SubprocessRunner(helper, timeout=options.timeout, cancel=cancel)

    reports = _inspect_all(
        discovery.repositories, options, runner, helper_runner, cancel
    )
    pairs = options.rewrites.pairs if options.rewrites else None
    return ScanReport(
        reports=tuple(sort_reports(reports, options.sort)),
        roots=discovery.roots,
        warnings=discovery.warnings,
        other_repositories=(
            other_repositories(reports, pairs) if pairs is not None else None
        ),
    )
