"""Generate sample output."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

from git_state_scan.errors import InvocationTimeout
from git_state_scan.format import format_report
from git_state_scan.models import (
    BranchState,
    DiffMetrics,
    FieldResult,
    RepositoryReport,
    ScanReport,
    UnpushedBranch,
)

now = datetime.now(timezone.utc)
root = Path("~/src").expanduser()


def repo(
    name: str,
    branch: BranchState | None = None,
    staged: DiffMetrics | None = None,
    unstaged: DiffMetrics | None = None,
    branch_error: Exception | None = None,
) -> RepositoryReport:
    return RepositoryReport(
        path=root / name,
        root=root,
        branch=FieldResult(
            None if branch_error else branch or BranchState("main", "origin/main"),
            branch_error,  # type: ignore[arg-type]
        ),
        staged=FieldResult(staged or DiffMetrics()),
        unstaged=FieldResult(unstaged or DiffMetrics()),
    )


scan = ScanReport(
    reports=(
        repo("my-repo", unstaged=DiffMetrics(files_changed=2, lines_added=14, lines_removed=3)),
        repo(
            "my-other-repo",
            branch=BranchState(
                "main",
                "origin/main",
                ahead=1,
                oldest_unpushed=now - timedelta(days=3),
                newest_unpushed=now - timedelta(days=3),
                other_unpushed=(
                    UnpushedBranch(
                        "develop", "origin/develop", 3, oldest=now - timedelta(hours=5)
                    ),
                ),
            ),
        ),
        repo("my-3rd-repo", unstaged=DiffMetrics(has_untracked=True, untracked_count=1)),
        repo("repo-4", branch_error=InvocationTimeout("`git symbolic-ref` did not complete in 60.0 secs")),
        repo("clean-repo"),
    ),
    roots=(root,),
)
print(format_report(scan, include_ok=False, fmt="report", now=now))
