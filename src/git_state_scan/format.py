"""Format a `ScanReport` to readable output."""

import json
import pprint
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Literal

import yaml
from colorama import Fore

from .models import (
    BranchState,
    DiffMetrics,
    OtherRepository,
    PairRewrites,
    RepositoryReport,
    RewriteHistory,
    ScanReport,
)

REPORT_FORMATS = ["yaml", "report", "json", "pprint"]
REPORT_FORMATS_TYPE = Literal["yaml", "report", "json", "pprint"]

RepoStats = dict[
    str, "None | str | int | bool | list[str] | RepoStats | list[RepoStats]"
]

SEC_PER_MIN = 60
SEC_PER_HOUR = 60 * 60
SEC_PER_DAY = 60 * 60 * 24

REPORT_WIDTH = 100
WARNING_KEYS = ("errors:", "rewrite_warnings:")


def humanize_age(age: timedelta) -> str:
    """Render a duration as minutes, hours or days with one decimal."""
    secs = max(age.total_seconds(), 0)
    if secs < SEC_PER_HOUR:
        return f"{secs / SEC_PER_MIN:.1f} min"
    if secs < SEC_PER_DAY:
        return f"{secs / SEC_PER_HOUR:.1f} hr"
    return f"{secs / SEC_PER_DAY:.1f} days"


def _ago(moment: datetime | None, now: datetime) -> str | None:
    if moment is None:
        return None
    return f"{humanize_age(now - moment)} ago"


def _diff_stats(metrics: DiffMetrics | None) -> RepoStats:
    if metrics is None or not (
        metrics.files_changed or metrics.lines_added or metrics.lines_removed
    ):
        return {}
    return {
        "files": metrics.files_changed,
        "added": metrics.lines_added,
        "removed": metrics.lines_removed,
    }


def _branch_stats(
    state: BranchState | None, *, include_all: bool, now: datetime
) -> RepoStats:
    if state is None:
        return {}
    stats: RepoStats = {
        "is_detached_head": state.is_detached,
        "upstream_gone": state.upstream_gone,
        "commits_ahead": state.ahead,
        "commits_behind": state.behind,
        "oldest_unpushed": _ago(state.oldest_unpushed, now),
        "newest_unpushed": _ago(state.newest_unpushed, now),
        "branches_out_of_sync": {
            b.branch: {
                "remote_branch": b.upstream,
                "commits_ahead": b.ahead,
                "oldest_unpushed": _ago(b.oldest, now),
            }
            for b in state.other_unpushed
        },
    }
    if include_all:
        stats["active_branch"] = None if state.is_detached else state.branch
        stats["remote_branch"] = state.upstream
        stats["last_commit"] = _ago(state.last_commit, now)
    return stats


def _rewrite_stats(history: RewriteHistory | None) -> RepoStats:
    if history is None:
        return {}
    return {
        "rewritten_commits": [
            {
                "commit": entry.commit[:7],
                "authored": entry.authored.isoformat(),
                "rewritten": entry.rewritten.isoformat(),
            }
            for entry in history.entries
        ],
        "rewrite_warnings": list(history.warnings),
    }


def repository_issues(
    report: RepositoryReport, *, include_all: bool = False, now: datetime | None = None
) -> RepoStats:
    """Return the non-empty facts about one repository, errors inline."""
    now = now or datetime.now(timezone.utc)
    unstaged = report.unstaged.value
    issues: RepoStats = {
        **_branch_stats(report.branch.value, include_all=include_all, now=now),
        "staged": _diff_stats(report.staged.value),
        "unstaged": _diff_stats(unstaged),
        "untracked_files": unstaged.untracked_count if unstaged else 0,
        **_rewrite_stats(report.rewrites.value if report.rewrites else None),
        "errors": {name: str(error) for name, error in report.errors.items()},
    }
    return {k: v for k, v in issues.items() if v}


def display_name(report: RepositoryReport, *, multi_root: bool) -> str:
    if multi_root:
        return report.path.as_posix()
    return report.path.relative_to(report.root).as_posix()


def report_issues(
    scan: ScanReport, *, include_all: bool = False, now: datetime | None = None
) -> dict[str, RepoStats]:
    now = now or datetime.now(timezone.utc)
    return {
        display_name(report, multi_root=scan.multi_root): repository_issues(
            report, include_all=include_all, now=now
        )
        for report in scan
    }


def _pair_stats(summary: PairRewrites, now: datetime) -> RepoStats:
    pair = summary.pair
    stats: RepoStats = {
        "match_key": pair.key,
        "source": f"{pair.source.name} ({pair.source.branch})",
        "target": f"{pair.target.name} ({pair.target.branch})",
        "source_path": pair.source.path.as_posix(),
        "target_path": pair.target.path.as_posix(),
        "commits": summary.commits,
        "earliest": _ago(summary.earliest, now),
        "latest": _ago(summary.latest, now),
    }
    return {k: v for k, v in stats.items() if v is not None}


def _other_stats(other: OtherRepository, now: datetime) -> RepoStats:
    stats: RepoStats = {
        "repo": other.name,
        "root": other.root,
        "branch": other.branch,
        "status": other.reason,
        "commits_ahead": other.ahead,
        "oldest_unpushed": _ago(other.oldest_unpushed, now),
        "newest_unpushed": _ago(other.newest_unpushed, now),
    }
    return {k: v for k, v in stats.items() if v}


def scan_sections(scan: ScanReport, *, now: datetime | None = None) -> RepoStats:
    """Pair summaries and repositories outside the pairs, when pairs are configured."""
    if scan.other_repositories is None:
        return {}
    now = now or datetime.now(timezone.utc)
    sections: RepoStats = {
        "rewrite_pairs": [_pair_stats(s, now) for s in scan.pair_rewrites],
        "other_repositories": [_other_stats(o, now) for o in scan.other_repositories],
    }
    return {k: v for k, v in sections.items() if v}


def format_report(
    scan: ScanReport,
    *,
    include_ok: bool,
    fmt: REPORT_FORMATS_TYPE,
    include_all: bool = False,
    now: datetime | None = None,
) -> str:
    """Format report to a readable output.

    Without repository pairs the output maps each repository to its issues.
    With pairs, that mapping moves under ``repositories`` next to the
    ``rewrite_pairs`` and ``other_repositories`` sections.
    """
    now = now or datetime.now(timezone.utc)
    issues = report_issues(scan, include_all=include_all, now=now)
    if not include_ok:
        issues = {k: v for k, v in issues.items() if v}
    sections = scan_sections(scan, now=now)
    document: RepoStats = {"repositories": issues, **sections} if sections else issues
    try:
        formatter = {
            "yaml": _format_yaml,
            "report": partial(_format_report, sectioned=bool(sections)),
            "json": _format_json,
            "pprint": _format_pprint,
        }[fmt]
    except KeyError as e:
        raise ValueError(f"format_report got an unsupported {fmt=}") from e
    return formatter(document)


def _format_yaml(document: RepoStats) -> str:
    return yaml.safe_dump(
        document,
        allow_unicode=True,
        default_flow_style=False,
        indent=2,
        sort_keys=False,
        width=REPORT_WIDTH,
    )


def _line_color(line: str, section: str | None, *, sectioned: bool) -> str | None:
    indent = len(line) - len(line.lstrip(" "))
    if sectioned and indent == 0 and not line.startswith("-"):
        return Fore.CYAN
    header_indent = 2 if sectioned else 0
    in_repositories = not sectioned or section == "repositories"
    if in_repositories and indent == header_indent and not line.endswith("{}"):
        return Fore.LIGHTRED_EX
    return None


def _format_report(document: RepoStats, *, sectioned: bool = False) -> str:
    """YAML with repository names in red and error or warning blocks in yellow."""
    if not document:
        return ""
    lines = []
    section = None
    warning_indent: int | None = None
    for line in _format_yaml(document).splitlines():
        indent = len(line) - len(line.lstrip(" "))
        if indent == 0 and not line.startswith("-"):
            section = line.rstrip(":")
        if warning_indent is not None and indent <= warning_indent:
            warning_indent = None
        if warning_indent is None and line.lstrip().startswith(WARNING_KEYS):
            warning_indent = indent
        if warning_indent is not None:
            color = Fore.YELLOW
        else:
            color = _line_color(line, section, sectioned=sectioned)
        lines.append(f"{color}{line}{Fore.RESET}" if color else line)
    return "\n".join(lines)


def _format_json(document: RepoStats) -> str:
    return json.dumps(document, indent=2, ensure_ascii=False)


def _format_pprint(document: RepoStats) -> str:
    return pprint.pformat(document, sort_dicts=False, width=REPORT_WIDTH)
