"""Staged and unstaged diff statistics."""

import re
from dataclasses import replace
from pathlib import Path

from .errors import ParseFailure
from .models import DiffMetrics
from .refs import has_commits
from .runner import CommandRunner, require_success

# `git hash-object -t tree /dev/null`
EMPTY_TREE = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"

UNSTAGED_ARGS = ("diff", "--numstat", "--ignore-submodules", "--", ".")
UNTRACKED_ARGS = ("ls-files", "--others", "--exclude-standard")

_SUMMARY_RE = re.compile(r"^\s*\d+ files? changed")


def staged_args(base: str | None = None) -> tuple[str, ...]:
    revision = (base,) if base else ()
    return (
        "diff",
        "--cached",
        "--numstat",
        "--ignore-submodules",
        *revision,
        "--",
        ".",
    )


def parse_numstat(text: str) -> DiffMetrics:
    """Sum ``git diff --numstat`` output.

    Binary files are printed as ``-<TAB>-`` and count as a changed file with no
    line changes.
    """
    files = added = removed = 0
    for line in text.splitlines():
        if not line.strip() or _SUMMARY_RE.match(line):
            continue
        parts = line.split("\t", 2)
        if len(parts) != 3:  # noqa: PLR2004
            raise ParseFailure(f"unexpected numstat line: {line!r}")
        plus, minus, _path = parts
        files += 1
        if plus == "-" and minus == "-":
            continue
        if not (plus.isdigit() and minus.isdigit()):
            raise ParseFailure(f"unexpected numstat counts: {line!r}")
        added += int(plus)
        removed += int(minus)
    return DiffMetrics(files_changed=files, lines_added=added, lines_removed=removed)


def count_paths(text: str) -> int:
    return sum(1 for line in text.splitlines() if line.strip())


def staged_metrics(runner: CommandRunner, repo: Path) -> DiffMetrics:
    """Diff the index against HEAD, or the empty tree before the first commit."""
    args = staged_args() if has_commits(runner, repo) else staged_args(EMPTY_TREE)
    result = require_success(runner.run(repo, args), args)
    return parse_numstat(result.stdout)


def untracked_count(runner: CommandRunner, repo: Path) -> int:
    result = require_success(runner.run(repo, UNTRACKED_ARGS), UNTRACKED_ARGS)
    return count_paths(result.stdout)


def unstaged_metrics(
    runner: CommandRunner, repo: Path, *, include_untracked: bool = True
) -> DiffMetrics:
    """Diff the working tree against the index, and look for untracked files."""
    result = require_success(runner.run(repo, UNSTAGED_ARGS), UNSTAGED_ARGS)
    metrics = parse_numstat(result.stdout)
    if not include_untracked:
        return metrics
    untracked = untracked_count(runner, repo)
    return replace(metrics, has_untracked=untracked > 0, untracked_count=untracked)
