"""Find commits whose history was rewritten after they were authored.

Two sources are supported: ``git log`` (the committer date moves forward on
amend, rebase or cherry-pick while the author date stays) and an external
helper binary that replays a source repository onto a target and prints the
commits it would write as JSON. The helper is only run for repositories that
are the source of a configured pair; other repositories use ``git log``.
"""

import json
import logging
import re
from collections.abc import Callable, Iterable, Iterator
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from .errors import LaunchFailure, ParseFailure, Unsupported
from .models import PairRewrites, RepoPair, RewriteEntry, RewriteHistory, RewriteWindow
from .pairs import PairConfig
from .refs import has_commits, parse_epoch
from .runner import CommandRunner, require_success

logger = logging.getLogger(__name__)

LOG_FORMAT = "--format=%H%x09%at%x09%ct"
HELPER_TIME_FORMAT = "%m/%d/%y %I:%M %p"
NOTHING = "nothing to do"

_SHA_RE = re.compile(r"^[0-9a-f]{7,64}$")

Candidate = tuple[str, datetime, datetime]


@dataclass(frozen=True)
class RewriteConfig:
    """What to scan for rewrites, and how."""

    window: RewriteWindow = field(default_factory=RewriteWindow)
    revision_range: str = "HEAD"
    helper: str | None = None
    pairs: PairConfig | None = None


def log_args(revision_range: str) -> tuple[str, ...]:
    return ("log", LOG_FORMAT, revision_range)


def helper_args(pair: RepoPair) -> tuple[str, ...]:
    """Arguments for the helper: replay everything after NEXT up to HEAD."""
    return (
        "--source-repository-path",
        str(pair.source.path),
        "--source-repository-branch",
        pair.source.branch,
        "--target-repo",
        str(pair.target.path),
        "--target-repo-branch",
        pair.target.branch,
        "--commit-from",
        "NEXT",
        "--commit-to",
        "HEAD",
        "--mode",
        "print",
        "--output-format",
        "json",
    )


def parse_log_line(line: str) -> Candidate:
    """Parse ``<sha><TAB><author epoch><TAB><committer epoch>``."""
    parts = line.split("\t")
    if len(parts) != 3:  # noqa: PLR2004
        raise ParseFailure(f"unexpected log line: {line!r}")
    commit, authored, rewritten = (part.strip() for part in parts)
    if not _SHA_RE.match(commit):
        raise ParseFailure(f"not a commit id: {commit!r}")
    return commit, parse_epoch(authored), parse_epoch(rewritten)


def parse_helper_time(value: object) -> datetime:
    if not isinstance(value, str):
        raise ParseFailure(f"expected a timestamp string, got {value!r}")
    try:
        naive = datetime.strptime(value.strip(), HELPER_TIME_FORMAT)  # noqa: DTZ007
    except ValueError as e:
        raise ParseFailure(f"unexpected helper timestamp {value!r}") from e
    # the helper prints local time
    return naive.astimezone()


def parse_helper_entry(entry: object) -> Candidate:
    if not isinstance(entry, dict):
        raise ParseFailure(f"expected an object, got {entry!r}")
    commit = entry.get("commit_hash")
    if not isinstance(commit, str) or not commit:
        raise ParseFailure(f"entry without commit_hash: {entry!r}")
    authored = parse_helper_time(entry.get("original_commit_dt"))
    rewritten = parse_helper_time(entry.get("dt"))
    return commit, authored, rewritten


def parse_helper_payload(text: str) -> list[object]:
    """Decode the helper's JSON output into a list of raw entries."""
    if not text.strip():
        return []
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseFailure(f"helper printed invalid JSON: {e}") from e
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and str(payload.get("msg", "")).lower() == NOTHING:
        return []
    raise ParseFailure(f"unexpected helper payload: {payload!r:.200}")


def select_rewrites(
    candidates: Iterable[Candidate], window: RewriteWindow
) -> list[RewriteEntry]:
    """Keep commits rewritten after authorship, with the rewrite inside `window`."""
    return [
        RewriteEntry(commit, authored, rewritten, window)
        for commit, authored, rewritten in candidates
        if rewritten > authored and window.contains(rewritten)
    ]


class _Parsed:
    """Parse items one at a time, recording failures instead of raising."""

    def __init__(self, repo: Path) -> None:
        self.repo = repo
        self.warnings: list[str] = []

    def each(
        self, items: Iterable[Any], parse: Callable[[Any], Candidate]
    ) -> Iterator[Candidate]:
        for index, item in enumerate(items, start=1):
            try:
                yield parse(item)
            except ParseFailure as e:
                logger.warning(
                    "Skipping rewrite entry %d in %s: %s", index, self.repo, e
                )
                self.warnings.append(f"entry {index}: {e}")


def _from_log(
    runner: CommandRunner, repo: Path, config: RewriteConfig, parsed: _Parsed
) -> list[Candidate]:
    if not has_commits(runner, repo):
        return []
    args = log_args(config.revision_range)
    result = require_success(runner.run(repo, args), args)
    lines = [line for line in result.stdout.splitlines() if line.strip()]
    return list(parsed.each(lines, parse_log_line))


def _entry_time(entry: object) -> datetime | None:
    if not isinstance(entry, dict):
        return None
    value = entry.get("original_commit_dt") or entry.get("dt")
    if not isinstance(value, str) or not value.strip():
        return None
    # a bad time is already a warning on the entry itself
    with suppress(ParseFailure):
        return parse_helper_time(value)
    return None


def summarize_pair(pair: RepoPair, payload: Iterable[object]) -> PairRewrites:
    """Count distinct commits and their time bounds in one helper answer.

    An entry without ``commit_hash`` counts as a commit of its own. The time
    is ``original_commit_dt``, or ``dt`` when that is missing.
    """
    commits: set[str] = set()
    times: list[datetime] = []
    for entry in payload:
        commit = entry.get("commit_hash") if isinstance(entry, dict) else None
        if not isinstance(commit, str) or not commit:
            commit = json.dumps(entry, sort_keys=True)
        commits.add(commit)
        moment = _entry_time(entry)
        if moment is not None:
            times.append(moment)
    return PairRewrites(
        pair=pair,
        commits=len(commits),
        earliest=min(times) if times else None,
        latest=max(times) if times else None,
    )


def _run_helper(
    helper_runner: CommandRunner, repo: Path, pair: RepoPair, helper: str
) -> list[object]:
    args = helper_args(pair)
    try:
        result = helper_runner.run(repo, args)
    except LaunchFailure as e:
        raise Unsupported(f"rewrite helper {helper!r} could not be launched") from e
    require_success(result, [helper, *args])
    return parse_helper_payload(result.stdout)


def _from_helper(
    helper_runner: CommandRunner,
    repo: Path,
    config: RewriteConfig,
    pairs: list[RepoPair],
    parsed: _Parsed,
) -> tuple[list[Candidate], list[PairRewrites]]:
    helper = config.helper or "helper"
    candidates: list[Candidate] = []
    summaries: list[PairRewrites] = []
    seen: set[str] = set()
    for pair in pairs:
        payload = _run_helper(helper_runner, repo, pair, helper)
        logger.debug(
            "rewrite helper reported %d entries for match-key %s",
            len(payload),
            pair.key,
        )
        summaries.append(summarize_pair(pair, payload))
        for candidate in parsed.each(payload, parse_helper_entry):
            if candidate[0] in seen:
                continue
            seen.add(candidate[0])
            candidates.append(candidate)
    return candidates, summaries


def collect_rewrites(
    runner: CommandRunner,
    repo: Path,
    config: RewriteConfig,
    *,
    helper_runner: CommandRunner | None = None,
) -> RewriteHistory:
    """Collect rewritten commits inside the window.

    With a helper, every pair whose source is `repo` is replayed by the
    helper; otherwise ``git log`` reads `config.revision_range`. A malformed
    line is skipped with a warning; the other lines still count. The result
    keeps the tool's order, so repeating a scan over unchanged history gives
    the same entries.
    """
    parsed = _Parsed(repo)
    pairs = config.pairs.for_source(repo) if config.pairs else []
    summaries: list[PairRewrites] = []
    if config.helper and pairs:
        if helper_runner is None:
            raise Unsupported(f"no runner for rewrite helper {config.helper!r}")
        candidates, summaries = _from_helper(
            helper_runner, repo, config, pairs, parsed
        )
    else:
        candidates = _from_log(runner, repo, config, parsed)
    entries = select_rewrites(candidates, config.window)
    return RewriteHistory(
        entries=tuple(entries),
        warnings=tuple(parsed.warnings),
        pairs=tuple(summaries),
    )
