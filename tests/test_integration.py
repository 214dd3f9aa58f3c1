"""Scan real repositories created with GitPython."""

import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from git import Repo

from git_state_scan.collector import ScanOptions, collect_report
from git_state_scan.models import Endpoint, RepoPair, RepositoryReport, RewriteWindow
from git_state_scan.pairs import PairConfig
from git_state_scan.rewrites import RewriteConfig

pytestmark = pytest.mark.skipif(
    shutil.which("git") is None, reason="git is not installed"
)

T0 = 1704067200  # 2024-01-01T00:00:00Z


def _commit(
    repo: Repo, name: str, content: str, *, at: int, committed: int | None = None
) -> None:
    path = Path(repo.working_tree_dir) / name
    path.write_text(content)
    repo.index.add([str(path)])
    repo.index.commit(
        f"change {name}",
        author_date=f"{at} +0000",
        commit_date=f"{committed or at} +0000",
    )


@pytest.fixture
def root(tmp_path: Path) -> Path:
    scan_root = tmp_path.resolve() / "src"
    scan_root.mkdir()
    return scan_root


def _scan(root: Path, **kwargs: object) -> dict[str, RepositoryReport]:
    options = ScanOptions(roots=(root,), timeout=30, **kwargs)  # type: ignore[arg-type]
    scan = collect_report(options)
    return {report.path.name: report for report in scan}


def test_staged_and_untracked(root: Path) -> None:
    repo = Repo.init(root / "app")
    _commit(repo, "a.txt", "one\ntwo\n", at=T0)
    _commit(repo, "b.txt", "one\n", at=T0)
    (root / "app" / "a.txt").write_text("one\nTWO\nthree\n")
    (root / "app" / "b.txt").write_text("")
    repo.index.add([str(root / "app" / "a.txt"), str(root / "app" / "b.txt")])
    (root / "app" / "notes.txt").write_text("untracked\n")

    report = _scan(root)["app"]
    assert report.error is None
    staged = report.staged.value
    assert (staged.files_changed, staged.lines_added, staged.lines_removed) == (2, 2, 2)
    unstaged = report.unstaged.value
    assert unstaged.files_changed == 0
    assert unstaged.has_untracked
    assert unstaged.untracked_count == 1
    branch = report.branch.value
    assert branch.upstream is None
    assert (branch.ahead, branch.behind) == (0, 0)
    assert branch.last_commit == datetime.fromtimestamp(T0, tz=timezone.utc)


def test_behind_upstream(tmp_path: Path, root: Path) -> None:
    origin = Repo.init(tmp_path / "origin")
    _commit(origin, "a.txt", "0\n", at=T0)
    clone = origin.clone(str(root / "clone"))
    for i in range(1, 4):
        _commit(origin, "a.txt", f"{i}\n", at=T0 + i)
    clone.remotes.origin.fetch()

    report = _scan(root)["clone"]
    branch = report.branch.value
    assert branch.upstream == f"origin/{clone.active_branch.name}"
    assert (branch.ahead, branch.behind) == (0, 3)
    assert not report.is_dirty


def test_ahead_of_upstream(tmp_path: Path, root: Path) -> None:
    origin = Repo.init(tmp_path / "origin")
    _commit(origin, "a.txt", "0\n", at=T0)
    clone = origin.clone(str(root / "clone"))
    _commit(clone, "a.txt", "1\n", at=T0 + 60)
    _commit(clone, "a.txt", "2\n", at=T0 + 120)

    branch = _scan(root)["clone"].branch.value
    assert (branch.ahead, branch.behind) == (2, 0)
    assert branch.oldest_unpushed == datetime.fromtimestamp(T0 + 60, tz=timezone.utc)
    assert branch.newest_unpushed == datetime.fromtimestamp(T0 + 120, tz=timezone.utc)


def test_tag_named_like_branch(tmp_path: Path, root: Path) -> None:
    origin = Repo.init(tmp_path / "origin")
    _commit(origin, "a.txt", "0\n", at=T0)
    clone = origin.clone(str(root / "clone"))
    _commit(clone, "a.txt", "1\n", at=T0 + 60)
    _commit(clone, "a.txt", "2\n", at=T0 + 120)
    clone.create_tag(clone.active_branch.name, ref="HEAD~2")

    branch = _scan(root)["clone"].branch.value
    assert branch.upstream == f"origin/{clone.active_branch.name}"
    assert (branch.ahead, branch.behind) == (2, 0)


def test_repository_without_commits(root: Path) -> None:
    Repo.init(root / "fresh")
    (root / "fresh" / "new.txt").write_text("a\nb\n")
    Repo(root / "fresh").index.add([str(root / "fresh" / "new.txt")])

    report = _scan(root)["fresh"]
    assert report.error is None
    assert report.branch.value.last_commit is None
    staged = report.staged.value
    assert (staged.files_changed, staged.lines_added) == (1, 2)


def test_detached_head(root: Path) -> None:
    repo = Repo.init(root / "app")
    _commit(repo, "a.txt", "1\n", at=T0)
    _commit(repo, "a.txt", "2\n", at=T0 + 1)
    repo.git.checkout(repo.head.commit.parents[0].hexsha)

    branch = _scan(root)["app"].branch.value
    assert branch.is_detached
    assert branch.upstream is None


def test_rewritten_commits(root: Path) -> None:
    repo = Repo.init(root / "app")
    _commit(repo, "a.txt", "1\n", at=T0, committed=T0 - 3600 * 24)
    _commit(repo, "b.txt", "1\n", at=T0 - 3600, committed=T0 + 5)
    _commit(repo, "c.txt", "1\n", at=T0 + 10)
    window = RewriteWindow(
        since=datetime.fromtimestamp(T0, tz=timezone.utc),
        until=datetime.fromtimestamp(T0, tz=timezone.utc) + timedelta(hours=1),
    )

    report = _scan(root, rewrites=RewriteConfig(window=window))["app"]
    history = report.rewrites.value
    assert len(history.entries) == 1
    assert history.entries[0].rewritten == datetime.fromtimestamp(T0 + 5, tz=timezone.utc)
    assert history.entries[0].commit == repo.head.commit.parents[0].hexsha


def test_missing_rewrite_helper(root: Path) -> None:
    repo = Repo.init(root / "app")
    _commit(repo, "a.txt", "1\n", at=T0)

    pair = RepoPair(
        "app",
        Endpoint(root / "app", repo.active_branch.name),
        Endpoint(root.parent / "mirror", "main"),
    )
    config = RewriteConfig(
        helper=str(root / "no-such-helper"), pairs=PairConfig(pairs=(pair,))
    )
    scan = collect_report(ScanOptions(roots=(root,), timeout=30, rewrites=config))
    report = scan.reports[0]
    assert set(report.errors) == {"rewrite_history"}
    assert str(report.errors["rewrite_history"]).startswith("unavailable:")
    assert report.branch.ok
    assert [(o.name, o.reason) for o in scan.other_repositories] == [
        ((root.parent / "mirror").as_posix(), "missing")
    ]


def test_several_repositories_in_order(root: Path) -> None:
    for name in ["c", "a", "b"]:
        _commit(Repo.init(root / "group" / name), "a.txt", "1\n", at=T0)
    (root / "group" / "b" / "a.txt").write_text("changed\n")

    scan = collect_report(ScanOptions(roots=(root,), jobs=3, timeout=30))
    assert [report.path.name for report in scan] == ["a", "b", "c"]
    assert [report.path.name for report in scan if report.is_dirty] == ["b"]
