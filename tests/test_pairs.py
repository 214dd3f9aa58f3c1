"""Tests for the repository pair configuration."""

from pathlib import Path

import pytest

from git_state_scan.errors import ConfigError
from git_state_scan.models import (
    BranchState,
    DiffMetrics,
    Endpoint,
    FieldResult,
    RepoPair,
    RepositoryReport,
)
from git_state_scan.pairs import (
    PairConfig,
    build_pair_config,
    load_pair_config,
    other_repositories,
)

CONFIG = """\
[[repo]]
repository-path = "/src/web"
repository-branch = "main"
match-key = "web"
repo-type = "target"

[[repo]]
repository-path = "/src/web-private"
repository-branch = "develop"
match-key = "web"
repo-type = "source"

[[repo]]
repository-path = "/src/api"
repository-branch = "main"
match-key = 7
repo-type = "source"

[[repo]]
repository-path = "/mirror/api"
repository-branch = "main"
match-key = 7
repo-type = "target"
"""


def _spec(path: str, key: object, repo_type: str, **extra: object) -> dict:
    return {
        "repository-path": path,
        "repository-branch": "main",
        "match-key": key,
        "repo-type": repo_type,
        **extra,
    }


def _report(root: Path, name: str, branch: str | None = "main") -> RepositoryReport:
    state = FieldResult(BranchState(branch)) if branch else FieldResult()
    return RepositoryReport(
        path=root / name,
        root=root,
        branch=state,
        staged=FieldResult(DiffMetrics()),
        unstaged=FieldResult(DiffMetrics()),
    )


class TestBuildPairConfig:
    """Test build_pair_config function."""

    def test_pairs_by_match_key(self) -> None:
        """Test that tables sharing a key form a pair, ordered by key."""
        config = build_pair_config(
            [
                _spec("/b-target", "b", "target"),
                _spec("/a-source", "a", "source"),
                _spec("/b-source", "b", "source"),
                _spec("/a-target", "a", "target"),
            ]
        )
        assert [pair.key for pair in config.pairs] == ["a", "b"]
        assert config.pairs[1] == RepoPair(
            "b",
            Endpoint(Path("/b-source"), "main"),
            Endpoint(Path("/b-target"), "main"),
        )
        assert [e.path.name for e in config.tracked] == [
            "a-source",
            "a-target",
            "b-source",
            "b-target",
        ]

    def test_integer_match_key(self) -> None:
        """Test that an integer match key is used as text."""
        config = build_pair_config(
            [_spec("/s", 10, "source"), _spec("/t", 10, "target")]
        )
        assert config.pairs[0].key == "10"

    @pytest.mark.parametrize("flag", [True, 1])
    def test_ignored_key(self, flag: object) -> None:
        """Test that one ignored table drops the whole pair."""
        config = build_pair_config(
            [
                _spec("/s", "k", "source"),
                _spec("/t", "k", "target", ignore=flag),
                _spec("/s2", "k2", "source", ignore=False),
                _spec("/t2", "k2", "target", ignore=0),
            ]
        )
        assert [pair.key for pair in config.pairs] == ["k2"]
        assert config.ignored_paths == (Path("/s"), Path("/t"))

    def test_ignored_key_may_be_incomplete(self) -> None:
        """Test that an ignored key needs no target."""
        config = build_pair_config([_spec("/s", "k", "source", ignore=True)])
        assert config.pairs == ()
        assert config.ignored_paths == (Path("/s"),)

    def test_duplicate_source(self) -> None:
        """Test that two sources for one key are rejected."""
        specs = [_spec("/a", "k", "source"), _spec("/b", "k", "source")]
        message = "multiple source repos defined for match-key k"
        with pytest.raises(ConfigError, match=message):
            build_pair_config(specs)

    def test_missing_target(self) -> None:
        """Test that a key without a target is rejected."""
        with pytest.raises(ConfigError, match="must define both source and target"):
            build_pair_config([_spec("/a", "k", "source")])

    @pytest.mark.parametrize(
        ("spec", "message"),
        [
            (_spec("/a", "k", "mirror"), "repo-type"),
            (_spec("/a", True, "source"), "match-key"),
            (_spec("/a", 1.5, "source"), "match-key"),
            (_spec("", "k", "source"), "repository-path"),
            (_spec("/a", "k", "source", ignore="yes"), "ignore"),
            ("not a table", "expected a table"),
        ],
    )
    def test_invalid_table(self, spec: object, message: str) -> None:
        """Test that malformed tables are configuration errors."""
        with pytest.raises(ConfigError, match=message):
            build_pair_config([spec])

    def test_relative_paths(self) -> None:
        """Test that relative paths are taken from the base directory."""
        config = build_pair_config(
            [_spec("app", "k", "source"), _spec("/abs", "k", "target")],
            base_dir=Path("/etc/pairs"),
        )
        assert config.pairs[0].source.path == Path("/etc/pairs/app")
        assert config.pairs[0].target.path == Path("/abs")


class TestLoadPairConfig:
    """Test load_pair_config function."""

    def test_load(self, tmp_path: Path) -> None:
        """Test reading a TOML file."""
        path = tmp_path / "pairs.toml"
        path.write_text(CONFIG)
        config = load_pair_config(path)
        assert [pair.key for pair in config.pairs] == ["7", "web"]
        web = config.pairs[1]
        assert web.source == Endpoint(Path("/src/web-private"), "develop")
        assert web.target == Endpoint(Path("/src/web"), "main")

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test that an unreadable file is a configuration error."""
        with pytest.raises(ConfigError, match="failed to read"):
            load_pair_config(tmp_path / "missing.toml")

    def test_invalid_toml(self, tmp_path: Path) -> None:
        """Test that a syntax error is a configuration error."""
        path = tmp_path / "pairs.toml"
        path.write_text("[[repo]\n")
        with pytest.raises(ConfigError, match="failed to parse"):
            load_pair_config(path)

    def test_no_repo_tables(self, tmp_path: Path) -> None:
        """Test that a file without [[repo]] tables is rejected."""
        path = tmp_path / "pairs.toml"
        path.write_text('title = "pairs"\n')
        with pytest.raises(ConfigError, match=r"no \[\[repo\]\] tables"):
            load_pair_config(path)


class TestOtherRepositories:
    """Test other_repositories function."""

    def test_reasons_and_order(self, tmp_path: Path) -> None:
        """Test untracked, ignored and missing repositories."""
        root = tmp_path.resolve() / "src"
        missing = tmp_path.resolve() / "archive" / "gone"
        config = PairConfig(
            pairs=(
                RepoPair("a", Endpoint(root / "app", "main"), Endpoint(missing, "dev")),
                RepoPair("b", Endpoint(root / "lib", "main"), Endpoint(missing, "dev")),
            ),
            ignored_paths=(root / "scratch",),
        )
        reports = [
            _report(root, "zeta"),
            _report(root, "app"),
            _report(root, "scratch", branch=None),
            _report(root, "lib"),
        ]
        other = other_repositories(reports, config)
        assert [(o.name, o.reason, o.branch) for o in other] == [
            (missing.as_posix(), "missing", "dev"),
            ("scratch", "ignored", None),
            ("zeta", "untracked", "main"),
        ]

    def test_symlinked_endpoint(self, tmp_path: Path) -> None:
        """Test that endpoints are matched after resolving symbolic links."""
        root = tmp_path.resolve()
        (root / "real").mkdir()
        (root / "alias").symlink_to(root / "real", target_is_directory=True)
        config = PairConfig(
            pairs=(
                RepoPair(
                    "k", Endpoint(root / "alias", "main"), Endpoint(root / "t", "main")
                ),
            )
        )
        other = other_repositories([_report(root, "real")], config)
        assert [(o.name, o.reason) for o in other] == [
            ((root / "t").as_posix(), "missing")
        ]

    def test_for_source(self, tmp_path: Path) -> None:
        """Test finding the pairs a repository is the source of."""
        root = tmp_path.resolve()
        pair = RepoPair("k", Endpoint(root / "s", "main"), Endpoint(root / "t", "main"))
        config = PairConfig(pairs=(pair,))
        assert config.for_source(root / "s") == [pair]
        assert config.for_source(root / "t") == []
