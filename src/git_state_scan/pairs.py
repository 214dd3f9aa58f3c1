"""Source/target repository pairs for the rewrite helper.

The pairs come from a TOML file with one ``[[repo]]`` table per endpoint::

    [[repo]]
    repository-path = "~/src/app"
    repository-branch = "main"
    match-key = "app"
    repo-type = "source"

Two tables sharing a ``match-key`` form a pair. ``ignore = true`` (or ``1``)
on any table of a key drops the whole pair; its repositories are then
reported as ignored instead of untracked.
"""

import logging
import tomllib
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .errors import ConfigError
from .models import Endpoint, OtherRepository, RepoPair, RepositoryReport

logger = logging.getLogger(__name__)

REPO_TYPES = ("source", "target")


@dataclass(frozen=True)
class PairConfig:
    pairs: tuple[RepoPair, ...] = ()
    ignored_paths: tuple[Path, ...] = ()

    @property
    def tracked(self) -> tuple[Endpoint, ...]:
        return tuple(
            endpoint for pair in self.pairs for endpoint in (pair.source, pair.target)
        )

    def for_source(self, repo: Path) -> list[RepoPair]:
        """Pairs whose source endpoint is `repo`."""
        path = canonical(repo)
        return [pair for pair in self.pairs if canonical(pair.source.path) == path]


@dataclass
class _PairBuilder:
    source: Endpoint | None = None
    target: Endpoint | None = None
    ignored: bool = False
    paths: list[Path] = field(default_factory=list)


def canonical(path: Path) -> Path:
    return path.expanduser().resolve()


def _match_key(value: object, index: int) -> str:
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ConfigError(
            f"repo {index}: match-key must be string or integer, found {value!r}"
        )
    return str(value)


def _ignore_flag(value: object, index: int) -> bool:
    if value is None or isinstance(value, bool):
        return bool(value)
    if isinstance(value, int):
        return value == 1
    raise ConfigError(
        f"repo {index}: ignore must be boolean or integer, found {value!r}"
    )


def _text(spec: Mapping[str, object], name: str, index: int) -> str:
    value = spec.get(name)
    if not isinstance(value, str) or not value:
        raise ConfigError(f"repo {index}: {name} must be a non-empty string")
    return value


def build_pair_config(
    specs: Iterable[object], base_dir: Path | None = None
) -> PairConfig:
    """Group ``[[repo]]`` tables by match key into pairs.

    Relative repository paths are taken relative to `base_dir`. Pairs are
    ordered by match key.
    """
    builders: dict[str, _PairBuilder] = {}
    for index, spec in enumerate(specs, start=1):
        if not isinstance(spec, Mapping):
            raise ConfigError(f"repo {index}: expected a table, found {spec!r}")
        key = _match_key(spec.get("match-key"), index)
        repo_type = spec.get("repo-type")
        if repo_type not in REPO_TYPES:
            raise ConfigError(
                f"repo {index}: repo-type must be one of {REPO_TYPES}, "
                f"found {repo_type!r}"
            )
        path = Path(_text(spec, "repository-path", index)).expanduser()
        if base_dir is not None and not path.is_absolute():
            path = base_dir / path
        endpoint = Endpoint(path, _text(spec, "repository-branch", index))

        builder = builders.setdefault(key, _PairBuilder())
        builder.paths.append(path)
        if _ignore_flag(spec.get("ignore"), index):
            builder.ignored = True
        if builder.ignored:
            continue
        if getattr(builder, repo_type) is not None:
            raise ConfigError(f"multiple {repo_type} repos defined for match-key {key}")
        setattr(builder, repo_type, endpoint)

    pairs = []
    ignored_paths: list[Path] = []
    for key, builder in builders.items():
        if builder.ignored:
            ignored_paths.extend(builder.paths)
            continue
        if builder.source is None or builder.target is None:
            raise ConfigError(
                f"match-key {key} must define both source and target repos"
            )
        pairs.append(RepoPair(key, builder.source, builder.target))
    pairs.sort(key=lambda pair: pair.key)
    return PairConfig(pairs=tuple(pairs), ignored_paths=tuple(ignored_paths))


def load_pair_config(path: Path) -> PairConfig:
    """Read and validate a pair configuration file."""
    path = Path(path).expanduser()
    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except OSError as e:
        raise ConfigError(f"failed to read rewrite config {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"failed to parse rewrite config {path}: {e}") from e
    specs = data.get("repo")
    if not isinstance(specs, list):
        raise ConfigError(f"rewrite config {path} has no [[repo]] tables")
    config = build_pair_config(specs, base_dir=path.parent)
    logger.info(
        "loaded %d repository pairs (%d ignored paths) from %s",
        len(config.pairs),
        len(config.ignored_paths),
        path,
    )
    return config


def _display_name(report: RepositoryReport) -> str:
    name = report.path.relative_to(report.root).as_posix()
    return report.path.name if name == "." else name


def other_repositories(
    reports: Iterable[RepositoryReport], config: PairConfig
) -> tuple[OtherRepository, ...]:
    """List scanned repositories outside every pair, and pair endpoints not found.

    Paths are compared after resolving symbolic links. Each missing endpoint
    is listed once, even when several pairs share it.
    """
    tracked = {canonical(endpoint.path) for endpoint in config.tracked}
    ignored = {canonical(path) for path in config.ignored_paths}

    entries: list[OtherRepository] = []
    seen: set[Path] = set()
    for report in reports:
        path = canonical(report.path)
        seen.add(path)
        if path in tracked:
            continue
        state = report.branch.value
        entries.append(
            OtherRepository(
                name=_display_name(report),
                root=report.root.as_posix(),
                path=report.path,
                reason="ignored" if path in ignored else "untracked",
                branch=state.branch if state else None,
                ahead=state.ahead if state else None,
                oldest_unpushed=state.oldest_unpushed if state else None,
                newest_unpushed=state.newest_unpushed if state else None,
            )
        )

    for endpoint in config.tracked:
        path = canonical(endpoint.path)
        if path in seen:
            continue
        seen.add(path)
        entries.append(
            OtherRepository(
                name=endpoint.path.as_posix(),
                root=endpoint.path.as_posix(),
                path=endpoint.path,
                reason="missing",
                branch=endpoint.branch,
            )
        )

    entries.sort(key=lambda e: (e.root, e.name, e.branch or ""))
    return tuple(entries)
