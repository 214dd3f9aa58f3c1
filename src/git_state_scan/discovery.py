"""Find git repositories under a set of root directories."""

import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from .errors import AccessFailure, NoDiscoverableRoots

logger = logging.getLogger(__name__)

MARKER = ".git"


@dataclass(frozen=True)
class DiscoveredRepository:
    root: Path
    path: Path

    @property
    def depth(self) -> int:
        return len(self.path.relative_to(self.root).parts)


@dataclass(frozen=True)
class Discovery:
    repositories: tuple[DiscoveredRepository, ...] = ()
    roots: tuple[Path, ...] = ()
    warnings: tuple[AccessFailure, ...] = ()


def is_repository(folder: Path) -> bool:
    """Check for a ``.git`` directory, or a ``.git`` file (worktrees, submodules).

    Raises `OSError` when `folder` cannot be inspected, e.g. permission denied.
    """
    try:
        os.stat(folder / MARKER)  # noqa: PTH116
    except (FileNotFoundError, NotADirectoryError):
        return False
    return True


def _subdirectories(folder: Path) -> list[Path]:
    """List real subdirectories by name; symbolic links are left out."""
    with os.scandir(folder) as entries:
        children = [
            Path(entry.path) for entry in entries if entry.is_dir(follow_symlinks=False)
        ]
    return sorted(children, key=lambda p: p.name)


class _Walker:
    def __init__(
        self, max_depth: int, exclude_dirs: Iterable[str], *, include_hidden: bool
    ) -> None:
        self.max_depth = max_depth
        self.exclude_dirs = set(exclude_dirs)
        self.include_hidden = include_hidden
        self.found: list[DiscoveredRepository] = []
        self.warnings: list[AccessFailure] = []

    def skip(self, folder: Path) -> bool:
        if folder.name in self.exclude_dirs:
            return True
        return not self.include_hidden and folder.name.startswith(".")

    def walk(self, root: Path, folder: Path, depth: int) -> None:
        try:
            found = is_repository(folder)
        except OSError as e:
            self.warn(folder, e)
            return
        if found:
            logger.debug("found repository %s", folder)
            self.found.append(DiscoveredRepository(root=root, path=folder))
            return
        if depth >= self.max_depth:
            return
        try:
            children = _subdirectories(folder)
        except OSError as e:
            self.warn(folder, e)
            return
        for child in children:
            if not self.skip(child):
                self.walk(root, child, depth + 1)

    def warn(self, path: Path, error: OSError) -> None:
        warning = AccessFailure(path, error.strerror or str(error))
        logger.warning("Skipping %s", warning)
        self.warnings.append(warning)


def discover(
    roots: Iterable[Path | str],
    max_depth: int,
    exclude_dirs: Iterable[str] = (),
    *,
    include_hidden: bool = False,
) -> Discovery:
    """Walk `roots` down to `max_depth` levels and return the repositories found.

    Depth 0 inspects only the roots themselves. Discovery does not descend
    into a repository and never follows symbolic links. Unreadable
    directories are skipped and reported as warnings. Raises
    `NoDiscoverableRoots` when none of the roots can be scanned.
    """
    if max_depth < 0:
        raise ValueError(f"max_depth must be non-negative, got {max_depth}")
    walker = _Walker(max_depth, exclude_dirs, include_hidden=include_hidden)
    usable: list[Path] = []
    for raw_root in roots:
        try:
            root = Path(raw_root).expanduser().resolve(strict=True)
        except OSError as e:
            walker.warn(Path(raw_root), e)
            continue
        if not os.path.isdir(root):  # noqa: PTH112
            walker.warn(root, NotADirectoryError(20, "Not a directory"))
            continue
        if root in usable:
            continue
        usable.append(root)
        walker.walk(root, root, 0)
    if not usable:
        raise NoDiscoverableRoots(
            "none of the roots could be scanned: "
            + ", ".join(str(w) for w in walker.warnings)
        )

    unique: dict[Path, DiscoveredRepository] = {}
    for repo in walker.found:
        unique.setdefault(repo.path, repo)
    return Discovery(
        repositories=tuple(unique.values()),
        roots=tuple(usable),
        warnings=tuple(walker.warnings),
    )
