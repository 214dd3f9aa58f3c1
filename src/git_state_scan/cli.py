"""CLI for git_state_scan."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Annotated

import typer
from click.exceptions import UsageError

from . import __version__
from .collector import SORT_KEYS, ScanOptions, collect_report
from .errors import ConfigError, NoDiscoverableRoots, ScanCancelled
from .format import REPORT_FORMATS, REPORT_FORMATS_TYPE, format_report
from .models import RewriteWindow
from .pairs import load_pair_config
from .rewrites import RewriteConfig
from .runner import DEFAULT_TIMEOUT

DATETIME_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S"]
LOG_LEVELS = [logging.WARNING, logging.INFO, logging.DEBUG]

app = typer.Typer()


def _version_callback(value: bool) -> None:  # noqa: FBT001
    if value:
        print(f"git-state-scan {__version__}")
        raise typer.Exit(0)


def _setup_logging(verbose: int) -> None:
    logging.basicConfig(
        level=LOG_LEVELS[min(verbose, len(LOG_LEVELS) - 1)],
        format="%(levelname)s %(name)s: %(message)s",
    )


def _rewrite_config(
    since: datetime | None,
    until: datetime | None,
    revision_range: str,
    helper: str | None,
    pairs_path: Path | None,
) -> RewriteConfig:
    if helper and pairs_path is None:
        raise UsageError("--rewrite-helper needs --rewrite-config to know the pairs")
    try:
        pairs = load_pair_config(pairs_path) if pairs_path else None
    except ConfigError as e:
        raise UsageError(str(e)) from e
    # naive datetimes from the command line are local time
    try:
        window = RewriteWindow(
            since=since.astimezone() if since else None,
            until=until.astimezone() if until else None,
        )
    except ValueError as e:
        raise UsageError(str(e)) from e
    return RewriteConfig(
        window=window, revision_range=revision_range, helper=helper, pairs=pairs
    )


@app.command()
def git_state_scan(  # noqa: PLR0913
    roots: Annotated[
        list[Path] | None, typer.Argument(help="directories to scan")
    ] = None,
    *,
    recurse: Annotated[
        int, typer.Option("-r", "--recurse", min=0, help="max recurse in directories")
    ] = 3,
    exclude_dir: Annotated[
        list[str] | None,
        typer.Option("-d", "--exclude-dir", help="don't include these dirs"),
    ] = None,
    hidden: Annotated[
        bool, typer.Option("--hidden", help="also scan hidden directories")
    ] = False,
    fmt: Annotated[
        str, typer.Option("-f", "--format", help="output format")
    ] = "report",
    empty: Annotated[
        bool, typer.Option("-e", "--empty", help="show also repos without issues")
    ] = False,
    include_all: Annotated[
        bool, typer.Option("-a", "--all", help="show other info for repos")
    ] = False,
    branches: Annotated[
        bool,
        typer.Option(
            "-b", "--branches", help="check every local branch for unpushed commits"
        ),
    ] = False,
    no_untracked: Annotated[
        bool, typer.Option("--no-untracked", help="don't look for untracked files")
    ] = False,
    rewrites: Annotated[
        bool, typer.Option("-w", "--rewrites", help="report rewritten commits")
    ] = False,
    since: Annotated[
        datetime | None,
        typer.Option(formats=DATETIME_FORMATS, help="earliest rewrite time to report"),
    ] = None,
    until: Annotated[
        datetime | None,
        typer.Option(formats=DATETIME_FORMATS, help="latest rewrite time to report"),
    ] = None,
    revision_range: Annotated[
        str, typer.Option("--range", help="revision range to check for rewrites")
    ] = "HEAD",
    rewrite_helper: Annotated[
        str | None,
        typer.Option(
            envvar="GIT_STATE_SCAN_REWRITE_HELPER",
            help="helper binary that reports rewritten commits as JSON",
        ),
    ] = None,
    rewrite_config: Annotated[
        Path | None,
        typer.Option(
            envvar="GIT_STATE_SCAN_REWRITE_CONFIG",
            help="TOML file with the source/target repository pairs",
        ),
    ] = None,
    sort: Annotated[
        str,
        typer.Option("-s", "--sort", help=f"order of repos: {', '.join(SORT_KEYS)}"),
    ] = "discovery",
    jobs: Annotated[
        int | None,
        typer.Option("-j", "--jobs", min=1, help="repos to inspect in parallel"),
    ] = None,
    timeout: Annotated[
        float,
        typer.Option(
            "-t",
            "--timeout",
            min=0.1,
            envvar="GIT_STATE_SCAN_TIMEOUT",
            help="seconds before a git call is killed",
        ),
    ] = DEFAULT_TIMEOUT,
    verbose: Annotated[
        int, typer.Option("-v", "--verbose", count=True, help="more logging")
    ] = 0,
    version: Annotated[  # noqa: ARG001
        bool | None,
        typer.Option(
            "--version",
            "-V",
            callback=_version_callback,
            is_eager=True,
            help="Print version",
        ),
    ] = None,
) -> int:
    """Find uncommitted, unpushed and rewritten work in all repos under a directory."""
    _setup_logging(verbose)
    if fmt not in REPORT_FORMATS:
        raise UsageError(f"format must be one of {REPORT_FORMATS}")
    if sort not in SORT_KEYS:
        raise UsageError(f"sort must be one of {SORT_KEYS}")
    fmt_report: REPORT_FORMATS_TYPE = fmt  # type: ignore[assignment]
    options = ScanOptions(
        roots=tuple(roots or [Path()]),
        max_depth=recurse,
        jobs=jobs,
        timeout=timeout,
        include_untracked=not no_untracked,
        all_branches=branches,
        rewrites=(
            _rewrite_config(
                since, until, revision_range, rewrite_helper, rewrite_config
            )
            if rewrites or rewrite_helper or rewrite_config
            else None
        ),
        exclude_dirs=tuple(exclude_dir or ()),
        include_hidden=hidden,
        sort=sort,  # type: ignore[arg-type]
    )
    try:
        scan = collect_report(options)
    except NoDiscoverableRoots as e:
        raise UsageError(str(e)) from e
    except ScanCancelled as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(130) from e
    except KeyboardInterrupt as e:
        typer.echo("scan cancelled", err=True)
        raise typer.Exit(130) from e
    try:
        report = format_report(
            scan, include_ok=empty, fmt=fmt_report, include_all=include_all
        )
    except ModuleNotFoundError as e:
        raise RuntimeError(
            "Missing module for format. Try a different format or a newer python."
        ) from e
    else:
        print(report)
    return 0
