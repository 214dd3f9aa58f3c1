"""git-state-scan: Report uncommitted, unpushed and rewritten work in many repos."""

from ._version import version as _version
from .collector import (
    ScanOptions,
    collect_report,
    inspect_repository,
    sort_reports,
)
from .discovery import discover
from .format import (
    REPORT_FORMATS_TYPE,
    format_report,
)
from .models import (
    BranchState,
    DiffMetrics,
    RepositoryReport,
    RewriteEntry,
    RewriteWindow,
    ScanReport,
)
from .pairs import PairConfig, load_pair_config
from .rewrites import RewriteConfig
from .runner import CommandResult, ScriptedRunner, SubprocessRunner

__version__ = _version
__all__: list[str] = [
    "REPORT_FORMATS_TYPE",
    "BranchState",
    "CommandResult",
    "DiffMetrics",
    "PairConfig",
    "RepositoryReport",
    "RewriteConfig",
    "RewriteEntry",
    "RewriteWindow",
    "ScanOptions",
    "ScanReport",
    "ScriptedRunner",
    "SubprocessRunner",
    "collect_report",
    "discover",
    "format_report",
    "inspect_repository",
    "load_pair_config",
    "sort_reports",
]
