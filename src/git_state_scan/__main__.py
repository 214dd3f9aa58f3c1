"""Allow running as `python -m git_state_scan`."""

from .cli import app

app(prog_name="git-state-scan")
