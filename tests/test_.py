import importlib.metadata

import git_state_scan


def test_version() -> None:
    assert importlib.metadata.version("git_state_scan") == git_state_scan.__version__
