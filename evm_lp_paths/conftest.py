import sys
from pathlib import Path

import pytest

from evm_lp_paths.core.config import CONFIG, set_config

# Add repo root to path so adapter test modules resolve the package
_repo_root = Path(__file__).parent.parent
_repo_root_str = str(_repo_root)


def pytest_configure(config):
    config.addinivalue_line("markers", "smoke: mark test as a smoke test")
    config.addinivalue_line("markers", "integration: mark test as integration")
    if _repo_root_str not in sys.path:
        sys.path.insert(0, _repo_root_str)
    elif sys.path.index(_repo_root_str) > 0:
        sys.path.remove(_repo_root_str)
        sys.path.insert(0, _repo_root_str)


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "smoke" in item.nodeid:
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch):
    """Every test starts from an empty CONFIG and no dry-run env override."""
    snapshot = dict(CONFIG)
    monkeypatch.delenv("EVM_LP_DRY_RUN", raising=False)
    set_config({})
    yield
    set_config(snapshot)
