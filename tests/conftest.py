from pathlib import Path

import pytest
from prometheus_client import CollectorRegistry

from quotawatch.accounts import AccountDirectory
from quotawatch.history import SnapshotStore


@pytest.fixture()
def registry() -> "CollectorRegistry":
    """
    fresh Prometheus registry to avoid cross-test state.
    """
    return CollectorRegistry()

@pytest.fixture()
def store(tmp_path: "Path") -> "SnapshotStore":
    return SnapshotStore(tmp_path / "quota_history.json")

@pytest.fixture()
def directory(tmp_path: "Path") -> "AccountDirectory":
    return AccountDirectory(tmp_path / "accounts.json")
