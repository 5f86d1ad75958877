"""
Pytest configuration for the chat filter test suite.

Provides isolated storage/data-directory fixtures, an engine factory and a
loguru capture fixture for asserting on log and audit records.
"""

import pytest
from loguru import logger

from chatfilter_API.app.core import config
from chatfilter_API.app.core.DB_Management.ModStorage_DB import MemoryModStorage
from chatfilter_API.app.core.Filter.filter_engine import FilterEngine

_ENV_VARS = (
    "CHATFILTER_CONFIG_PATH",
    "CHATFILTER_MODNAME",
    "CHATFILTER_MOD_DATA_DIR",
    "CHATFILTER_STORAGE_DB",
    "CHATFILTER_LEGACY_COMPAT",
    "CHATFILTER_LOAD_ORDER",
    "CHATFILTER_MATCH_TIMEOUT",
    "CHATFILTER_LOG_LEVEL",
    "CHATFILTER_AUDIT_LOG",
)


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch):
    """Keep developer environment overrides and cached settings out of tests."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    config.clear_config_cache()
    yield
    config.clear_config_cache()


@pytest.fixture
def mod_storage():
    return MemoryModStorage()


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / "mod_data" / "filter"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def make_engine(mod_storage, data_dir):
    """Factory building a FilterEngine over the shared storage and data dir."""

    def _make(**kwargs):
        storage = kwargs.pop("storage", mod_storage)
        return FilterEngine(storage, kwargs.pop("data_dir", data_dir), **kwargs)

    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine()


@pytest.fixture
def log_records():
    """Collect loguru records emitted during the test."""
    records = []
    sink_id = logger.add(lambda m: records.append(m.record), level="DEBUG", format="{message}")
    try:
        yield records
    finally:
        logger.remove(sink_id)


@pytest.fixture
def audit_messages(log_records):
    """Callable returning the audit messages captured so far."""
    return lambda: [r["message"] for r in log_records if r["extra"].get("audit")]
