# tests/conftest.py
from datetime import datetime

import pytest
from typer.testing import CliRunner

from table_cutover.config import JobConfig
from table_cutover.connectors.memory import MemoryStore
from helpers import EVENT_COLUMNS, event


@pytest.fixture
def cli_runner():
    """Provide a reusable CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def _forget_named_memory_stores():
    yield
    MemoryStore.forget_all()


@pytest.fixture
def source_store() -> MemoryStore:
    """Source with rows in three different hours."""
    store = MemoryStore()
    store.create_table("events", EVENT_COLUMNS, [
        event(1, datetime(2024, 1, 1, 0, 15)),
        event(2, datetime(2024, 1, 1, 1, 5)),
        event(3, datetime(2024, 1, 1, 2, 50)),
    ])
    return store


@pytest.fixture
def destination_store() -> MemoryStore:
    store = MemoryStore()
    store.create_table("events_new", EVENT_COLUMNS)
    return store


@pytest.fixture
def job_config(tmp_path) -> JobConfig:
    return JobConfig(
        source_dsn="memory://src",
        destination_dsn="memory://dst",
        source_table="events",
        destination_table="events_new",
        time_column="event_time",
        parallelism=2,
        start_time="2024-01-01 00:00:00",
        checkpoint_file=tmp_path / "done_segments.txt",
        audit_log=tmp_path / "log.json",
        insert_retry_delay=0,
    )
