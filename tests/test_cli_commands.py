# tests/test_cli_commands.py
from datetime import datetime

import pytest
from typer.testing import CliRunner

from table_cutover import __version__
from table_cutover.cli import app
from table_cutover.connectors.memory import MemoryStore

from helpers import EVENT_COLUMNS, event

runner = CliRunner()


@pytest.fixture
def named_stores():
    source = MemoryStore.from_dsn("memory://cli-src")
    source.create_table("events", EVENT_COLUMNS, [
        event(1, datetime(2024, 1, 1, 0, 15)),
        event(2, datetime(2024, 1, 1, 1, 5)),
    ])
    destination = MemoryStore.from_dsn("memory://cli-dst")
    destination.create_table("events_new", EVENT_COLUMNS)
    return source, destination


def job_args(tmp_path):
    return [
        "--src-dsn", "memory://cli-src",
        "--dst-dsn", "memory://cli-dst",
        "--src-table", "events",
        "--dst-table", "events_new",
        "--time-field", "event_time",
        "--starttime", "2024-01-01 00:00:00",
        "--done-segments", str(tmp_path / "done.txt"),
    ]


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_run_backfill_only(tmp_path, named_stores):
    source, destination = named_stores
    args = ["run", *job_args(tmp_path), "--log-file", str(tmp_path / "log.json"), "--no-cutover"]

    result = runner.invoke(app, args)

    assert result.exit_code == 0, result.stdout
    assert "Backfill complete" in result.stdout
    assert len(destination.rows_of("events_new")) == 2
    assert (tmp_path / "done.txt").read_text().splitlines() != []


def test_run_with_cutover(tmp_path, named_stores):
    source, destination = named_stores

    result = runner.invoke(app, ["run", *job_args(tmp_path), "--log-file", str(tmp_path / "log.json")])

    assert result.exit_code == 0, result.stdout
    assert "events_bak" in source.tables
    assert "events" in destination.tables


def test_run_from_yaml_with_flag_override(tmp_path, named_stores):
    source, destination = named_stores
    job = tmp_path / "job.yml"
    job.write_text(f"""
source_dsn: memory://cli-src
destination_dsn: memory://cli-dst
source_table: events
destination_table: events_new
time_column: event_time
start_time: "2024-01-01 00:00:00"
checkpoint_file: {tmp_path / 'done.txt'}
audit_log: {tmp_path / 'log.json'}
""")

    result = runner.invoke(app, ["run", "--config", str(job), "--parallelism", "1", "--no-cutover"])

    assert result.exit_code == 0, result.stdout
    assert len(destination.rows_of("events_new")) == 2


def test_run_schema_mismatch_exits_1(tmp_path, named_stores):
    source, destination = named_stores
    destination.create_table("events_new", EVENT_COLUMNS[:2])

    result = runner.invoke(app, ["run", *job_args(tmp_path), "--log-file", str(tmp_path / "log.json")])

    assert result.exit_code == 1
    assert "schema check" in result.stdout


def test_run_invalid_config_exits_1(tmp_path):
    result = runner.invoke(app, ["run", "--src-table", "events"])
    assert result.exit_code == 1
    assert "Failed to load config" in result.stdout


def test_run_distributed_without_cluster_exits_1(tmp_path, named_stores):
    result = runner.invoke(app, ["run", *job_args(tmp_path), "--is-src-distributed"])
    assert result.exit_code == 1
    assert "cutover config check" in result.stdout


def test_validate_command(tmp_path, named_stores):
    result = runner.invoke(app, ["validate", *job_args(tmp_path)[:-2]])

    assert result.exit_code == 0, result.stdout
    assert "All checks passed" in result.stdout
    assert "event_time" in result.stdout


def test_status_command(tmp_path):
    done = tmp_path / "done.txt"
    done.write_text("2024-01-01 01:00:00\n2024-01-01 00:00:00\n2024-01-01 01:00:00\n")

    result = runner.invoke(app, ["status", "--done-segments", str(done)])

    assert result.exit_code == 0
    assert "2024-01-01 00:00:00" in result.stdout
    assert "2024-01-01 01:00:00" in result.stdout


def test_status_without_checkpoint(tmp_path):
    result = runner.invoke(app, ["status", "--done-segments", str(tmp_path / "none.txt")])
    assert result.exit_code == 0
    assert "No completed segments" in result.stdout


def test_status_needs_a_job(tmp_path):
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 1
