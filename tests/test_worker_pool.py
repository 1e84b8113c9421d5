# tests/test_worker_pool.py
import json
import threading
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from table_cutover.aggregator import ResultAggregator
from table_cutover.audit import AuditLog
from table_cutover.checkpoint import CheckpointStore
from table_cutover.connectors.memory import MemoryStore
from table_cutover.execution.worker_pool import CopyTask, WorkerPool, migrate_segment
from table_cutover.segments import count_segments, generate_segments
from table_cutover.types import Segment, TimeWindow

from helpers import EVENT_COLUMNS, event


class FlakyStore(MemoryStore):
    """Fails the first `failures` inserts, then behaves."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures
        self.attempts = 0
        self._attempt_lock = threading.Lock()

    def insert_rows(self, table, columns, rows):
        with self._attempt_lock:
            self.attempts += 1
            if self.attempts <= self.failures:
                raise ConnectionError("insert timed out")
        return super().insert_rows(table, columns, rows)


def make_task(source, destination, tmp_path, **overrides):
    values = dict(
        source=source,
        destination=destination,
        source_table="events",
        destination_table="events_new",
        columns=EVENT_COLUMNS,
        time_column="event_time",
        checkpoint=CheckpointStore(tmp_path / "done.txt"),
        insert_retry_delay=0,
    )
    values.update(overrides)
    return CopyTask(**values)


def run_all(source, destination, tmp_path, parallelism=3, **overrides):
    task = make_task(source, destination, tmp_path, **overrides)
    lo, hi = datetime(2024, 1, 1, 0, 15), datetime(2024, 1, 1, 2, 50)
    aggregator = ResultAggregator("backfill", count_segments(lo, hi), AuditLog(tmp_path / "log.json"))
    summary = WorkerPool(parallelism).run(generate_segments(lo, hi, task.done), task, aggregator)
    return task, summary


def test_every_segment_copied_once(source_store, destination_store, tmp_path):
    task, summary = run_all(source_store, destination_store, tmp_path)

    assert summary.processed_segments == 3
    assert summary.rows_read == summary.rows_written == 3
    assert sorted(r["id"] for r in destination_store.rows_of("events_new")) == [1, 2, 3]
    assert task.checkpoint.load() == {"2024-01-01 00:00:00", "2024-01-01 01:00:00", "2024-01-01 02:00:00"}


def test_one_audit_line_per_segment(source_store, destination_store, tmp_path):
    run_all(source_store, destination_store, tmp_path)

    lines = [json.loads(l) for l in (tmp_path / "log.json").read_text().splitlines()]
    assert sorted(l["segment_start"] for l in lines) == [
        "2024-01-01T00:00:00", "2024-01-01T01:00:00", "2024-01-01T02:00:00",
    ]
    assert all(l["error"] == "" and l["rows_written"] == 1 for l in lines)
    assert set(lines[0]) == {"segment_start", "segment_end", "rows_read", "rows_written", "duration_ms", "error"}


def test_insert_failing_twice_then_succeeding_counts_rows_once(source_store, tmp_path):
    destination = FlakyStore(failures=2)
    destination.create_table("events_new", EVENT_COLUMNS)
    task = make_task(source_store, destination, tmp_path)

    result = migrate_segment(Segment.starting_at(datetime(2024, 1, 1, 1)), task)

    assert result.ok
    assert destination.attempts == 3
    assert result.rows_written == 1
    assert result.rows_dropped == 0
    assert len(destination.rows_of("events_new")) == 1


def test_exhausted_insert_retries_drop_the_sub_batch(source_store, tmp_path):
    source_store.add_rows("events", [event(10 + i, datetime(2024, 1, 1, 1, 10 + i)) for i in range(4)])
    destination = FlakyStore(failures=3)
    destination.create_table("events_new", EVENT_COLUMNS)
    task = make_task(source_store, destination, tmp_path, write_batch_size=2)

    result = migrate_segment(Segment.starting_at(datetime(2024, 1, 1, 1)), task)

    # 5 rows -> sub-batches of 2, 2, 1; the first one exhausts its 3 attempts
    assert result.ok
    assert result.rows_read == 5
    assert result.rows_dropped == 2
    assert result.rows_written == 3
    assert task.checkpoint.load() == {"2024-01-01 01:00:00"}


def test_read_failure_is_reported_and_not_checkpointed(destination_store, tmp_path):
    source = MagicMock()
    source.read_range.side_effect = RuntimeError("Code: 241. Memory limit exceeded")
    task = make_task(source, destination_store, tmp_path)

    result = migrate_segment(Segment.starting_at(datetime(2024, 1, 1)), task)

    assert not result.ok
    assert "Memory limit" in result.error
    assert task.checkpoint.load() == set()


def test_failing_segment_does_not_stop_others(source_store, destination_store, tmp_path):
    original = source_store.read_range

    def read_range(table, columns, time_column, segment, window=TimeWindow(), batch_size=10000):
        if segment.key == "2024-01-01 01:00:00":
            raise RuntimeError("too many simultaneous queries")
        return original(table, columns, time_column, segment, window, batch_size)

    source_store.read_range = read_range
    task, summary = run_all(source_store, destination_store, tmp_path)

    assert summary.processed_segments == 3
    assert summary.failed_segments == ["2024-01-01 01:00:00"]
    assert sorted(r["id"] for r in destination_store.rows_of("events_new")) == [1, 3]
    assert "2024-01-01 01:00:00" not in task.checkpoint.load()


def test_done_segments_are_not_copied_again(source_store, destination_store, tmp_path):
    task, summary = run_all(source_store, destination_store, tmp_path, done=frozenset({"2024-01-01 00:00:00"}))

    assert summary.processed_segments == 2
    assert summary.total_segments == 3
    assert sorted(r["id"] for r in destination_store.rows_of("events_new")) == [2, 3]


def test_window_clips_rows(source_store, destination_store, tmp_path):
    window = TimeWindow(after=datetime(2024, 1, 1, 0, 15), until=datetime(2024, 1, 1, 1, 5))
    _, summary = run_all(source_store, destination_store, tmp_path, window=window)

    assert summary.rows_written == 1
    assert [r["id"] for r in destination_store.rows_of("events_new")] == [2]


def test_many_segments_with_small_queues(destination_store, tmp_path):
    """More segments than queue slots: the producer blocks instead of buffering everything."""
    source = MemoryStore()
    source.create_table("events", EVENT_COLUMNS, [event(i, datetime(2024, 1, 1 + i // 24, i % 24, 30)) for i in range(100)])
    task = make_task(source, destination_store, tmp_path)
    lo, hi = datetime(2024, 1, 1), datetime(2024, 1, 5, 3, 30)
    aggregator = ResultAggregator("backfill", count_segments(lo, hi), AuditLog(tmp_path / "log.json"))

    summary = WorkerPool(parallelism=2).run(generate_segments(lo, hi), task, aggregator)

    assert summary.processed_segments == 100
    assert summary.rows_written == 100
    assert len(task.checkpoint.load()) == 100


def test_parallelism_must_be_positive():
    with pytest.raises(ValueError):
        WorkerPool(0)


def test_checkpoint_write_failure_is_reported_per_segment(destination_store, tmp_path):
    """Every dispatched segment still yields a result when its checkpoint line cannot be written."""
    source = MemoryStore()
    source.create_table("events", EVENT_COLUMNS, [event(i, datetime(2024, 1, 1 + i // 24, i % 24, 30)) for i in range(48)])
    # A directory cannot be opened for appending
    task = make_task(source, destination_store, tmp_path, checkpoint=CheckpointStore(tmp_path))
    lo, hi = datetime(2024, 1, 1), datetime(2024, 1, 2, 23, 30)
    aggregator = ResultAggregator("backfill", count_segments(lo, hi), AuditLog(tmp_path / "log.json"))

    summary = WorkerPool(parallelism=2).run(generate_segments(lo, hi), task, aggregator)

    assert summary.processed_segments == 48
    assert len(summary.failed_segments) == 48
    assert summary.rows_written == 48


def test_unexpected_worker_error_still_yields_a_result(source_store, destination_store, tmp_path, monkeypatch):
    from table_cutover.execution import worker_pool

    def explode(segment, task):
        raise KeyError("boom")

    monkeypatch.setattr(worker_pool, "migrate_segment", explode)
    _, summary = run_all(source_store, destination_store, tmp_path, parallelism=1)

    assert summary.processed_segments == 3
    assert len(summary.failed_segments) == 3


def test_stopped_aggregator_does_not_hang_the_pool(destination_store, tmp_path):
    source = MemoryStore()
    source.create_table("events", EVENT_COLUMNS, [event(i, datetime(2024, 1, 1 + i // 24, i % 24, 30)) for i in range(48)])
    task = make_task(source, destination_store, tmp_path)
    lo, hi = datetime(2024, 1, 1), datetime(2024, 1, 2, 23, 30)
    aggregator = MagicMock()
    aggregator.consume.side_effect = RuntimeError("aggregator crashed")

    with pytest.raises(RuntimeError):
        WorkerPool(parallelism=2).run(generate_segments(lo, hi), task, aggregator)
