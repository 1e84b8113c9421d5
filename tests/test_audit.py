# tests/test_audit.py

import json
from datetime import datetime, timedelta

from table_cutover.audit import AuditLog, field_mapping
from table_cutover.types import MigrationResult, Row, Segment

from helpers import EVENT_COLUMNS, event


def test_segment_line_fields(tmp_path):
    log = AuditLog(tmp_path / "log.json")
    result = MigrationResult(
        segment=Segment.starting_at(datetime(2024, 1, 1, 3)),
        rows_read=10,
        rows_written=10,
        duration=timedelta(milliseconds=1500),
    )

    log.write_segment(result)

    entry = json.loads((tmp_path / "log.json").read_text().strip())
    assert entry == {
        "segment_start": "2024-01-01T03:00:00",
        "segment_end": "2024-01-01T04:00:00",
        "rows_read": 10,
        "rows_written": 10,
        "duration_ms": 1500,
        "error": "",
    }


def test_failed_segment_carries_error(tmp_path):
    log = AuditLog(tmp_path / "log.json")
    log.write_segment(MigrationResult(segment=Segment.starting_at(datetime(2024, 1, 1)), error="read timed out"))

    assert log.read_entries()[0]["error"] == "read timed out"


def test_field_mapping_from_sample():
    sample = Row.from_raw(EVENT_COLUMNS, event(7, datetime(2024, 1, 1, 0, 15), tags={"k": "v"}))

    mapping = field_mapping(EVENT_COLUMNS, sample)

    assert [m["field"] for m in mapping] == ["id", "event_time", "payload", "tags"]
    assert mapping[0]["position"] == 1
    assert mapping[1]["value"] == "2024-01-01T00:15:00"
    assert mapping[3]["value"] == {"k": "v"}


def test_field_mapping_without_sample_adds_note(tmp_path):
    log = AuditLog(tmp_path / "log.json")
    log.write_field_mapping(EVENT_COLUMNS, None)

    entry = log.read_entries()[0]
    assert entry["field_mapping"] == []
    assert "empty" in entry["note"]


def test_appends_across_runs(tmp_path):
    path = tmp_path / "log.json"
    AuditLog(path).write_event("pass_complete", label="backfill")
    AuditLog(path).write_event("cutover_complete", watermark=datetime(2024, 1, 1, 2, 50))

    entries = AuditLog(path).read_entries()
    assert [e["event"] for e in entries] == ["pass_complete", "cutover_complete"]
    assert entries[1]["watermark"] == "2024-01-01 02:50:00"


def test_missing_file_reads_empty(tmp_path):
    assert AuditLog(tmp_path / "nope.json").read_entries() == []
