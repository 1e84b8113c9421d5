# src/table_cutover/audit.py
"""JSON-lines audit trail of a migration run."""

import json
import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .types import ColumnInfo, MigrationResult, Row


@dataclass
class SegmentEntry:
    """One line per processed segment."""

    segment_start: str
    segment_end: str
    rows_read: int
    rows_written: int
    duration_ms: int
    error: str = ""

    @classmethod
    def from_result(cls, result: MigrationResult) -> "SegmentEntry":
        return cls(
            segment_start=result.segment.start.isoformat(),
            segment_end=result.segment.end.isoformat(),
            rows_read=result.rows_read,
            rows_written=result.rows_written,
            duration_ms=result.duration_ms,
            error=result.error or "",
        )


def field_mapping(columns: Sequence[ColumnInfo], sample: Optional[Row]) -> List[Dict[str, Any]]:
    """Position, name, declared type and sampled value of every migrated column."""
    if sample is None:
        return []
    mapping = []
    for position, (column, value) in enumerate(zip(columns, sample.values), start=1):
        mapping.append({
            "position": position,
            "field": column.name,
            "type": column.type,
            "kind": value.kind.value,
            "value": value.to_json(),
        })
    return mapping


class AuditLog:
    """Append-only JSON-lines file. Existing content from earlier runs is kept."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _append(self, entry: Dict[str, Any]) -> None:
        line = json.dumps(entry, ensure_ascii=False, default=str)
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'a', encoding='utf-8') as f:
                f.write(line + "\n")

    def write_segment(self, result: MigrationResult) -> None:
        self._append(asdict(SegmentEntry.from_result(result)))

    def write_field_mapping(self, columns: Sequence[ColumnInfo], sample: Optional[Row]) -> None:
        """Records a sampled source row before any data moves."""
        entry: Dict[str, Any] = {"field_mapping": field_mapping(columns, sample)}
        if sample is None:
            entry["note"] = "source table is empty, field mapping skipped"
        self._append(entry)

    def write_event(self, event: str, **details: Any) -> None:
        """Free-form milestone line (pass summaries, cutover steps)."""
        self._append({"event": event, **details})

    def read_entries(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        with open(self.path, 'r', encoding='utf-8') as f:
            return [json.loads(line) for line in f if line.strip()]
