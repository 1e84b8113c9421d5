# src/table_cutover/types.py

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, List, Optional, Sequence, Tuple

SEGMENT_KEY_FORMAT = "%Y-%m-%d %H:%M:%S"
SEGMENT_WIDTH = timedelta(hours=1)


@dataclass(frozen=True)
class ColumnInfo:
    """A column as declared in the table definition. Order is significant."""
    name: str
    type: str


class ValueKind(str, Enum):
    NULL = "null"
    INT = "int"
    FLOAT = "float"
    DECIMAL = "decimal"
    STRING = "string"
    TIMESTAMP = "timestamp"
    DATE = "date"
    LIST = "list"
    MAP = "map"
    OTHER = "other"


@dataclass(frozen=True)
class Value:
    """A single column value tagged with its runtime kind."""
    kind: ValueKind
    raw: Any

    @classmethod
    def of(cls, raw: Any) -> "Value":
        return cls(kind=classify(raw), raw=raw)

    def to_json(self) -> Any:
        """JSON-friendly rendering used by the audit log."""
        if self.kind in (ValueKind.NULL, ValueKind.INT, ValueKind.FLOAT, ValueKind.STRING):
            return self.raw
        if self.kind in (ValueKind.TIMESTAMP, ValueKind.DATE):
            return self.raw.isoformat()
        if self.kind is ValueKind.LIST:
            return [Value.of(v).to_json() for v in self.raw]
        if self.kind is ValueKind.MAP:
            return {str(k): Value.of(v).to_json() for k, v in self.raw.items()}
        return str(self.raw)


def classify(raw: Any) -> ValueKind:
    if raw is None:
        return ValueKind.NULL
    # bool is an int subclass; ClickHouse Bool columns come back as bool
    if isinstance(raw, (bool, int)):
        return ValueKind.INT
    if isinstance(raw, float):
        return ValueKind.FLOAT
    if isinstance(raw, Decimal):
        return ValueKind.DECIMAL
    if isinstance(raw, str):
        return ValueKind.STRING
    if isinstance(raw, datetime):
        return ValueKind.TIMESTAMP
    if isinstance(raw, date):
        return ValueKind.DATE
    if isinstance(raw, (list, tuple)):
        return ValueKind.LIST
    if isinstance(raw, dict):
        return ValueKind.MAP
    return ValueKind.OTHER


@dataclass(frozen=True)
class Row:
    """Values of one table row, carried alongside the columns they belong to."""
    columns: Tuple[ColumnInfo, ...]
    values: Tuple[Value, ...]

    @classmethod
    def from_raw(cls, columns: Sequence[ColumnInfo], raw: Iterable[Any]) -> "Row":
        values = tuple(Value.of(v) for v in raw)
        if len(values) != len(columns):
            raise ValueError(f"Row has {len(values)} values for {len(columns)} columns")
        return cls(columns=tuple(columns), values=values)

    def raw(self) -> tuple:
        return tuple(v.raw for v in self.values)

    def get(self, name: str) -> Optional[Value]:
        for column, value in zip(self.columns, self.values):
            if column.name == name:
                return value
        return None


def segment_key(start: datetime) -> str:
    """Canonical checkpoint identity of the segment starting at `start`."""
    return start.strftime(SEGMENT_KEY_FORMAT)


def parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return datetime.strptime(str(value).strip(), SEGMENT_KEY_FORMAT)


@dataclass(frozen=True)
class Segment:
    """A one-hour, left-closed/right-open window of the time column."""
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.end - self.start != SEGMENT_WIDTH:
            raise ValueError(f"Segment must be exactly one hour wide: {self.start} -> {self.end}")

    @classmethod
    def starting_at(cls, start: datetime) -> "Segment":
        return cls(start=start, end=start + SEGMENT_WIDTH)

    @property
    def key(self) -> str:
        return segment_key(self.start)


@dataclass(frozen=True)
class TimeWindow:
    """Watermark bounds applied on top of a segment's own bounds.

    `since` is inclusive, `after` is exclusive, `until` is inclusive unless
    `until_inclusive` is False. Any of them may be None.
    """
    after: Optional[datetime] = None
    until: Optional[datetime] = None
    until_inclusive: bool = True
    since: Optional[datetime] = None

    def contains(self, ts: datetime) -> bool:
        if self.since is not None and ts < self.since:
            return False
        if self.after is not None and not ts > self.after:
            return False
        if self.until is not None:
            if self.until_inclusive and ts > self.until:
                return False
            if not self.until_inclusive and ts >= self.until:
                return False
        return True


UNBOUNDED = TimeWindow()


@dataclass(frozen=True)
class TimeRange:
    min: datetime
    max: datetime


@dataclass
class MigrationResult:
    """Outcome of one dispatched segment."""
    segment: Segment
    rows_read: int = 0
    rows_written: int = 0
    rows_dropped: int = 0
    duration: timedelta = field(default_factory=timedelta)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def duration_ms(self) -> int:
        return int(self.duration.total_seconds() * 1000)


@dataclass
class PassSummary:
    """Totals of one planner+pool+aggregator cycle."""
    label: str
    total_segments: int = 0
    processed_segments: int = 0
    rows_read: int = 0
    rows_written: int = 0
    rows_dropped: int = 0
    failed_segments: List[str] = field(default_factory=list)

    @property
    def progress(self) -> float:
        if not self.total_segments:
            return 100.0
        return self.processed_segments / self.total_segments * 100
