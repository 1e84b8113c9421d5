# src/table_cutover/connectors/memory.py

import logging
import random
import threading
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from .base import BaseStore
from ..errors import CutoverError
from ..types import UNBOUNDED, ColumnInfo, Row, Segment, TimeWindow

logger = logging.getLogger(__name__)

_registry_lock = threading.Lock()


class MemoryTable:
    """Rows kept as raw tuples in table column order."""

    def __init__(self, columns: Sequence[ColumnInfo], rows: Iterable[Sequence[Any]] = ()):
        self.columns = list(columns)
        self.rows: List[tuple] = [tuple(r) for r in rows]

    def index_of(self, name: str) -> int:
        for i, column in enumerate(self.columns):
            if column.name == name:
                return i
        raise KeyError(f"Unknown column '{name}'")


class MemoryStore(BaseStore):
    """An in-process store. Used by tests and for trying out job files."""

    schemes = ("memory",)

    # memory://<name> resolves to the same instance for the life of the process
    _instances: Dict[str, "MemoryStore"] = {}

    def __init__(self, dsn: str = "memory://"):
        super().__init__(dsn)
        self.tables: Dict[str, MemoryTable] = {}
        self._lock = threading.RLock()

    @classmethod
    def from_dsn(cls, dsn: str) -> "MemoryStore":
        name = urlparse(dsn).netloc
        if not name:
            return cls(dsn)
        with _registry_lock:
            if name not in cls._instances:
                cls._instances[name] = cls(dsn)
            return cls._instances[name]

    @classmethod
    def forget_all(cls) -> None:
        with _registry_lock:
            cls._instances.clear()

    # --- helpers for setting up data ---

    def create_table(self, name: str, columns: Sequence[ColumnInfo], rows: Iterable[Sequence[Any]] = ()) -> MemoryTable:
        with self._lock:
            table = MemoryTable(columns, rows)
            self.tables[name] = table
            return table

    def add_rows(self, name: str, rows: Iterable[Sequence[Any]]) -> None:
        with self._lock:
            self._table(name).rows.extend(tuple(r) for r in rows)

    def rows_of(self, name: str) -> List[dict]:
        with self._lock:
            table = self._table(name)
            return [dict(zip([c.name for c in table.columns], r)) for r in table.rows]

    # --- BaseStore ---

    def _table(self, name: str) -> MemoryTable:
        try:
            return self.tables[name]
        except KeyError:
            raise KeyError(f"Table '{name}' does not exist") from None

    def _times(self, table: MemoryTable, time_column: str) -> List[Tuple[datetime, tuple]]:
        idx = table.index_of(time_column)
        return [(r[idx], r) for r in table.rows if r[idx] is not None]

    def _project(self, table: MemoryTable, columns: Sequence[ColumnInfo], raw: tuple) -> Row:
        return Row.from_raw(columns, (raw[table.index_of(c.name)] for c in columns))

    def get_columns(self, table: str) -> List[ColumnInfo]:
        with self._lock:
            return list(self._table(table).columns)

    def time_bounds(self, table, time_column, start_inclusive):
        with self._lock:
            times = [ts for ts, _ in self._times(self._table(table), time_column) if ts >= start_inclusive]
        if not times:
            return None, None
        return min(times), max(times)

    def max_time(self, table, time_column):
        with self._lock:
            times = [ts for ts, _ in self._times(self._table(table), time_column)]
        return max(times) if times else None

    def read_range(
        self,
        table: str,
        columns: Sequence[ColumnInfo],
        time_column: str,
        segment: Segment,
        window: TimeWindow = UNBOUNDED,
        batch_size: int = 10000,
    ) -> Iterator[Row]:
        with self._lock:
            mem = self._table(table)
            selected = [
                (ts, raw) for ts, raw in self._times(mem, time_column)
                if segment.start <= ts < segment.end and window.contains(ts)
            ]
            selected.sort(key=lambda item: item[0])
            rows = [self._project(mem, columns, raw) for _, raw in selected]
        yield from rows

    def read_at(self, table, columns, time_column, ts):
        with self._lock:
            mem = self._table(table)
            return [self._project(mem, columns, raw) for t, raw in self._times(mem, time_column) if t == ts]

    def count_at(self, table, time_column, ts):
        with self._lock:
            return sum(1 for t, _ in self._times(self._table(table), time_column) if t == ts)

    def sample_row(self, table, columns):
        with self._lock:
            mem = self._table(table)
            if not mem.rows:
                return None
            return self._project(mem, columns, random.choice(mem.rows))

    def insert_rows(self, table: str, columns: Sequence[ColumnInfo], rows: Sequence[Row]) -> int:
        with self._lock:
            mem = self._table(table)
            positions = [mem.index_of(c.name) for c in columns]
            for row in rows:
                full = [None] * len(mem.columns)
                for pos, value in zip(positions, row.raw()):
                    full[pos] = value
                mem.rows.append(tuple(full))
        return len(rows)

    def rename_table(self, old_name: str, new_name: str, cluster: Optional[str] = None) -> None:
        with self._lock:
            if new_name in self.tables:
                raise CutoverError(f"Table '{new_name}' already exists")
            self.tables[new_name] = self.tables.pop(old_name)
        logger.info(f"Renamed table {old_name} -> {new_name}")
