# src/table_cutover/connectors/base.py

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterator, List, Optional, Sequence, Tuple

from ..types import UNBOUNDED, ColumnInfo, Row, Segment, TimeWindow


class BaseStore(ABC):
    """Contract for a queryable relational store holding time-partitioned tables.

    One store instance is shared by every worker thread of a run, so
    implementations must be safe for concurrent use.
    """

    #: URL schemes handled by this store, e.g. ("clickhouse",)
    schemes: Tuple[str, ...] = ()

    def __init__(self, dsn: str):
        self.dsn = dsn

    @classmethod
    def from_dsn(cls, dsn: str) -> "BaseStore":
        return cls(dsn)

    def test_connection(self) -> bool:
        """
        Test connection to the store.

        Returns:
            bool: True if connection successful

        Raises:
            ConnectionError: If connection fails, with helpful message
        """
        return True

    @abstractmethod
    def get_columns(self, table: str) -> List[ColumnInfo]:
        """Ordered column list of a table."""

    @abstractmethod
    def time_bounds(
        self, table: str, time_column: str, start_inclusive: datetime
    ) -> Tuple[Optional[datetime], Optional[datetime]]:
        """min/max of `time_column` over rows with `time_column >= start_inclusive`.

        Returns (None, None) when no row qualifies.
        """

    @abstractmethod
    def max_time(self, table: str, time_column: str) -> Optional[datetime]:
        """max of `time_column` over the whole table, None when empty."""

    @abstractmethod
    def read_range(
        self,
        table: str,
        columns: Sequence[ColumnInfo],
        time_column: str,
        segment: Segment,
        window: TimeWindow = UNBOUNDED,
        batch_size: int = 10000,
    ) -> Iterator[Row]:
        """Stream rows of `segment` (clipped by `window`) ordered by `time_column`.

        Implementations fetch from the server `batch_size` rows at a time.
        """

    @abstractmethod
    def read_at(
        self, table: str, columns: Sequence[ColumnInfo], time_column: str, ts: datetime
    ) -> List[Row]:
        """All rows whose `time_column` equals `ts` exactly."""

    @abstractmethod
    def count_at(self, table: str, time_column: str, ts: datetime) -> int:
        """Number of rows whose `time_column` equals `ts` exactly."""

    @abstractmethod
    def sample_row(self, table: str, columns: Sequence[ColumnInfo]) -> Optional[Row]:
        """One randomly chosen row, None when the table is empty."""

    @abstractmethod
    def insert_rows(self, table: str, columns: Sequence[ColumnInfo], rows: Sequence[Row]) -> int:
        """Insert rows in one statement; returns the number of rows inserted."""

    @abstractmethod
    def rename_table(self, old_name: str, new_name: str, cluster: Optional[str] = None) -> None:
        """Rename a table, on every node of `cluster` when given."""

    def close(self) -> None:
        """Release connections held by the store."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
