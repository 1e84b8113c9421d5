# src/table_cutover/time_range.py
"""Probes of the time column's bounds."""

import logging
from datetime import datetime
from typing import Optional

from .connectors.base import BaseStore
from .errors import TimeRangeError
from .types import TimeRange, parse_timestamp

logger = logging.getLogger(__name__)


def get_time_range(store: BaseStore, table: str, time_column: str, start_inclusive: datetime) -> Optional[TimeRange]:
    """
    min/max of `time_column` over rows at or after `start_inclusive`.

    Returns None when no row qualifies; that is the normal "nothing to do"
    answer, not an error.

    Raises:
        TimeRangeError: when the store query fails
    """
    try:
        lo, hi = store.time_bounds(table, time_column, start_inclusive)
    except Exception as e:
        raise TimeRangeError(f"Time range probe on {table}.{time_column} failed: {e}") from e

    if lo is None or hi is None:
        logger.info(f"No rows in {table} with {time_column} >= {start_inclusive}")
        return None

    result = TimeRange(min=parse_timestamp(lo), max=parse_timestamp(hi))
    logger.info(f"{table}: {time_column} in [{result.min}, {result.max}]")
    return result


def get_max_time(store: BaseStore, table: str, time_column: str) -> Optional[datetime]:
    """Largest `time_column` value in the table, None when it is empty."""
    try:
        hi = store.max_time(table, time_column)
    except Exception as e:
        raise TimeRangeError(f"Reading max({time_column}) from {table} failed: {e}") from e
    return parse_timestamp(hi) if hi is not None else None
