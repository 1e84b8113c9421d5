# src/table_cutover/segments.py
"""Hour-aligned segment planning."""

import logging
from datetime import datetime
from typing import AbstractSet, Iterator, Optional

from .types import SEGMENT_WIDTH, Segment, segment_key

logger = logging.getLogger(__name__)


def floor_hour(ts: datetime) -> datetime:
    return ts.replace(minute=0, second=0, microsecond=0)


def upper_bound(max_time: datetime) -> datetime:
    """Exclusive end of the last segment needed to cover `max_time`.

    `max_time` is an observed row timestamp, so the segment that contains it
    is always included, even when it sits exactly on an hour boundary.
    """
    return floor_hour(max_time) + SEGMENT_WIDTH


def generate_segments(
    min_time: datetime,
    max_time: datetime,
    done: Optional[AbstractSet[str]] = None,
) -> Iterator[Segment]:
    """
    Lazily yield the one-hour segments tiling [floor_hour(min), upper_bound(max)).

    Segments whose key is in `done` are skipped. The output depends only on
    the arguments, so planning can be restarted at any time.
    """
    start = floor_hour(min_time)
    end = upper_bound(max_time)
    skipped = 0
    t = start
    while t < end:
        if done and segment_key(t) in done:
            skipped += 1
        else:
            yield Segment.starting_at(t)
        t += SEGMENT_WIDTH
    if skipped:
        logger.info(f"Skipped {skipped} already completed segment(s)")


def count_segments(min_time: datetime, max_time: datetime) -> int:
    """Number of segments covering the range, completed or not."""
    span = upper_bound(max_time) - floor_hour(min_time)
    return max(int(span / SEGMENT_WIDTH), 0)
