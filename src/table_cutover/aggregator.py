# src/table_cutover/aggregator.py

import logging
import queue
from typing import Optional

from .audit import AuditLog
from .logging_utils import MigrationLogger
from .types import MigrationResult, PassSummary

logger = logging.getLogger(__name__)

# Put on the results queue once every worker has finished
RESULTS_CLOSED = object()


class ResultAggregator:
    """Single consumer of a pass's results: audit line, progress, totals."""

    def __init__(
        self,
        label: str,
        total_segments: int,
        audit_log: AuditLog,
        progress: Optional[MigrationLogger] = None,
    ):
        self.summary = PassSummary(label=label, total_segments=total_segments)
        self.audit_log = audit_log
        self.progress = progress

    def record(self, result: MigrationResult) -> None:
        summary = self.summary
        summary.processed_segments += 1
        summary.rows_read += result.rows_read
        summary.rows_written += result.rows_written
        summary.rows_dropped += result.rows_dropped

        if result.ok:
            logger.info(
                f"Segment {result.segment.key} completed: {result.rows_written}/{result.rows_read} rows "
                f"in {result.duration_ms}ms"
            )
        else:
            summary.failed_segments.append(result.segment.key)
            logger.error(f"Segment {result.segment.key} failed: {result.error}")

        self.audit_log.write_segment(result)

        if self.progress:
            self.progress.segment_progress(
                summary.label,
                result.segment.key,
                summary.processed_segments,
                summary.total_segments,
                result.rows_written,
                result.error,
            )
        logger.debug(f"{summary.label} progress: {summary.progress:.1f}%")

    def consume(self, results: "queue.Queue") -> PassSummary:
        """Drains the queue until RESULTS_CLOSED arrives.

        Keeps draining after a failed record so producers never block on a full
        queue; the first failure is raised once the queue is closed.
        """
        failure: Optional[Exception] = None
        while True:
            item = results.get()
            if item is RESULTS_CLOSED:
                break
            try:
                self.record(item)
            except Exception as e:
                logger.error(f"Could not record result of segment {item.segment.key}: {e}")
                if failure is None:
                    failure = e
        if failure is not None:
            raise failure
        return self.summary
