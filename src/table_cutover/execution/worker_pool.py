# src/table_cutover/execution/worker_pool.py
"""Parallel segment copy with bounded queues and fan-out/fan-in shutdown."""
import logging
import queue
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import timedelta
from typing import AbstractSet, Iterable, Optional, Sequence

from ..aggregator import RESULTS_CLOSED, ResultAggregator
from ..batch import read_in_batches
from ..checkpoint import CheckpointStore
from ..connectors.base import BaseStore
from ..types import UNBOUNDED, ColumnInfo, MigrationResult, PassSummary, Segment, TimeWindow
from ..utils.retry import retry_with_backoff

logger = logging.getLogger(__name__)

# One per worker, put after the last segment
_STOP = object()

# How often a blocked put checks whether its consumers are still alive
_POLL_SECONDS = 0.5


@dataclass
class CopyTask:
    """What every worker of one pass copies, from where to where."""
    source: BaseStore
    destination: BaseStore
    source_table: str
    destination_table: str
    columns: Sequence[ColumnInfo]
    time_column: str
    window: TimeWindow = UNBOUNDED
    done: AbstractSet[str] = field(default_factory=frozenset)
    checkpoint: Optional[CheckpointStore] = None
    extract_batch_size: int = 10000
    write_batch_size: int = 1000
    insert_max_attempts: int = 3
    insert_retry_delay: float = 2.0


def migrate_segment(segment: Segment, task: CopyTask) -> MigrationResult:
    """
    Copy one segment: stream it from the source, insert it in sub-batches.

    A sub-batch that still fails after `insert_max_attempts` is dropped and
    counted in `rows_dropped`; the segment carries on. A read failure ends the
    segment and is reported in `error`, as is a failed checkpoint write.
    Never raises.
    """
    started = time.monotonic()
    result = MigrationResult(segment=segment)

    insert = retry_with_backoff(
        max_attempts=task.insert_max_attempts,
        initial_delay=task.insert_retry_delay,
        backoff_factor=1.0,
    )(task.destination.insert_rows)

    try:
        rows = task.source.read_range(
            task.source_table,
            task.columns,
            task.time_column,
            segment,
            window=task.window,
            batch_size=task.extract_batch_size,
        )
        for batch in read_in_batches(rows, task.write_batch_size):
            result.rows_read += len(batch)
            try:
                insert(task.destination_table, task.columns, batch)
                result.rows_written += len(batch)
            except Exception as e:
                result.rows_dropped += len(batch)
                logger.error(
                    f"Dropped {len(batch)} rows of segment {segment.key} after "
                    f"{task.insert_max_attempts} insert attempts: {e}"
                )
    except Exception as e:
        result.error = str(e) or type(e).__name__

    result.duration = timedelta(seconds=time.monotonic() - started)

    if result.ok and task.checkpoint is not None:
        try:
            task.checkpoint.mark_done(segment.key)
        except OSError as e:
            # Not recorded as done, so the next run copies it again
            result.error = f"checkpoint write failed: {e}"
            logger.error(f"Could not checkpoint segment {segment.key}: {e}")
    return result


class WorkerPool:
    """N copy workers fed by the calling thread, one aggregator thread.

    Both queues hold at most 2 * parallelism items, so neither the planner nor
    the workers can run far ahead of their consumers. A blocked put gives up
    once every consumer of that queue has stopped.
    """

    def __init__(self, parallelism: int = 4):
        if parallelism < 1:
            raise ValueError("parallelism must be at least 1")
        self.parallelism = parallelism

    @staticmethod
    def _put(target: "queue.Queue", item, consumers: Sequence[Future]) -> bool:
        """Blocks until `item` is queued. False when all consumers are gone."""
        while True:
            try:
                target.put(item, timeout=_POLL_SECONDS)
                return True
            except queue.Full:
                if all(c.done() for c in consumers):
                    return False

    def _work(
        self,
        worker_id: int,
        segments: "queue.Queue",
        results: "queue.Queue",
        task: CopyTask,
        aggregator: Future,
    ) -> int:
        handled = 0
        while True:
            segment = segments.get()
            if segment is _STOP:
                break
            if segment.key in task.done:
                logger.debug(f"Worker {worker_id}: {segment.key} already done, skipping")
                continue
            try:
                result = migrate_segment(segment, task)
            except Exception as e:
                logger.exception(f"Worker {worker_id}: unexpected failure on segment {segment.key}")
                result = MigrationResult(segment=segment, error=str(e) or type(e).__name__)
            if not self._put(results, result, [aggregator]):
                raise RuntimeError(f"Result aggregator stopped; worker {worker_id} cannot report {segment.key}")
            handled += 1
        logger.debug(f"Worker {worker_id} finished after {handled} segment(s)")
        return handled

    def run(self, segments: Iterable[Segment], task: CopyTask, aggregator: ResultAggregator) -> PassSummary:
        """Copy every segment and return the aggregator's totals once all results are in."""
        segment_queue: "queue.Queue" = queue.Queue(maxsize=2 * self.parallelism)
        result_queue: "queue.Queue" = queue.Queue(maxsize=2 * self.parallelism)

        with ThreadPoolExecutor(max_workers=self.parallelism + 1, thread_name_prefix="cutover") as executor:
            aggregator_future = executor.submit(aggregator.consume, result_queue)
            workers = [
                executor.submit(self._work, i, segment_queue, result_queue, task, aggregator_future)
                for i in range(self.parallelism)
            ]
            try:
                for segment in segments:
                    if not self._put(segment_queue, segment, workers):
                        break
            finally:
                for _ in workers:
                    if not self._put(segment_queue, _STOP, workers):
                        break
                # Every result is on the queue before it is closed
                wait(workers)
                self._put(result_queue, RESULTS_CLOSED, [aggregator_future])

            for future in workers:
                future.result()
            return aggregator_future.result()
