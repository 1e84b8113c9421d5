# src/table_cutover/engine.py

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import AbstractSet, List, Optional, Tuple

from .aggregator import ResultAggregator
from .audit import AuditLog
from .checkpoint import CheckpointStore
from .config import JobConfig
from .connectors.base import BaseStore
from .connectors.registry import open_store
from .cutover import CutoverCoordinator, CutoverReport, validate_cutover_config
from .errors import CutoverError, MigrationAbortedError
from .execution.worker_pool import CopyTask, WorkerPool
from .incremental import IncrementalLoop
from .logging_utils import MigrationLogger
from .schema_validator import SchemaValidator, projection
from .segments import count_segments, generate_segments
from .time_range import get_time_range
from .types import ColumnInfo, PassSummary, TimeRange, TimeWindow

logger = logging.getLogger(__name__)


@dataclass
class MigrationReport:
    """What a run did, pass by pass."""
    status: str = "pending"  # empty, backfilled, done
    time_range: Optional[TimeRange] = None
    last_migrated: Optional[datetime] = None
    passes: List[PassSummary] = field(default_factory=list)
    cutover: Optional[CutoverReport] = None
    archived_checkpoint: Optional[Path] = None

    @property
    def rows_written(self) -> int:
        late = self.cutover.late_rows if self.cutover else 0
        return sum(p.rows_written for p in self.passes) + late

    @property
    def rows_dropped(self) -> int:
        late = self.cutover.trailing_dropped if self.cutover else 0
        return sum(p.rows_dropped for p in self.passes) + late

    @property
    def failed_segments(self) -> List[str]:
        return [key for p in self.passes for key in p.failed_segments]


class Migration:
    """One job: validate, backfill, catch up, cut over."""

    def __init__(
        self,
        config: JobConfig,
        source: Optional[BaseStore] = None,
        destination: Optional[BaseStore] = None,
        progress: Optional[MigrationLogger] = None,
    ):
        self.config = config
        self.source = source
        self.destination = destination
        self.progress = progress or MigrationLogger(f"{config.source_table} -> {config.destination_table}")
        self.checkpoint = CheckpointStore(config.checkpoint_path)
        self.audit_log = AuditLog(config.audit_log)
        self.columns: List[ColumnInfo] = []
        self._opened: List[BaseStore] = []

    @contextmanager
    def phase(self, name: str):
        """Runs a step; any failure aborts the run with the step's name attached."""
        self.progress.phase(name)
        try:
            yield
        except MigrationAbortedError:
            raise
        except Exception as e:
            self.progress.error(f"{name} failed: {e}", exc_info=logger.isEnabledFor(logging.DEBUG))
            raise MigrationAbortedError(name, e) from e

    # --- validation ---

    def connect(self) -> None:
        with self.phase("connect"):
            if self.source is None:
                self.source = open_store(self.config.source_dsn)
                self._opened.append(self.source)
            if self.destination is None:
                self.destination = open_store(self.config.destination_dsn)
                self._opened.append(self.destination)
            self.source.test_connection()
            self.destination.test_connection()

    def validate(self) -> List[ColumnInfo]:
        """Every check that must pass before data moves. Returns the migrated columns."""
        cfg = self.config
        validator = SchemaValidator(cfg.ignored_columns)

        with self.phase("schema check"):
            source_columns = self.source.get_columns(cfg.source_table)
            destination_columns = self.destination.get_columns(cfg.destination_table)
            validator.validate(source_columns, destination_columns)

        with self.phase("time column check"):
            validator.check_time_column(source_columns, cfg.time_column)

        if cfg.cutover:
            with self.phase("cutover config check"):
                validate_cutover_config(cfg)

        self.columns = projection(source_columns, cfg.ignored_columns)
        self.progress.success(f"{len(self.columns)} column(s) validated")
        return self.columns

    # --- passes ---

    def run_pass(
        self,
        label: str,
        time_range: TimeRange,
        window: TimeWindow,
        done: AbstractSet[str] = frozenset(),
        source_table: Optional[str] = None,
        checkpointing: bool = True,
    ) -> PassSummary:
        """One planner + worker pool + aggregator cycle over `time_range`."""
        cfg = self.config
        started = time.monotonic()
        aggregator = ResultAggregator(
            label, count_segments(time_range.min, time_range.max), self.audit_log, self.progress
        )
        task = CopyTask(
            source=self.source,
            destination=self.destination,
            source_table=source_table or cfg.source_table,
            destination_table=cfg.destination_table,
            columns=self.columns,
            time_column=cfg.time_column,
            window=window,
            done=frozenset(done),
            checkpoint=self.checkpoint if checkpointing else None,
            extract_batch_size=cfg.extract_batch_size,
            write_batch_size=cfg.write_batch_size,
            insert_max_attempts=cfg.insert_max_attempts,
            insert_retry_delay=cfg.insert_retry_delay,
        )
        segments = generate_segments(time_range.min, time_range.max, done)
        summary = WorkerPool(cfg.parallelism).run(segments, task, aggregator)

        self.audit_log.write_event(
            "pass_complete",
            label=label,
            segments=summary.processed_segments,
            rows_read=summary.rows_read,
            rows_written=summary.rows_written,
            rows_dropped=summary.rows_dropped,
            failed_segments=summary.failed_segments,
        )
        if summary.failed_segments or summary.rows_dropped:
            self.progress.warning(
                f"{label}: {len(summary.failed_segments)} failed segment(s), {summary.rows_dropped} dropped row(s)"
            )
        else:
            self.progress.success(
                f"{label}: {summary.rows_written} row(s) in {summary.processed_segments} segment(s)",
                timing=time.monotonic() - started,
            )
        return summary

    def _run_trailing_pass(self, label: str, time_range: TimeRange, window: TimeWindow, source_table: str) -> PassSummary:
        return self.run_pass(label, time_range, window, source_table=source_table, checkpointing=False)

    def _probe(self, start_inclusive: datetime) -> Optional[TimeRange]:
        return get_time_range(self.source, self.config.source_table, self.config.time_column, start_inclusive)

    # --- the whole job ---

    def run(self) -> MigrationReport:
        cfg = self.config
        report = MigrationReport()
        self.progress.start_job()

        try:
            self.connect()
            self.validate()

            with self.phase("time range probe"):
                report.time_range = self._probe(cfg.start_time)
            if report.time_range is None:
                self.progress.warning(f"No data in {cfg.source_table} at or after {cfg.start_time}, nothing to migrate")
                report.status = "empty"
                return report

            with self.phase("field mapping"):
                sample = self.source.sample_row(cfg.source_table, self.columns)
                self.audit_log.write_field_mapping(self.columns, sample)

            with self.phase("backfill"):
                done = self.checkpoint.load()
                window = TimeWindow(since=cfg.start_time, until=report.time_range.max)
                report.passes.append(self.run_pass("backfill", report.time_range, window, done))
                report.last_migrated = report.time_range.max

            with self.phase("catch-up"):
                loop = IncrementalLoop(self._probe, self.run_pass, self.checkpoint, cfg.max_incremental_passes)
                outcome = loop.run(report.last_migrated)
                report.passes.extend(outcome.passes)
                report.last_migrated = outcome.last_max

            if not cfg.cutover:
                report.status = "backfilled"
                self.progress.info(f"Cutover disabled; checkpoints kept in {self.checkpoint.path}")
                return report

            if report.failed_segments:
                with self.phase("cutover"):
                    raise CutoverError(
                        f"{len(report.failed_segments)} segment(s) failed to copy; "
                        f"rerun the job to retry them before cutting over"
                    )

            with self.phase("cutover"):
                coordinator = CutoverCoordinator(cfg, self.source, self.destination, self.columns, self._run_trailing_pass)
                coordinator.mark_quiescent()
                report.cutover = coordinator.execute(report.last_migrated)
                self.audit_log.write_event(
                    "cutover_complete",
                    backup_table=report.cutover.backup_table,
                    watermark=report.cutover.watermark,
                    reconciled_rows=report.cutover.reconciled_rows,
                    trailing_rows=report.cutover.trailing_rows,
                    short_boundaries=report.cutover.short_boundaries,
                )

            with self.phase("archive checkpoints"):
                report.archived_checkpoint = self.checkpoint.archive()

            report.status = "done"
            return report
        finally:
            self.progress.complete_job(report.rows_written, report.rows_dropped, len(report.failed_segments))
            self.close()

    def close(self) -> None:
        """Closes the stores this run opened itself."""
        while self._opened:
            self._opened.pop().close()


def run_migration(
    config: JobConfig,
    source: Optional[BaseStore] = None,
    destination: Optional[BaseStore] = None,
) -> MigrationReport:
    """Run a full migration job. Stores are opened from the config's DSNs unless given."""
    return Migration(config, source, destination).run()


def validate_job(
    config: JobConfig,
    source: Optional[BaseStore] = None,
    destination: Optional[BaseStore] = None,
) -> Tuple[List[ColumnInfo], Optional[TimeRange]]:
    """Connection, schema, time column and cutover checks, plus a time range probe. Moves no data."""
    migration = Migration(config, source, destination)
    try:
        migration.connect()
        columns = migration.validate()
        with migration.phase("time range probe"):
            time_range = migration._probe(config.start_time)
        return columns, time_range
    finally:
        migration.close()
