# src/table_cutover/cutover.py
"""Rename-based cutover from the source table to the migrated copy.

    BACKFILLING -> QUIESCENT -> RENAMED_SRC -> RECONCILING -> RENAMED_DST -> DONE

Any failing step moves to ABORTED. Nothing is rolled back automatically: the
log names the state reached so an operator can finish or undo the renames.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Sequence

from .batch import read_in_batches
from .config import JobConfig
from .connectors.base import BaseStore
from .equality import missing_rows
from .errors import ConfigurationError, CutoverError
from .time_range import get_max_time
from .types import ColumnInfo, PassSummary, TimeRange, TimeWindow
from .utils.retry import retry_with_backoff

logger = logging.getLogger(__name__)

# (label, time_range, window, source_table) -> totals of an uncheckpointed pass
TrailingPassRunner = Callable[[str, TimeRange, TimeWindow, str], PassSummary]


class CutoverState(str, Enum):
    BACKFILLING = "backfilling"
    QUIESCENT = "quiescent"
    RENAMED_SRC = "renamed_src"
    RECONCILING = "reconciling"
    RENAMED_DST = "renamed_dst"
    DONE = "done"
    ABORTED = "aborted"


@dataclass
class CutoverReport:
    backup_table: str
    last_migrated: datetime
    watermark: Optional[datetime] = None
    reconciled_rows: int = 0
    trailing_rows: int = 0
    trailing_dropped: int = 0
    short_boundaries: List[datetime] = field(default_factory=list)
    state: CutoverState = CutoverState.QUIESCENT

    @property
    def late_rows(self) -> int:
        """Rows that reached the source between the last probe and the rename."""
        return self.reconciled_rows + self.trailing_rows


def validate_cutover_config(config: JobConfig) -> None:
    """Distributed tables are renamed ON CLUSTER, so they need a cluster name."""
    if config.source_distributed and not config.cluster_name:
        raise ConfigurationError(f"Source table '{config.source_table}' is distributed; --cluster-name is required")
    if config.destination_distributed and not config.cluster_name:
        raise ConfigurationError(
            f"Destination table '{config.destination_table}' is distributed; --cluster-name is required"
        )
    if config.cluster_name and not (config.source_distributed or config.destination_distributed):
        logger.warning(f"Cluster name '{config.cluster_name}' given but neither table is distributed; it is unused")


class CutoverCoordinator:
    def __init__(
        self,
        config: JobConfig,
        source: BaseStore,
        destination: BaseStore,
        columns: Sequence[ColumnInfo],
        run_trailing_pass: TrailingPassRunner,
    ):
        self.config = config
        self.source = source
        self.destination = destination
        self.columns = list(columns)
        self.run_trailing_pass = run_trailing_pass
        self.state = CutoverState.BACKFILLING

    def validate(self) -> None:
        validate_cutover_config(self.config)

    def mark_quiescent(self) -> None:
        if self.state is not CutoverState.BACKFILLING:
            raise CutoverError(f"Cannot become quiescent from state {self.state.value}", state=self.state)
        self.state = CutoverState.QUIESCENT

    def _advance(self, state: CutoverState) -> None:
        logger.info(f"Cutover: {self.state.value} -> {state.value}")
        self.state = state

    def _cluster_for(self, distributed: bool) -> Optional[str]:
        return self.config.cluster_name if distributed else None

    def reconcile_at(self, ts: datetime) -> int:
        """
        Insert backup rows stamped exactly `ts` that the destination lacks.

        Rows are matched one-to-one with structural equality, so duplicate rows
        in the backup are only satisfied by as many duplicates in the destination.
        """
        cfg = self.config
        expected = self.source.read_at(cfg.backup_table, self.columns, cfg.time_column, ts)
        present = self.destination.read_at(cfg.destination_table, self.columns, cfg.time_column, ts)
        missing = missing_rows(expected, present)
        if not missing:
            logger.info(f"Reconcile at {ts}: {len(expected)} row(s) already present")
            return 0

        insert = retry_with_backoff(
            max_attempts=cfg.insert_max_attempts,
            initial_delay=cfg.insert_retry_delay,
            backoff_factor=1.0,
        )(self.destination.insert_rows)
        for batch in read_in_batches(missing, cfg.write_batch_size):
            insert(cfg.destination_table, self.columns, batch)
        logger.info(f"Reconcile at {ts}: inserted {len(missing)} of {len(expected)} row(s)")
        return len(missing)

    def boundary_is_complete(self, ts: datetime) -> bool:
        """Compares backup and destination row counts at `ts` after reconciliation."""
        cfg = self.config
        backup_count = self.source.count_at(cfg.backup_table, cfg.time_column, ts)
        destination_count = self.destination.count_at(cfg.destination_table, cfg.time_column, ts)
        logger.info(f"Rows at {ts}: {backup_count} in {cfg.backup_table}, {destination_count} in {cfg.destination_table}")
        if destination_count < backup_count:
            logger.warning(
                f"{cfg.destination_table} holds {destination_count} row(s) at {ts}, "
                f"{cfg.backup_table} holds {backup_count}"
            )
            return False
        return True

    def execute(self, last_migrated: datetime) -> CutoverReport:
        """Swap the tables. `last_migrated` is the highest source timestamp copied so far."""
        if self.state is not CutoverState.QUIESCENT:
            raise CutoverError(f"Cutover requires a quiescent source, state is {self.state.value}", state=self.state)

        cfg = self.config
        report = CutoverReport(backup_table=cfg.backup_table, last_migrated=last_migrated)
        try:
            self.source.rename_table(
                cfg.source_table, cfg.backup_table, cluster=self._cluster_for(cfg.source_distributed)
            )
            self._advance(CutoverState.RENAMED_SRC)

            report.watermark = get_max_time(self.source, cfg.backup_table, cfg.time_column)
            self._advance(CutoverState.RECONCILING)

            boundaries: List[datetime] = [last_migrated]
            if report.watermark is not None and report.watermark != last_migrated:
                boundaries.append(report.watermark)
            for ts in boundaries:
                report.reconciled_rows += self.reconcile_at(ts)
                if not self.boundary_is_complete(ts):
                    report.short_boundaries.append(ts)

            if report.watermark is not None and report.watermark > last_migrated:
                summary = self.run_trailing_pass(
                    "trailing",
                    TimeRange(min=last_migrated, max=report.watermark),
                    TimeWindow(after=last_migrated, until=report.watermark, until_inclusive=False),
                    cfg.backup_table,
                )
                if summary.failed_segments:
                    raise CutoverError(
                        f"Trailing pass failed for segment(s): {', '.join(summary.failed_segments)}",
                        state=self.state,
                    )
                report.trailing_rows = summary.rows_written
                report.trailing_dropped = summary.rows_dropped

            if report.late_rows:
                logger.warning(
                    f"{report.late_rows} row(s) arrived after the last catch-up probe and were copied during cutover"
                )

            self.destination.rename_table(
                cfg.destination_table, cfg.source_table, cluster=self._cluster_for(cfg.destination_distributed)
            )
            self._advance(CutoverState.RENAMED_DST)
            self._advance(CutoverState.DONE)
        except Exception as e:
            failed_in = self.state
            self.state = CutoverState.ABORTED
            report.state = self.state
            logger.error(f"Cutover aborted in state {failed_in.value}: {e}")
            if isinstance(e, CutoverError):
                e.state = failed_in
                raise
            raise CutoverError(f"Cutover failed in state {failed_in.value}: {e}", state=failed_in) from e

        report.state = self.state
        return report
