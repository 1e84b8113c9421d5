# src/table_cutover/incremental.py

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Set

from .checkpoint import CheckpointStore
from .segments import floor_hour
from .types import PassSummary, TimeRange, TimeWindow, segment_key

logger = logging.getLogger(__name__)

# (start_inclusive) -> range of source rows at or after it, None when there are none
Prober = Callable[[datetime], Optional[TimeRange]]
# (label, time_range, window, done) -> totals of one planner+pool+aggregator cycle
PassRunner = Callable[[str, TimeRange, TimeWindow, Set[str]], PassSummary]


@dataclass
class IncrementalOutcome:
    last_max: datetime
    passes: List[PassSummary] = field(default_factory=list)
    hit_pass_limit: bool = False

    @property
    def rows_written(self) -> int:
        return sum(p.rows_written for p in self.passes)


class IncrementalLoop:
    """
    Catches up on rows written to the source while earlier passes ran.

    Each pass copies exactly the rows in (last_max, new_max]. The segment that
    contains last_max is planned again, because rows can land in it after it
    was completed; the window keeps rows already copied from being copied
    twice.
    """

    def __init__(
        self,
        probe: Prober,
        run_pass: PassRunner,
        checkpoint: CheckpointStore,
        max_passes: int = 100,
    ):
        self.probe = probe
        self.run_pass = run_pass
        self.checkpoint = checkpoint
        self.max_passes = max_passes

    def run(self, last_max: datetime) -> IncrementalOutcome:
        outcome = IncrementalOutcome(last_max=last_max)

        while True:
            if len(outcome.passes) >= self.max_passes:
                logger.warning(
                    f"Stopping catch-up after {self.max_passes} incremental pass(es); "
                    f"rows after {outcome.last_max} are left to cutover reconciliation"
                )
                outcome.hit_pass_limit = True
                return outcome

            found = self.probe(outcome.last_max)
            if found is None or found.max <= outcome.last_max:
                logger.info(f"No new rows after {outcome.last_max}, source is quiescent")
                return outcome

            done = self.checkpoint.load()
            done.discard(segment_key(floor_hour(outcome.last_max)))

            number = len(outcome.passes) + 1
            window = TimeWindow(after=outcome.last_max, until=found.max)
            logger.info(f"Incremental pass {number}: ({outcome.last_max}, {found.max}]")
            summary = self.run_pass(f"incremental #{number}", found, window, done)

            outcome.passes.append(summary)
            outcome.last_max = found.max
