# src/table_cutover/checkpoint.py

import logging
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional, Set

logger = logging.getLogger(__name__)

ARCHIVE_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


def default_checkpoint_path(source_table: str, destination_table: str) -> Path:
    return Path(f"done_segments_{source_table}_to_{destination_table}.txt")


class CheckpointStore:
    """Append-only ledger of completed segment keys, one per line.

    Appends from all workers go through one lock. A crash may leave a key
    written twice, which is harmless because loading builds a set.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def load(self) -> Set[str]:
        """Reads every completed key. A missing file means nothing is done yet."""
        if not self.path.exists():
            return set()

        with self.path.open("r", encoding="utf-8") as f:
            done = {line.strip() for line in f if line.strip()}
        logger.info(f"Loaded {len(done)} completed segment(s) from {self.path}")
        return done

    def mark_done(self, key: str) -> None:
        """Durably appends one completed key."""
        with self._lock:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(key + "\n")
                f.flush()
                os.fsync(f.fileno())
        logger.debug(f"Checkpointed segment {key}")

    def archive(self, now: Optional[datetime] = None) -> Optional[Path]:
        """Renames the ledger with a timestamp suffix so a later run starts clean."""
        if not self.path.exists():
            return None

        stamp = (now or datetime.now()).strftime(ARCHIVE_TIMESTAMP_FORMAT)
        target = self.path.with_name(f"{self.path.stem}_{stamp}{self.path.suffix}")
        with self._lock:
            self.path.replace(target)
        logger.info(f"Checkpoint file archived to {target}")
        return target
