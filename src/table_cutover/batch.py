# src/table_cutover/batch.py

import logging
from typing import Iterable, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def read_in_batches(items: Iterable[T], batch_size: int = 1000) -> Iterable[List[T]]:
    """
    Group a stream into lists of at most `batch_size` items without loading it all.

    Example:
        for batch in read_in_batches(store.read_range(...), batch_size=1000):
            destination.insert_rows(table, columns, batch)
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    batch: List[T] = []
    for item in items:
        batch.append(item)
        if len(batch) >= batch_size:
            logger.debug(f"Yielding batch of {len(batch)} rows")
            yield batch
            batch = []

    if batch:
        logger.debug(f"Yielding final batch of {len(batch)} rows")
        yield batch
