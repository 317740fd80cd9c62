"""
Collapse upsert batches onto their natural keys.

PostgreSQL rejects an ``ON CONFLICT DO UPDATE`` statement that touches the
same key twice, and the source occasionally repeats an item across page
boundaries, so every batch passes through here before it is written.
"""

from __future__ import annotations

from typing import Callable, Hashable, Iterable, List, Optional, Tuple, TypeVar

RecordT = TypeVar("RecordT")


def dedupe_by_key(
    records: Iterable[RecordT],
    natural_key: Callable[[RecordT], Optional[Hashable]],
) -> Tuple[List[RecordT], int]:
    """
    Keep one record per natural key.

    A repeated key replaces the earlier record in place, so the batch keeps
    the order in which keys first appeared. Records without a key are
    discarded and not counted as duplicates.

    Returns:
        (records, number of repeats collapsed)
    """
    by_key: dict = {}
    repeats = 0

    for record in records:
        key = natural_key(record)
        if key is None:
            continue
        repeats += key in by_key
        by_key[key] = record

    return list(by_key.values()), repeats
