"""Ordering of today's queue.

Triaged patients come first, then by acuity (level 1 most urgent, untriaged
counted as level 6), then first-come first-served on ``queue_added_at``.
Python's sort is stable, so full ties keep their input order.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from clinic_queue.models.triage import QueueEntry

UNTRIAGED_LEVEL = 6


def _timestamp(value: Optional[datetime]) -> float:
    return value.timestamp() if value is not None else 0.0


def queue_sort_key(entry: QueueEntry) -> Tuple[int, int, float]:
    triaged = bool(entry.triage and entry.triage.is_triaged)
    level = entry.triage.triage_level if entry.triage else UNTRIAGED_LEVEL
    return (0 if triaged else 1, level, _timestamp(entry.queue_added_at))


def order_queue(entries: Iterable[QueueEntry]) -> List[QueueEntry]:
    """Return queued entries in display order, dropping those with no status."""
    return sorted(
        (entry for entry in entries if entry.queue_status is not None),
        key=queue_sort_key,
    )
