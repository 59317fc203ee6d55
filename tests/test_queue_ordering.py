"""Tests for queue ordering."""

from datetime import datetime, timedelta, timezone

from clinic_queue.models.triage import QueueEntry, QueueStatus, TriageRecord
from clinic_queue.services.queue_ordering import order_queue

T0 = datetime(2025, 3, 4, 9, 0, tzinfo=timezone.utc)


def entry(patient_id, level=None, added_at=None, is_triaged=True, status=QueueStatus.WAITING):
    triage = None
    if level is not None:
        triage = TriageRecord(
            triage_level=level, chief_complaint="complaint", is_triaged=is_triaged
        )
    return QueueEntry(
        patient_id=patient_id, triage=triage, queue_status=status, queue_added_at=added_at
    )


def ids(entries):
    return [e.patient_id for e in entries]


def test_triaged_by_acuity_before_arrivals():
    a = entry("A", level=2, added_at=T0)
    b = entry("B", level=1, added_at=T0 + timedelta(minutes=5))
    c = entry("C", added_at=T0 - timedelta(minutes=5), status=QueueStatus.ARRIVED)

    assert ids(order_queue([a, b, c])) == ["B", "A", "C"]


def test_same_level_is_first_come_first_served():
    later = entry("later", level=3, added_at=T0 + timedelta(minutes=1))
    earlier = entry("earlier", level=3, added_at=T0)

    assert ids(order_queue([later, earlier])) == ["earlier", "later"]


def test_missing_timestamp_sorts_first_within_tie():
    stamped = entry("stamped", level=4, added_at=T0)
    unstamped = entry("unstamped", level=4, added_at=None)

    assert ids(order_queue([stamped, unstamped])) == ["unstamped", "stamped"]


def test_level_five_still_beats_untriaged():
    untriaged = entry("walk-in", added_at=T0 - timedelta(hours=2), status=QueueStatus.ARRIVED)
    minor = entry("minor", level=5, added_at=T0)

    assert ids(order_queue([untriaged, minor])) == ["minor", "walk-in"]


def test_re_checked_in_patient_sorts_with_arrivals():
    # Old triage is still decoded, but isTriaged was reset on re-check-in
    rechecked = entry("rechecked", level=1, added_at=T0, is_triaged=False)
    triaged = entry("triaged", level=4, added_at=T0 + timedelta(minutes=30))
    walk_in = entry("walk-in", added_at=T0 - timedelta(minutes=5), status=QueueStatus.ARRIVED)

    assert ids(order_queue([rechecked, walk_in, triaged])) == ["triaged", "rechecked", "walk-in"]


def test_full_ties_keep_input_order():
    entries = [entry(name, level=2, added_at=T0) for name in ("x", "y", "z")]

    assert ids(order_queue(entries)) == ["x", "y", "z"]
    assert ids(order_queue(list(reversed(entries)))) == ["z", "y", "x"]


def test_mixed_naive_and_aware_timestamps_do_not_crash():
    naive = entry("naive", level=2, added_at=datetime(2025, 3, 4, 9, 0))
    aware = entry("aware", level=2, added_at=T0)

    assert len(order_queue([naive, aware])) == 2


def test_empty_queue():
    assert order_queue([]) == []
