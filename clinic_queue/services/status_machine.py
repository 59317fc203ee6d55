"""Queue status state machine.

Maps application queue statuses to external encounter statuses (and back) and
plans what an encounter write must look like for a requested queue change.

    QueueStatus        Encounter.status
    arrived            arrived
    waiting            triaged
    in_consultation    in-progress
    completed          finished
    meds_and_bills     finished
    None (removal)     finished
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional
import logging

from clinic_queue.models.triage import EncounterStatus, QueueStatus, TriageSummary
from clinic_queue.services.errors import InvalidTransition, NoActiveEncounter

logger = logging.getLogger(__name__)


QUEUE_TO_ENCOUNTER: Dict[QueueStatus, EncounterStatus] = {
    QueueStatus.ARRIVED: EncounterStatus.ARRIVED,
    QueueStatus.WAITING: EncounterStatus.TRIAGED,
    QueueStatus.IN_CONSULTATION: EncounterStatus.IN_PROGRESS,
    QueueStatus.COMPLETED: EncounterStatus.FINISHED,
    QueueStatus.MEDS_AND_BILLS: EncounterStatus.FINISHED,
}

# Used only for encounters that carry no triage metadata
ENCOUNTER_TO_QUEUE: Dict[EncounterStatus, QueueStatus] = {
    EncounterStatus.ARRIVED: QueueStatus.ARRIVED,
    EncounterStatus.TRIAGED: QueueStatus.WAITING,
    EncounterStatus.IN_PROGRESS: QueueStatus.IN_CONSULTATION,
    EncounterStatus.FINISHED: QueueStatus.COMPLETED,
}

ACTIVE_ENCOUNTER_STATUSES = (
    EncounterStatus.ARRIVED,
    EncounterStatus.TRIAGED,
    EncounterStatus.IN_PROGRESS,
)

QUEUE_WINDOW_STATUSES = ACTIVE_ENCOUNTER_STATUSES + (EncounterStatus.FINISHED,)


@dataclass(frozen=True)
class Transition:
    """What to write for a queue status change.

    ``create`` means no active encounter exists and a fresh one must be
    created (implicit check-in). Otherwise the existing encounter is updated.
    """

    create: bool
    encounter_status: EncounterStatus
    queue_status: Optional[QueueStatus]
    queue_added_at: Optional[datetime]
    reset_triaged: bool = False
    close_period: bool = False


class QueueStatusMachine:
    """Bidirectional status mapping and transition rules."""

    @staticmethod
    def to_encounter_status(status: Optional[QueueStatus]) -> Optional[EncounterStatus]:
        if status is None:
            return None
        return QUEUE_TO_ENCOUNTER[status]

    @staticmethod
    def from_encounter_status(status: Optional[EncounterStatus]) -> Optional[QueueStatus]:
        if status is None:
            return None
        return ENCOUNTER_TO_QUEUE.get(EncounterStatus(status))

    @staticmethod
    def is_active(status: EncounterStatus) -> bool:
        return status in ACTIVE_ENCOUNTER_STATUSES

    def plan(
        self,
        patient_id: str,
        current: Optional[TriageSummary],
        target: Optional[QueueStatus],
        now: datetime,
    ) -> Transition:
        """
        Plan a queue status change.

        Args:
            patient_id: Patient the change applies to (for error context)
            current: Decoded active encounter, or None when there is none
            target: Requested queue status; None removes from the queue
            now: Current time, used for a fresh ``queueAddedAt``

        Returns:
            Transition describing the encounter write

        Raises:
            NoActiveEncounter: target other than ``arrived`` with no encounter
            InvalidTransition: removing a patient who is not queued
        """
        attempted = target.value if target is not None else None

        if current is None:
            if target == QueueStatus.ARRIVED:
                return Transition(
                    create=True,
                    encounter_status=EncounterStatus.ARRIVED,
                    queue_status=QueueStatus.ARRIVED,
                    queue_added_at=now,
                    reset_triaged=True,
                )
            if target is None:
                raise InvalidTransition(
                    f"Patient {patient_id} is not in the queue",
                    patient_id=patient_id,
                    attempted_status=attempted,
                )
            raise NoActiveEncounter(
                f"No active encounter for patient {patient_id}",
                patient_id=patient_id,
                attempted_status=attempted,
            )

        if target is None:
            return Transition(
                create=False,
                encounter_status=EncounterStatus.FINISHED,
                queue_status=None,
                queue_added_at=None,
                close_period=True,
            )

        encounter_status = QUEUE_TO_ENCOUNTER[target]
        return Transition(
            create=False,
            encounter_status=encounter_status,
            queue_status=target,
            queue_added_at=current.queue_added_at or now,
            reset_triaged=target == QueueStatus.ARRIVED,
            close_period=encounter_status == EncounterStatus.FINISHED,
        )
