"""Triage and queue service.

Every write is a read-modify-write against the encounter gateway: find the
patient's active encounter, decide the new state, encode it, and replace the
encounter. There is no version check, so concurrent updates to one patient
resolve to whichever write lands last.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional
import asyncio
import logging

from clinic_queue.config.settings import settings
from clinic_queue.models.encounter import (
    CodeableConcept,
    Coding,
    Encounter,
    ObservationCode,
    Period,
    encounter_reference,
    patient_reference,
)
from clinic_queue.models.triage import (
    EncounterStatus,
    QueueEntry,
    QueueStatus,
    TriageRecord,
    TriageSummary,
    TriageUpdate,
    VitalSigns,
)
from clinic_queue.services.errors import InvalidTransition, NoActiveEncounter
from clinic_queue.services.metadata_codec import MetadataCodec
from clinic_queue.services.queue_ordering import order_queue
from clinic_queue.services.status_machine import QueueStatusMachine, Transition
from clinic_queue.tools.gateway import EncounterGateway

logger = logging.getLogger(__name__)


CHIEF_COMPLAINT_CODE = ObservationCode(
    code="8661-1", display="Chief complaint Narrative", value_type="string"
)

# LOINC codes for vitals written as individual observations
VITAL_CODES: Dict[str, ObservationCode] = {
    "blood_pressure_systolic": ObservationCode(
        code="8480-6", display="Systolic blood pressure", unit="mm[Hg]"
    ),
    "blood_pressure_diastolic": ObservationCode(
        code="8462-4", display="Diastolic blood pressure", unit="mm[Hg]"
    ),
    "heart_rate": ObservationCode(code="8867-4", display="Heart rate", unit="/min"),
    "respiratory_rate": ObservationCode(
        code="9279-1", display="Respiratory rate", unit="/min"
    ),
    "temperature": ObservationCode(code="8310-5", display="Body temperature", unit="Cel"),
    "oxygen_saturation": ObservationCode(
        code="59408-5", display="Oxygen saturation", unit="%"
    ),
    "pain_score": ObservationCode(
        code="72514-3",
        display="Pain severity - 0-10 verbal numeric rating",
        value_type="integer",
    ),
    "weight": ObservationCode(code="29463-7", display="Body weight", unit="kg"),
    "height": ObservationCode(code="8302-2", display="Body height", unit="cm"),
}


def triage_priority(triage_level: int) -> CodeableConcept:
    return CodeableConcept(
        coding=[
            Coding(
                system="http://terminology.hl7.org/CodeSystem/v3-ActPriority",
                code=str(triage_level),
                display=f"Triage Level {triage_level}",
            )
        ]
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TriageService:
    """Check-in, triage and queue status operations for the front desk."""

    def __init__(
        self,
        gateway: EncounterGateway,
        codec: Optional[MetadataCodec] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.gateway = gateway
        self.codec = codec or MetadataCodec()
        self.machine = QueueStatusMachine()
        self._clock = clock or _utcnow

    def _summarize(self, encounter: Encounter) -> TriageSummary:
        """Decode an encounter, falling back to its own status and period.

        The fallback to ``Encounter.status`` only applies to encounters with
        no triage extension at all. An extension whose queue fields were
        removed means the patient left the queue.
        """
        decoded = self.codec.decode(encounter.extension)
        queue_status = decoded.queue_status
        if queue_status is None and not self.codec.has_metadata(encounter.extension):
            queue_status = self.machine.from_encounter_status(encounter.status)

        queue_added_at = decoded.queue_added_at
        if queue_added_at is None and queue_status is not None and encounter.period:
            queue_added_at = encounter.period.start

        return TriageSummary(
            triage=decoded.triage,
            queue_status=queue_status,
            queue_added_at=queue_added_at,
            encounter_id=encounter.id,
        )

    async def get_active_encounter(self, patient_id: str) -> Optional[TriageSummary]:
        """
        Get the decoded active encounter of a patient.

        Args:
            patient_id: Patient identifier

        Returns:
            TriageSummary or None if the patient has no active encounter
        """
        encounter = await self.gateway.find_active_encounter(patient_reference(patient_id))
        if encounter is None:
            return None
        return self._summarize(encounter)

    async def get_triage_for_patient(self, patient_id: str) -> TriageSummary:
        summary = await self.get_active_encounter(patient_id)
        return summary or TriageSummary()

    async def _record_observations(
        self,
        patient_id: str,
        encounter_id: str,
        chief_complaint: Optional[str],
        vitals: Optional[VitalSigns] = None,
    ) -> None:
        patient_ref = patient_reference(patient_id)
        encounter_ref = encounter_reference(encounter_id)

        writes = []
        if chief_complaint:
            writes.append(
                self.gateway.create_observation(
                    patient_ref, encounter_ref, CHIEF_COMPLAINT_CODE, chief_complaint
                )
            )
        if vitals is not None:
            for field, value in vitals.model_dump(exclude_none=True).items():
                writes.append(
                    self.gateway.create_observation(
                        patient_ref, encounter_ref, VITAL_CODES[field], value
                    )
                )
        results = await asyncio.gather(*writes, return_exceptions=True)
        failures = [result for result in results if isinstance(result, BaseException)]
        if failures:
            logger.warning(
                f"{len(failures)} of {len(writes)} observation writes failed "
                f"for encounter {encounter_id}"
            )
            raise failures[0]

    async def _create_check_in(
        self, patient_id: str, now: datetime, chief_complaint: Optional[str] = None
    ) -> str:
        encounter_id = await self.gateway.create_encounter(
            patient_reference(patient_id),
            EncounterStatus.ARRIVED,
            Period(start=now),
            [self.codec.encode(None, QueueStatus.ARRIVED, now)],
        )
        logger.info(f"Checked in patient {patient_id} (encounter {encounter_id})")
        await self._record_observations(patient_id, encounter_id, chief_complaint)
        return encounter_id

    async def check_in(self, patient_id: str, chief_complaint: Optional[str] = None) -> str:
        """
        Check a patient in at the front desk.

        Re-checking in a patient with an active encounter re-stamps that
        encounter as ``arrived`` and keeps its original queue time. A complaint
        given again is recorded against that encounter.

        Args:
            patient_id: Patient identifier
            chief_complaint: Optional complaint given at the desk

        Returns:
            Encounter ID
        """
        existing = await self.get_active_encounter(patient_id)
        if existing is not None:
            await self.update_queue_status(patient_id, QueueStatus.ARRIVED)
            await self._record_observations(
                patient_id, existing.encounter_id, chief_complaint
            )
            return existing.encounter_id
        return await self._create_check_in(patient_id, self._clock(), chief_complaint)

    async def save_triage(self, patient_id: str, triage: TriageRecord) -> str:
        """
        Record a completed triage and put the patient in the waiting queue.

        Args:
            patient_id: Patient identifier
            triage: Assessment; ``triage_at`` and ``is_triaged`` are set here

        Returns:
            Encounter ID (existing active encounter, or a new one)
        """
        now = self._clock()
        record = triage.model_copy(update={"triage_at": now, "is_triaged": True})
        patient_ref = patient_reference(patient_id)

        existing = await self.gateway.find_active_encounter(patient_ref)
        if existing is None:
            encounter_id = await self.gateway.create_encounter(
                patient_ref,
                EncounterStatus.TRIAGED,
                Period(start=now),
                [self.codec.encode(record, QueueStatus.WAITING, now)],
                priority=triage_priority(record.triage_level),
            )
        else:
            current = self._summarize(existing)
            encounter = await self.gateway.read_encounter(existing.id)
            subtree = self.codec.encode(
                record, QueueStatus.WAITING, current.queue_added_at or now
            )
            encounter.status = EncounterStatus.TRIAGED
            encounter.priority = triage_priority(record.triage_level)
            encounter.extension = self.codec.merge(encounter.extension, subtree)
            await self.gateway.update_encounter(encounter)
            encounter_id = encounter.id

        logger.info(
            f"Triaged patient {patient_id} at level {record.triage_level} "
            f"(encounter {encounter_id})"
        )
        await self._record_observations(
            patient_id, encounter_id, record.chief_complaint, record.vital_signs
        )
        return encounter_id

    async def update_triage(self, patient_id: str, changes: TriageUpdate) -> None:
        """
        Apply a partial triage change to the active encounter.

        The original ``triage_at`` and the current queue state are kept.

        Raises:
            NoActiveEncounter: the patient has no active encounter
            InvalidTransition: no earlier triage and level/complaint missing
        """
        existing = await self.gateway.find_active_encounter(patient_reference(patient_id))
        if existing is None:
            raise NoActiveEncounter(
                f"No active triage encounter found for patient {patient_id}",
                patient_id=patient_id,
            )

        current = self._summarize(existing)
        base = current.triage
        fields = changes.model_dump(exclude_unset=True, exclude_none=True)
        if base is None and not {"triage_level", "chief_complaint"} <= fields.keys():
            raise InvalidTransition(
                f"Patient {patient_id} has not been triaged; "
                "triage level and chief complaint are required",
                patient_id=patient_id,
            )

        now = self._clock()
        merged = base.model_dump() if base is not None else {}
        merged.update(fields)
        merged["triage_at"] = (base.triage_at if base else None) or now
        merged["is_triaged"] = True
        record = TriageRecord.model_validate(merged)

        encounter = await self.gateway.read_encounter(existing.id)
        subtree = self.codec.encode(
            record,
            current.queue_status or QueueStatus.WAITING,
            current.queue_added_at or now,
        )
        encounter.priority = triage_priority(record.triage_level)
        encounter.extension = self.codec.merge(encounter.extension, subtree)
        await self.gateway.update_encounter(encounter)
        logger.info(f"Updated triage for patient {patient_id} (encounter {encounter.id})")

    async def update_queue_status(
        self, patient_id: str, status: Optional[QueueStatus]
    ) -> None:
        """
        Move a patient to a new queue status, or out of the queue with None.

        Args:
            patient_id: Patient identifier
            status: Target queue status; None removes the patient

        Raises:
            NoActiveEncounter: target other than ``arrived`` with no encounter
            InvalidTransition: removing a patient who is not queued
        """
        now = self._clock()
        active = await self.gateway.find_active_encounter(patient_reference(patient_id))
        current = self._summarize(active) if active is not None else None
        transition = self.machine.plan(patient_id, current, status, now)

        if transition.create:
            await self._create_check_in(patient_id, now)
            return

        encounter = await self.gateway.read_encounter(active.id)
        self._apply(encounter, transition, now)
        await self.gateway.update_encounter(encounter)
        logger.info(
            f"Queue status for patient {patient_id} -> "
            f"{status.value if status else 'removed'} ({encounter.status.value})"
        )

    def _apply(self, encounter: Encounter, transition: Transition, now: datetime) -> None:
        encounter.status = transition.encounter_status
        if transition.close_period:
            encounter.period = encounter.period or Period()
            encounter.period.end = now
        subtree = self.codec.with_queue_state(
            self.codec.find(encounter.extension),
            transition.queue_status,
            transition.queue_added_at,
            reset_triaged=transition.reset_triaged,
        )
        encounter.extension = self.codec.merge(encounter.extension, subtree)

    async def add_to_queue(self, patient_id: str) -> None:
        await self.update_queue_status(patient_id, QueueStatus.WAITING)

    async def remove_from_queue(self, patient_id: str) -> None:
        await self.update_queue_status(patient_id, None)

    async def get_queue_for_today(self, limit: Optional[int] = None) -> List[QueueEntry]:
        """
        Build today's ordered queue.

        "Today" is local midnight to the next midnight on the server. Each
        encounter is decoded independently, so the result is a snapshot that
        may be slightly stale under concurrent updates.

        Args:
            limit: Maximum number of encounters to fetch

        Returns:
            Queue entries in display order
        """
        start = self._clock().astimezone().replace(hour=0, minute=0, second=0, microsecond=0)
        end = start + timedelta(days=1)

        encounters = await self.gateway.search_encounters_in_window(
            start.isoformat(), end.isoformat(), limit or settings.queue_search_limit
        )

        entries = []
        for encounter in encounters:
            patient_id = encounter.patient_id
            if not patient_id:
                continue
            summary = self._summarize(encounter)
            if summary.queue_status is None:
                continue
            entries.append(
                QueueEntry(
                    patient_id=patient_id,
                    encounter_id=encounter.id,
                    triage=summary.triage,
                    queue_status=summary.queue_status,
                    queue_added_at=summary.queue_added_at,
                )
            )

        logger.info(f"Queue for today: {len(entries)} patients")
        return order_queue(entries)
