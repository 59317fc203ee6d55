"""In-memory encounter gateway for development and tests.

Used when ``FHIR_USE_MOCK`` is set or no FHIR server is enabled. Resources are
kept as JSON-shaped dicts and re-parsed on every read, so callers see the same
serialization round trip as with a real server.
"""

from datetime import datetime
from itertools import count
from typing import Any, Dict, List, Optional, Union
import copy
import logging
import uuid

from clinic_queue.models.encounter import (
    CodeableConcept,
    Encounter,
    ObservationCode,
    Period,
    Reference,
)
from clinic_queue.models.triage import EncounterStatus
from clinic_queue.services.errors import EncounterNotFound
from clinic_queue.services.status_machine import QUEUE_WINDOW_STATUSES, QueueStatusMachine
from clinic_queue.tools.gateway import build_observation

logger = logging.getLogger(__name__)


class InMemoryEncounterGateway:
    """Encounter gateway keeping everything in process memory."""

    def __init__(self):
        self.encounters: Dict[str, Dict[str, Any]] = {}
        self.observations: List[Dict[str, Any]] = []
        self._last_updated: Dict[str, int] = {}
        self._sequence = count(1)
        logger.info("FHIR Client initialized - Mode: MOCK")

    def _store(self, resource: Dict[str, Any]) -> None:
        self.encounters[resource["id"]] = copy.deepcopy(resource)
        self._last_updated[resource["id"]] = next(self._sequence)

    def _load(self, encounter_id: str) -> Encounter:
        return Encounter.model_validate(copy.deepcopy(self.encounters[encounter_id]))

    async def create_encounter(
        self,
        patient_ref: str,
        status: EncounterStatus,
        period: Period,
        extension: List[Dict[str, Any]],
        priority: Optional[CodeableConcept] = None,
    ) -> str:
        encounter = Encounter(
            id=str(uuid.uuid4()),
            status=status,
            subject=Reference(reference=patient_ref),
            period=period,
            priority=priority,
            extension=extension,
        )
        self._store(encounter.to_resource())
        logger.debug(f"Mock encounter {encounter.id} created for {patient_ref}")
        return encounter.id

    async def read_encounter(self, encounter_id: str) -> Encounter:
        if encounter_id not in self.encounters:
            raise EncounterNotFound(f"Encounter {encounter_id} not found")
        return self._load(encounter_id)

    async def update_encounter(self, encounter: Encounter) -> Encounter:
        if not encounter.id or encounter.id not in self.encounters:
            raise EncounterNotFound(f"Encounter {encounter.id} not found")
        self._store(encounter.to_resource())
        return self._load(encounter.id)

    async def find_active_encounter(self, patient_ref: str) -> Optional[Encounter]:
        candidates = [
            encounter_id
            for encounter_id, resource in self.encounters.items()
            if resource.get("subject", {}).get("reference") == patient_ref
            and QueueStatusMachine.is_active(EncounterStatus(resource["status"]))
        ]
        if not candidates:
            return None
        latest = max(candidates, key=lambda encounter_id: self._last_updated[encounter_id])
        return self._load(latest)

    async def search_encounters_in_window(
        self, start_iso: str, end_iso: str, limit: int = 200
    ) -> List[Encounter]:
        window_start = datetime.fromisoformat(start_iso)
        window_end = datetime.fromisoformat(end_iso)
        statuses = {s.value for s in QUEUE_WINDOW_STATUSES}

        matches = []
        for encounter_id, resource in self.encounters.items():
            if resource.get("status") not in statuses:
                continue
            encounter = self._load(encounter_id)
            if encounter.period is None or encounter.period.start is None:
                continue
            # Same overlap rule as the FHIR ``date`` search parameter; an open
            # period is ongoing
            period_end = encounter.period.end or window_end
            if encounter.period.start < window_end and period_end >= window_start:
                matches.append(encounter)

        matches.sort(key=lambda encounter: encounter.period.start)
        return matches[:limit]

    async def create_observation(
        self,
        patient_ref: str,
        encounter_ref: str,
        code: ObservationCode,
        value: Union[str, int, float],
    ) -> None:
        observation = build_observation(patient_ref, encounter_ref, code, value)
        observation["id"] = str(uuid.uuid4())
        self.observations.append(observation)

    async def aclose(self) -> None:
        return None
