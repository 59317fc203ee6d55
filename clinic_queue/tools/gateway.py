"""Encounter gateway contract.

The triage queue talks to the clinical data store only through this
interface. Implementations raise ``GatewayFailure`` when the store call fails
and ``EncounterNotFound`` when a read targets a missing encounter.

No optimistic concurrency is applied: an update replaces the stored encounter
as-is, so two concurrent read-modify-write cycles on the same patient end
with the last writer's version.
"""

from typing import Any, Dict, List, Optional, Protocol, Union

from clinic_queue.models.encounter import CodeableConcept, Encounter, ObservationCode, Period
from clinic_queue.models.triage import EncounterStatus


class EncounterGateway(Protocol):
    """Read/write access to encounters and observations."""

    async def create_encounter(
        self,
        patient_ref: str,
        status: EncounterStatus,
        period: Period,
        extension: List[Dict[str, Any]],
        priority: Optional[CodeableConcept] = None,
    ) -> str:
        ...

    async def read_encounter(self, encounter_id: str) -> Encounter:
        ...

    async def update_encounter(self, encounter: Encounter) -> Encounter:
        ...

    async def find_active_encounter(self, patient_ref: str) -> Optional[Encounter]:
        ...

    async def search_encounters_in_window(
        self, start_iso: str, end_iso: str, limit: int = 200
    ) -> List[Encounter]:
        ...

    async def create_observation(
        self,
        patient_ref: str,
        encounter_ref: str,
        code: ObservationCode,
        value: Union[str, int, float],
    ) -> None:
        ...

    async def aclose(self) -> None:
        ...


def build_observation(
    patient_ref: str,
    encounter_ref: str,
    code: ObservationCode,
    value: Union[str, int, float],
) -> Dict[str, Any]:
    """Observation resource for a chief complaint or a single vital sign."""
    observation: Dict[str, Any] = {
        "resourceType": "Observation",
        "status": "final",
        "subject": {"reference": patient_ref},
        "encounter": {"reference": encounter_ref},
        "code": {
            "coding": [{"system": code.system, "code": code.code, "display": code.display}],
            "text": code.display,
        },
    }
    if code.value_type == "string":
        observation["valueString"] = str(value)
    elif code.value_type == "integer":
        observation["valueInteger"] = int(value)
    else:
        quantity: Dict[str, Any] = {"value": value}
        if code.unit:
            quantity.update(
                {"unit": code.unit, "system": "http://unitsofmeasure.org", "code": code.unit}
            )
        observation["valueQuantity"] = quantity
    return observation
