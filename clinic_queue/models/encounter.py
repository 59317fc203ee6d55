"""Encounter resource as exchanged with the clinical data store.

Only the fields the triage queue reads or writes are typed. Anything else the
store returns is kept (``extra="allow"``) so a read-modify-write does not drop
it. The ``extension`` list stays a raw tree here; the metadata codec is the
only code that interprets it.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, List, Literal, Optional
import re
from datetime import datetime
from clinic_queue.models.triage import EncounterStatus

PARTIAL_DATE = re.compile(r"\d{4}(-\d{2}(-\d{2})?)?")


class Reference(BaseModel):
    """Reference to another resource, e.g. ``Patient/123``."""

    model_config = ConfigDict(extra="allow")

    reference: str


class Period(BaseModel):
    """Encounter period.

    FHIR allows reduced precision dateTimes (``2025``, ``2025-01``,
    ``2025-01-02``); those are read as the first instant they cover, in UTC.
    """

    model_config = ConfigDict(extra="allow")

    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @field_validator("start", "end", mode="before")
    @classmethod
    def expand_partial_date(cls, value: Any) -> Any:
        if isinstance(value, str) and PARTIAL_DATE.fullmatch(value):
            year, month, day = (value.split("-") + ["01", "01"])[:3]
            return f"{year}-{month}-{day}T00:00:00+00:00"
        return value


class Coding(BaseModel):
    model_config = ConfigDict(extra="allow")

    system: Optional[str] = None
    code: Optional[str] = None
    display: Optional[str] = None


class CodeableConcept(BaseModel):
    model_config = ConfigDict(extra="allow")

    coding: List[Coding] = Field(default_factory=list)
    text: Optional[str] = None


class Encounter(BaseModel):
    """Encounter resource (subset)."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    resource_type: Literal["Encounter"] = Field("Encounter", alias="resourceType")
    id: Optional[str] = None
    status: EncounterStatus
    subject: Optional[Reference] = None
    period: Optional[Period] = None
    priority: Optional[CodeableConcept] = None
    extension: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def patient_id(self) -> Optional[str]:
        """Patient id taken from ``subject.reference``."""
        if not self.subject or not self.subject.reference:
            return None
        patient_id = self.subject.reference.replace("Patient/", "")
        return patient_id or None

    def to_resource(self) -> Dict[str, Any]:
        """Serialize to the JSON resource shape sent to the store."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ObservationCode(BaseModel):
    """Coded concept for an observation written alongside an encounter."""

    system: str = "http://loinc.org"
    code: str
    display: str
    unit: Optional[str] = None
    value_type: Literal["string", "integer", "quantity"] = "quantity"


def patient_reference(patient_id: str) -> str:
    return f"Patient/{patient_id}"


def encounter_reference(encounter_id: str) -> str:
    return f"Encounter/{encounter_id}"
