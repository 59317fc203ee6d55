"""Triage and queue enums and models."""

from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import datetime
from enum import Enum


class QueueStatus(str, Enum):
    """Front-desk queue states. ``None`` means the patient is not queued."""

    ARRIVED = "arrived"  # Checked in, not yet triaged
    WAITING = "waiting"  # Triaged, waiting for a clinician
    IN_CONSULTATION = "in_consultation"
    COMPLETED = "completed"
    MEDS_AND_BILLS = "meds_and_bills"  # Seen, collecting medication / paying


class EncounterStatus(str, Enum):
    """External encounter lifecycle status (FHIR R4 Encounter.status)."""

    PLANNED = "planned"
    ARRIVED = "arrived"
    TRIAGED = "triaged"
    IN_PROGRESS = "in-progress"
    ONLEAVE = "onleave"
    FINISHED = "finished"
    CANCELLED = "cancelled"
    ENTERED_IN_ERROR = "entered-in-error"
    UNKNOWN = "unknown"


class VitalSigns(BaseModel):
    """Vitals captured at triage. Every field is independently optional."""

    blood_pressure_systolic: Optional[int] = None
    blood_pressure_diastolic: Optional[int] = None
    heart_rate: Optional[int] = None
    respiratory_rate: Optional[int] = None
    temperature: Optional[float] = None  # Celsius
    oxygen_saturation: Optional[int] = None  # Percent
    pain_score: Optional[int] = Field(default=None, ge=0, le=10)
    weight: Optional[float] = None  # kg
    height: Optional[float] = None  # cm


class TriageRecord(BaseModel):
    """A single triage assessment.

    ``triage_level`` is not range-checked here; request models validate it
    before anything is encoded. Empty notes, author and red-flag entries are
    normalized away, since the encounter extension never stores them.
    """

    triage_level: int
    chief_complaint: str = Field(min_length=1)
    triage_notes: Optional[str] = None
    triage_by: Optional[str] = None
    triage_at: Optional[datetime] = None
    is_triaged: bool = False
    vital_signs: VitalSigns = Field(default_factory=VitalSigns)
    red_flags: List[str] = Field(default_factory=list)

    @field_validator("triage_notes", "triage_by")
    @classmethod
    def empty_text_is_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None

    @field_validator("red_flags")
    @classmethod
    def drop_empty_flags(cls, value: List[str]) -> List[str]:
        return [flag for flag in value if flag]


class TriageSummary(BaseModel):
    """Decoded triage/queue state of one encounter."""

    triage: Optional[TriageRecord] = None
    queue_status: Optional[QueueStatus] = None
    queue_added_at: Optional[datetime] = None
    encounter_id: Optional[str] = None


class QueueEntry(BaseModel):
    """A patient as shown in today's queue."""

    patient_id: str
    encounter_id: Optional[str] = None
    triage: Optional[TriageRecord] = None
    queue_status: QueueStatus
    queue_added_at: Optional[datetime] = None


class TriageUpdate(BaseModel):
    """Partial triage change; only the fields that are set are applied."""

    triage_level: Optional[int] = None
    chief_complaint: Optional[str] = None
    triage_notes: Optional[str] = None
    triage_by: Optional[str] = None
    vital_signs: Optional[VitalSigns] = None
    red_flags: Optional[List[str]] = None
