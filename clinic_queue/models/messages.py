"""API request and response models."""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from clinic_queue.models.triage import QueueEntry, QueueStatus, TriageRecord, VitalSigns


class CheckInRequest(BaseModel):
    """Front-desk check-in."""

    patient_id: str = Field(..., min_length=1, description="Patient ID")
    chief_complaint: Optional[str] = Field(
        None, max_length=2000, description="Complaint given at the desk"
    )


class TriageRequest(BaseModel):
    """Completed triage assessment."""

    patient_id: str = Field(..., min_length=1, description="Patient ID")
    triage_level: int = Field(..., ge=1, le=5, description="1 = most urgent")
    chief_complaint: str = Field(..., min_length=1, max_length=2000)
    vital_signs: VitalSigns = Field(default_factory=VitalSigns)
    triage_notes: Optional[str] = None
    red_flags: List[str] = Field(default_factory=list)
    triage_by: Optional[str] = Field(None, description="Staff member performing triage")


class TriageUpdateRequest(BaseModel):
    """Partial triage update; omitted fields keep their current value."""

    triage_level: Optional[int] = Field(None, ge=1, le=5)
    chief_complaint: Optional[str] = Field(None, min_length=1, max_length=2000)
    vital_signs: Optional[VitalSigns] = None
    triage_notes: Optional[str] = None
    red_flags: Optional[List[str]] = None
    triage_by: Optional[str] = None


class AddToQueueRequest(BaseModel):
    patient_id: str = Field(..., min_length=1)


class QueueStatusRequest(BaseModel):
    """New queue status; null removes the patient from the queue."""

    status: Optional[QueueStatus]


class EncounterResponse(BaseModel):
    success: bool = True
    encounter_id: str


class SuccessResponse(BaseModel):
    success: bool = True


class TriageSummaryResponse(BaseModel):
    patient_id: str
    encounter_id: Optional[str] = None
    triage: Optional[TriageRecord] = None
    queue_status: Optional[QueueStatus] = None
    queue_added_at: Optional[datetime] = None


class QueueResponse(BaseModel):
    success: bool = True
    patients: List[QueueEntry]
    total: int


class RedFlagsResponse(BaseModel):
    red_flags: List[str]
