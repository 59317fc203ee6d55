"""Triage and queue API endpoints.

Front-desk and clinical staff use these endpoints to check patients in,
record triage, move patients through the queue and render today's queue.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from typing import NoReturn
import logging

from clinic_queue.api.dependencies import get_triage_service
from clinic_queue.models.messages import (
    AddToQueueRequest,
    CheckInRequest,
    EncounterResponse,
    QueueResponse,
    QueueStatusRequest,
    RedFlagsResponse,
    SuccessResponse,
    TriageRequest,
    TriageSummaryResponse,
    TriageUpdateRequest,
)
from clinic_queue.models.triage import TriageRecord, TriageUpdate
from clinic_queue.services.errors import GatewayFailure, InvalidTransition, NotFound
from clinic_queue.services.triage_service import TriageService
from clinic_queue.utils.red_flags import RED_FLAG_OPTIONS, suggest_red_flags

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["Triage Queue"])


def _raise_http(e: Exception, action: str) -> NoReturn:
    """Translate a service error into an HTTPException."""
    if isinstance(e, NotFound):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    if isinstance(e, InvalidTransition):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)
    if isinstance(e, GatewayFailure):
        logger.error(f"Clinical data store failed to {action}: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Clinical data store unavailable: {e.message}",
        )
    logger.error(f"Failed to {action}: {str(e)}")
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}",
    )


@router.post("/check-in", response_model=EncounterResponse)
async def check_in(
    request: CheckInRequest, service: TriageService = Depends(get_triage_service)
):
    """Check a patient in; re-checking an active patient keeps their queue time."""
    try:
        encounter_id = await service.check_in(request.patient_id, request.chief_complaint)
    except Exception as e:
        _raise_http(e, "check patient in")
    return EncounterResponse(encounter_id=encounter_id)


@router.post("/triage", response_model=EncounterResponse)
async def triage_patient(
    request: TriageRequest, service: TriageService = Depends(get_triage_service)
):
    """Record a completed triage and place the patient in the waiting queue."""
    record = TriageRecord(
        triage_level=request.triage_level,
        chief_complaint=request.chief_complaint,
        vital_signs=request.vital_signs,
        triage_notes=request.triage_notes,
        red_flags=request.red_flags,
        triage_by=request.triage_by,
    )
    try:
        encounter_id = await service.save_triage(request.patient_id, record)
    except Exception as e:
        _raise_http(e, "save triage")
    return EncounterResponse(encounter_id=encounter_id)


@router.get("/triage/{patient_id}", response_model=TriageSummaryResponse)
async def get_triage(patient_id: str, service: TriageService = Depends(get_triage_service)):
    """Current triage and queue state of a patient (empty if none active)."""
    try:
        summary = await service.get_triage_for_patient(patient_id)
    except Exception as e:
        _raise_http(e, "load triage")
    return TriageSummaryResponse(patient_id=patient_id, **summary.model_dump())


@router.patch("/triage/{patient_id}", response_model=SuccessResponse)
async def update_triage(
    patient_id: str,
    request: TriageUpdateRequest,
    service: TriageService = Depends(get_triage_service),
):
    changes = TriageUpdate(**request.model_dump(exclude_unset=True))
    try:
        await service.update_triage(patient_id, changes)
    except Exception as e:
        _raise_http(e, "update triage")
    return SuccessResponse()


@router.get("/queue", response_model=QueueResponse)
async def get_queue(
    limit: int = Query(200, ge=1, le=1000),
    service: TriageService = Depends(get_triage_service),
):
    """Today's queue: triaged first, then by acuity, then arrival order."""
    try:
        patients = await service.get_queue_for_today(limit)
    except Exception as e:
        _raise_http(e, "load queue")
    return QueueResponse(patients=patients, total=len(patients))


@router.post("/queue", response_model=SuccessResponse)
async def add_to_queue(
    request: AddToQueueRequest, service: TriageService = Depends(get_triage_service)
):
    try:
        await service.add_to_queue(request.patient_id)
    except Exception as e:
        _raise_http(e, "add to queue")
    return SuccessResponse()


@router.patch("/queue/{patient_id}", response_model=SuccessResponse)
async def update_queue_status(
    patient_id: str,
    request: QueueStatusRequest,
    service: TriageService = Depends(get_triage_service),
):
    """Set the queue status; ``null`` removes the patient from the queue."""
    try:
        await service.update_queue_status(patient_id, request.status)
    except Exception as e:
        _raise_http(e, "update queue status")
    return SuccessResponse()


@router.delete("/queue/{patient_id}", response_model=SuccessResponse)
async def remove_from_queue(
    patient_id: str, service: TriageService = Depends(get_triage_service)
):
    try:
        await service.remove_from_queue(patient_id)
    except Exception as e:
        _raise_http(e, "remove from queue")
    return SuccessResponse()


@router.get("/red-flags", response_model=RedFlagsResponse)
async def list_red_flags():
    return RedFlagsResponse(red_flags=RED_FLAG_OPTIONS)


@router.get("/red-flags/suggestions", response_model=RedFlagsResponse)
async def red_flag_suggestions(complaint: str = Query(..., min_length=1, max_length=2000)):
    """Checklist red flags suggested by a chief complaint."""
    return RedFlagsResponse(red_flags=suggest_red_flags(complaint))
