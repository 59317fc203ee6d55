"""Domain errors raised by the triage queue.

``NotFound`` and ``InvalidTransition`` carry the patient id and the attempted
queue status so the API layer can render a specific message. ``GatewayFailure``
is raised by gateway implementations and passes through the service untouched.
``DecodeSkipped`` never leaves the metadata codec.
"""

from typing import Optional


class TriageQueueError(Exception):
    """Base class for triage queue errors."""

    def __init__(
        self,
        message: str,
        patient_id: Optional[str] = None,
        attempted_status: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.patient_id = patient_id
        self.attempted_status = attempted_status


class NotFound(TriageQueueError):
    """No encounter (or patient) exists for the requested operation."""


class NoActiveEncounter(NotFound):
    """The patient has no arrived/triaged/in-progress encounter."""


class EncounterNotFound(NotFound):
    """The store has no encounter with the given id."""


class InvalidTransition(TriageQueueError):
    """The requested queue status change is not allowed from the current state."""


class GatewayFailure(TriageQueueError):
    """The clinical data store call itself failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DecodeSkipped(TriageQueueError):
    """Extension subtree missing or malformed; treated as no triage data."""
