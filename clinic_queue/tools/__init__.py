"""Encounter gateway implementations."""

from clinic_queue.tools.fhir_client import FHIRClient
from clinic_queue.tools.gateway import EncounterGateway
from clinic_queue.tools.mock_fhir import InMemoryEncounterGateway

__all__ = [
    "EncounterGateway",
    "FHIRClient",
    "InMemoryEncounterGateway",
]
