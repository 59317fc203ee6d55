"""Encounter gateway construction."""

import logging

from clinic_queue.config.settings import Settings
from clinic_queue.tools.fhir_client import FHIRClient
from clinic_queue.tools.gateway import EncounterGateway
from clinic_queue.tools.mock_fhir import InMemoryEncounterGateway

logger = logging.getLogger(__name__)


def create_gateway(config: Settings) -> EncounterGateway:
    """Build the encounter gateway for the configured mode.

    The in-memory store is used when mock mode is on or no FHIR server is
    enabled. The caller owns the returned gateway and must ``aclose()`` it.
    """
    if config.fhir_use_mock or not config.fhir_enabled:
        logger.warning("Using in-memory encounter store; data is lost on restart")
        return InMemoryEncounterGateway()

    return FHIRClient(
        base_url=config.fhir_base_url,
        auth_token=config.fhir_auth_token,
        timeout=config.fhir_timeout_seconds,
    )
