"""FHIR REST gateway for encounters and observations.

Talks to a FHIR R4 server (HAPI FHIR, Medplum, or any server exposing the
standard REST API). One instance owns one ``httpx.AsyncClient`` connection
pool; create it once at startup and close it with ``aclose()`` on shutdown.
"""

from typing import Any, Dict, List, Optional, Union
import logging

import httpx
from pydantic import ValidationError

from clinic_queue.config.settings import settings
from clinic_queue.models.encounter import (
    CodeableConcept,
    Encounter,
    ObservationCode,
    Period,
    Reference,
)
from clinic_queue.models.triage import EncounterStatus
from clinic_queue.services.errors import EncounterNotFound, GatewayFailure
from clinic_queue.services.status_machine import (
    ACTIVE_ENCOUNTER_STATUSES,
    QUEUE_WINDOW_STATUSES,
)
from clinic_queue.tools.gateway import build_observation

logger = logging.getLogger(__name__)

AMBULATORY_CLASS = {
    "system": "http://terminology.hl7.org/CodeSystem/v3-ActCode",
    "code": "AMB",
    "display": "ambulatory",
}


def _status_list(statuses) -> str:
    return ",".join(status.value for status in statuses)


class FHIRClient:
    """Encounter gateway backed by a FHIR server."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        auth_token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize FHIR client.

        Args:
            base_url: FHIR server base URL (overrides settings)
            auth_token: Bearer token (overrides settings)
            timeout: Request timeout in seconds (overrides settings)
            transport: Custom httpx transport, mainly for tests
        """
        self.base_url = (base_url or settings.fhir_base_url).rstrip("/")
        token = auth_token if auth_token is not None else settings.fhir_auth_token

        headers = {
            "Accept": "application/fhir+json",
            "Content-Type": "application/fhir+json",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout if timeout is not None else settings.fhir_timeout_seconds,
            transport=transport,
        )
        logger.info(f"FHIR Client initialized - Server: {self.base_url}")

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Any] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Make HTTP request to FHIR server.

        Args:
            method: HTTP method
            path: Path relative to the base URL, e.g. ``Encounter/123``
            params: Query parameters (dict or list of pairs)
            json: Resource body

        Returns:
            Parsed JSON response ({} for an empty body)

        Raises:
            GatewayFailure: timeout, transport error or non-2xx response
        """
        try:
            response = await self._client.request(method, path, params=params, json=json)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.warning(f"FHIR request timeout for {method} {path}")
            raise GatewayFailure(f"FHIR request timeout for {path}") from e
        except httpx.HTTPStatusError as e:
            code = e.response.status_code
            logger.warning(f"FHIR request failed: {method} {path} -> {code}")
            raise GatewayFailure(
                f"FHIR request failed with status {code} for {path}", status_code=code
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"FHIR request error: {str(e)}")
            raise GatewayFailure(f"FHIR request error for {path}: {e}") from e

        if not response.content:
            return {}
        return response.json()

    def _validate_encounter(self, resource: Dict[str, Any]) -> Encounter:
        try:
            return Encounter.model_validate(resource)
        except ValidationError as e:
            raise GatewayFailure(
                f"FHIR server returned an invalid encounter {resource.get('id')}: {e}"
            ) from e

    def _parse_bundle(
        self, bundle: Dict[str, Any], skip_invalid: bool = True
    ) -> List[Encounter]:
        encounters = []
        for entry in bundle.get("entry", []) or []:
            resource = entry.get("resource", {})
            if resource.get("resourceType") != "Encounter":
                continue
            try:
                encounters.append(self._validate_encounter(resource))
            except GatewayFailure as e:
                if not skip_invalid:
                    raise
                logger.warning(f"Skipping unparseable encounter: {e}")
        return encounters

    async def create_encounter(
        self,
        patient_ref: str,
        status: EncounterStatus,
        period: Period,
        extension: List[Dict[str, Any]],
        priority: Optional[CodeableConcept] = None,
    ) -> str:
        resource = Encounter(
            status=status,
            subject=Reference(reference=patient_ref),
            period=period,
            priority=priority,
            extension=extension,
        ).to_resource()
        resource["class"] = AMBULATORY_CLASS

        created = await self._request("POST", "Encounter", json=resource)
        encounter_id = created.get("id")
        if not encounter_id:
            raise GatewayFailure("FHIR server did not return an encounter id")
        logger.info(f"Created encounter {encounter_id} for {patient_ref} ({status.value})")
        return encounter_id

    async def read_encounter(self, encounter_id: str) -> Encounter:
        try:
            resource = await self._request("GET", f"Encounter/{encounter_id}")
        except GatewayFailure as e:
            if e.status_code in (404, 410):
                raise EncounterNotFound(f"Encounter {encounter_id} not found") from e
            raise
        return self._validate_encounter(resource)

    async def update_encounter(self, encounter: Encounter) -> Encounter:
        if not encounter.id:
            raise ValueError("Cannot update an encounter without an id")
        resource = await self._request(
            "PUT", f"Encounter/{encounter.id}", json=encounter.to_resource()
        )
        logger.info(f"Updated encounter {encounter.id} ({encounter.status.value})")
        return self._validate_encounter(resource) if resource else encounter

    async def find_active_encounter(self, patient_ref: str) -> Optional[Encounter]:
        bundle = await self._request(
            "GET",
            "Encounter",
            params={
                "subject": patient_ref,
                "status": _status_list(ACTIVE_ENCOUNTER_STATUSES),
                "_count": "1",
                "_sort": "-_lastUpdated",
            },
        )
        # An unreadable active encounter must not look like "no encounter"
        encounters = self._parse_bundle(bundle, skip_invalid=False)
        return encounters[0] if encounters else None

    async def search_encounters_in_window(
        self, start_iso: str, end_iso: str, limit: int = 200
    ) -> List[Encounter]:
        bundle = await self._request(
            "GET",
            "Encounter",
            params=[
                ("status", _status_list(QUEUE_WINDOW_STATUSES)),
                ("date", f"ge{start_iso}"),
                ("date", f"lt{end_iso}"),
                ("_count", str(limit)),
                ("_sort", "date"),
            ],
        )
        encounters = self._parse_bundle(bundle)
        logger.info(f"Found {len(encounters)} encounters between {start_iso} and {end_iso}")
        return encounters

    async def create_observation(
        self,
        patient_ref: str,
        encounter_ref: str,
        code: ObservationCode,
        value: Union[str, int, float],
    ) -> None:
        await self._request(
            "POST",
            "Observation",
            json=build_observation(patient_ref, encounter_ref, code, value),
        )
