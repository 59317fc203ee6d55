"""Tests for the FHIR REST encounter gateway using httpx.MockTransport."""

from datetime import datetime, timezone
import json

import httpx
import pytest

from clinic_queue.models.encounter import Encounter, ObservationCode, Period
from clinic_queue.models.triage import EncounterStatus
from clinic_queue.services.errors import EncounterNotFound, GatewayFailure
from clinic_queue.tools.fhir_client import FHIRClient

BASE_URL = "http://fhir.test/baseR4"
START = datetime(2025, 3, 4, 9, 0, tzinfo=timezone.utc)


def encounter_resource(encounter_id="e1", status="arrived", patient="p1"):
    return {
        "resourceType": "Encounter",
        "id": encounter_id,
        "status": status,
        "class": {"code": "AMB"},
        "subject": {"reference": f"Patient/{patient}"},
        "period": {"start": "2025-03-04T09:00:00Z"},
        "meta": {"versionId": "3"},
        "extension": [{"url": "http://example.org/other", "valueString": "keep"}],
    }


def bundle(*resources):
    return {
        "resourceType": "Bundle",
        "type": "searchset",
        "entry": [{"resource": r} for r in resources],
    }


def make_client(handler, **kwargs):
    return FHIRClient(
        base_url=BASE_URL, auth_token="secret", transport=httpx.MockTransport(handler), **kwargs
    )


async def test_create_encounter_posts_resource():
    seen = {}

    def handler(request: httpx.Request):
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={**seen["body"], "id": "new-1"})

    client = make_client(handler)
    extension = [{"url": "https://ucc.emr/triage-encounter", "extension": []}]
    encounter_id = await client.create_encounter(
        "Patient/p1", EncounterStatus.ARRIVED, Period(start=START), extension
    )
    await client.aclose()

    assert encounter_id == "new-1"
    assert seen["method"] == "POST"
    assert seen["url"] == f"{BASE_URL}/Encounter"
    assert seen["auth"] == "Bearer secret"
    body = seen["body"]
    assert body["resourceType"] == "Encounter"
    assert body["status"] == "arrived"
    assert body["class"]["code"] == "AMB"
    assert body["subject"] == {"reference": "Patient/p1"}
    assert body["extension"] == extension
    assert "priority" not in body


async def test_read_and_update_keep_unknown_fields():
    captured = {}

    def handler(request: httpx.Request):
        if request.method == "GET":
            return httpx.Response(200, json=encounter_resource())
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json=captured["body"])

    client = make_client(handler)
    encounter = await client.read_encounter("e1")
    encounter.status = EncounterStatus.TRIAGED
    updated = await client.update_encounter(encounter)
    await client.aclose()

    assert captured["url"] == f"{BASE_URL}/Encounter/e1"
    assert captured["body"]["status"] == "triaged"
    assert captured["body"]["meta"] == {"versionId": "3"}
    assert captured["body"]["class"] == {"code": "AMB"}
    assert captured["body"]["extension"][0]["valueString"] == "keep"
    assert updated.status == EncounterStatus.TRIAGED


async def test_find_active_encounter_query():
    seen = {}

    def handler(request: httpx.Request):
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json=bundle(encounter_resource(status="triaged")))

    client = make_client(handler)
    encounter = await client.find_active_encounter("Patient/p1")
    await client.aclose()

    assert seen["params"] == {
        "subject": "Patient/p1",
        "status": "arrived,triaged,in-progress",
        "_count": "1",
        "_sort": "-_lastUpdated",
    }
    assert isinstance(encounter, Encounter)
    assert encounter.status == EncounterStatus.TRIAGED
    assert encounter.patient_id == "p1"


async def test_find_active_encounter_empty_bundle():
    client = make_client(lambda request: httpx.Response(200, json={"resourceType": "Bundle"}))
    assert await client.find_active_encounter("Patient/p1") is None
    await client.aclose()


async def test_search_window_uses_both_date_bounds():
    seen = {}

    def handler(request: httpx.Request):
        seen["params"] = request.url.params
        return httpx.Response(
            200,
            json=bundle(
                encounter_resource("e1"),
                {"resourceType": "OperationOutcome"},
                encounter_resource("e2", status="not-a-status"),
                encounter_resource("e3", status="finished"),
            ),
        )

    client = make_client(handler)
    encounters = await client.search_encounters_in_window(
        "2025-03-04T00:00:00+08:00", "2025-03-05T00:00:00+08:00", limit=50
    )
    await client.aclose()

    assert seen["params"].get_list("date") == [
        "ge2025-03-04T00:00:00+08:00",
        "lt2025-03-05T00:00:00+08:00",
    ]
    assert seen["params"]["status"] == "arrived,triaged,in-progress,finished"
    assert seen["params"]["_count"] == "50"
    # The unparseable encounter is skipped
    assert [e.id for e in encounters] == ["e1", "e3"]


async def test_observation_bodies():
    bodies = []

    def handler(request: httpx.Request):
        bodies.append(json.loads(request.content))
        return httpx.Response(201, json={"id": "o1"})

    client = make_client(handler)
    await client.create_observation(
        "Patient/p1",
        "Encounter/e1",
        ObservationCode(code="72514-3", display="Pain", value_type="integer"),
        7,
    )
    await client.create_observation(
        "Patient/p1",
        "Encounter/e1",
        ObservationCode(code="8310-5", display="Body temperature", unit="Cel"),
        38.2,
    )
    await client.aclose()

    assert bodies[0]["valueInteger"] == 7
    assert bodies[0]["encounter"] == {"reference": "Encounter/e1"}
    assert bodies[1]["valueQuantity"] == {
        "value": 38.2,
        "unit": "Cel",
        "system": "http://unitsofmeasure.org",
        "code": "Cel",
    }


async def test_server_error_is_gateway_failure():
    client = make_client(lambda request: httpx.Response(500, json={"issue": []}))

    with pytest.raises(GatewayFailure) as excinfo:
        await client.find_active_encounter("Patient/p1")
    await client.aclose()

    assert excinfo.value.status_code == 500


async def test_missing_encounter_is_not_found():
    client = make_client(lambda request: httpx.Response(404))

    with pytest.raises(EncounterNotFound):
        await client.read_encounter("missing")
    await client.aclose()


async def test_timeout_is_gateway_failure():
    def handler(request: httpx.Request):
        raise httpx.ReadTimeout("timed out", request=request)

    client = make_client(handler)
    with pytest.raises(GatewayFailure):
        await client.search_encounters_in_window("a", "b")
    await client.aclose()


async def test_create_without_id_is_gateway_failure():
    client = make_client(lambda request: httpx.Response(201, json={}))

    with pytest.raises(GatewayFailure):
        await client.create_encounter("Patient/p1", EncounterStatus.ARRIVED, Period(), [])
    await client.aclose()


async def test_find_active_encounter_accepts_partial_dates():
    resource = encounter_resource()
    resource["period"] = {"start": "2025-01"}
    client = make_client(lambda request: httpx.Response(200, json=bundle(resource)))

    encounter = await client.find_active_encounter("Patient/p1")
    await client.aclose()

    assert encounter is not None
    assert encounter.period.start == datetime(2025, 1, 1, tzinfo=timezone.utc)


async def test_find_active_encounter_rejects_invalid_encounter():
    resource = encounter_resource(status="not-a-status")
    client = make_client(lambda request: httpx.Response(200, json=bundle(resource)))

    with pytest.raises(GatewayFailure):
        await client.find_active_encounter("Patient/p1")
    await client.aclose()


@pytest.mark.parametrize(
    "value,expected",
    [
        ("2025", datetime(2025, 1, 1, tzinfo=timezone.utc)),
        ("2025-03", datetime(2025, 3, 1, tzinfo=timezone.utc)),
        ("2025-03-04", datetime(2025, 3, 4, tzinfo=timezone.utc)),
        ("2025-03-04T09:00:00Z", START),
    ],
)
def test_period_reduced_precision(value, expected):
    assert Period.model_validate({"start": value}).start == expected
