"""Shared fixtures for the triage queue tests."""

from datetime import datetime, timedelta

import pytest

from clinic_queue.services.metadata_codec import MetadataCodec
from clinic_queue.services.triage_service import TriageService
from clinic_queue.tools.mock_fhir import InMemoryEncounterGateway


class StepClock:
    """Clock that moves forward one minute on every call."""

    def __init__(self, start: datetime, step: timedelta = timedelta(minutes=1)):
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        now = self.current
        self.current = self.current + self.step
        return now


@pytest.fixture
def clock():
    # Mid-morning local time keeps every tick inside today's queue window
    start = datetime.now().astimezone().replace(hour=10, minute=0, second=0, microsecond=0)
    return StepClock(start)


@pytest.fixture
def codec():
    return MetadataCodec(url="https://ucc.emr/triage-encounter")


@pytest.fixture
def gateway():
    return InMemoryEncounterGateway()


@pytest.fixture
def service(gateway, codec, clock):
    return TriageService(gateway, codec=codec, clock=clock)
