"""
Pytest configuration and fixtures for outreach scheduling tests
"""
import fnmatch
from datetime import date, datetime, timezone
from unittest.mock import Mock

import pytest
import redis

from config.settings import AgentConfig, OutboundCallSettings
from followup.outbound_caller import MockOutboundCaller
from outreach.models import Channel, Patient, ProactiveSequence, SequenceStep
from utils.time_utils import FixedClock


def utc(*args) -> datetime:
    """Shorthand for an aware UTC datetime"""
    return datetime(*args, tzinfo=timezone.utc)


class FakeRedis:
    """
    Minimal in-memory stand-in for the hash commands OutreachStore uses.
    Behaves like a client created with decode_responses=True.
    """

    def __init__(self):
        self.hashes = {}

    def hgetall(self, key):
        return dict(self.hashes.get(key, {}))

    def hget(self, key, field):
        return self.hashes.get(key, {}).get(field)

    def hset(self, key, mapping=None):
        self.hashes.setdefault(key, {}).update(mapping or {})
        return len(mapping or {})

    def hdel(self, key, *fields):
        bucket = self.hashes.get(key, {})
        return sum(1 for field in fields if bucket.pop(field, None) is not None)

    def delete(self, *keys):
        return sum(1 for key in keys if self.hashes.pop(key, None) is not None)

    def keys(self, pattern="*"):
        return [key for key in self.hashes if fnmatch.fnmatch(key, pattern)]

    def pipeline(self, transaction=True):
        return FakePipeline(self)


class FakePipeline:
    def __init__(self, client):
        self.client = client
        self.commands = []

    def delete(self, *keys):
        self.commands.append(("delete", keys, {}))
        return self

    def hset(self, key, mapping=None):
        self.commands.append(("hset", (key,), {"mapping": mapping}))
        return self

    def execute(self):
        results = [getattr(self.client, name)(*args, **kwargs) for name, args, kwargs in self.commands]
        self.commands = []
        return results


@pytest.fixture
def mock_redis():
    """Mock Redis client for testing"""
    return Mock(spec=redis.Redis)


@pytest.fixture
def fake_redis():
    """In-memory Redis hashes for store round trips"""
    return FakeRedis()


@pytest.fixture
def clock():
    """Clock frozen at 08:00 UTC on the sample fitting day"""
    return FixedClock(utc(2024, 1, 1, 8, 0))


@pytest.fixture
def sample_patient():
    """Patient fitted on 2024-01-01 with proactive check-ins enabled"""
    return Patient(
        id="patient-1",
        name="Jane Doe",
        phone="+15550000001",
        tags=["new-fit"],
        fitting_date=date(2024, 1, 1),
        proactive_check_ins_enabled=True,
    )


@pytest.fixture
def sample_sequence():
    """Two-call sequence for newly fitted patients"""
    return ProactiveSequence(
        id="seq-1",
        name="New fitting follow-up",
        audience_tag="new-fit",
        steps=[
            SequenceStep(day=1, channel=Channel.CALL, goal="Check comfort after fitting"),
            SequenceStep(day=7, channel=Channel.CALL, goal="Review first week of use"),
        ],
    )


@pytest.fixture
def agent_config():
    """AgentConfig with an outbound agent configured"""
    return AgentConfig(
        outbound=OutboundCallSettings(
            clinic_name="Sound Clinic",
            agent_id="agent-inbound",
            outbound_agent_id="agent-outbound",
            phone_number_id="phone-1",
            api_key="test-key",
        )
    )


@pytest.fixture
def mock_caller():
    """In-memory outbound caller"""
    return MockOutboundCaller()
