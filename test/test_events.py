"""
Unit tests for EventManager.
"""

import os
import tempfile

import pytest

from eventjam.database import Database
from eventjam.events import ACCESS_CODE_ALPHABET, ACCESS_CODE_LENGTH, EventManager
from eventjam.exceptions import NotFoundError


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    db = Database(db_path=path)
    yield db
    db.close()
    os.unlink(path)


@pytest.fixture
def event_manager(temp_db):
    return EventManager(temp_db)


def test_create_event_registers_host(event_manager):
    event, host = event_manager.create_event("Birthday", "Alice")

    assert event.name == "Birthday"
    assert event.host_participant_id == host.id
    assert host.event_id == event.id
    assert host.name == "Alice"
    assert event.created_at is not None
    assert event_manager.is_host(event.id, host.id)


def test_access_code_format(event_manager):
    event, _ = event_manager.create_event("Party", "Alice")

    assert len(event.access_code) == ACCESS_CODE_LENGTH
    assert all(c in ACCESS_CODE_ALPHABET for c in event.access_code)
    for ambiguous in "0O1I":
        assert ambiguous not in ACCESS_CODE_ALPHABET


def test_access_codes_are_unique(event_manager):
    codes = {event_manager.create_event("Party %d" % i, "Host")[0].access_code for i in range(20)}
    assert len(codes) == 20


def test_join_event_by_access_code(event_manager):
    event, host = event_manager.create_event("Party", "Alice")

    bob = event_manager.join_event(" %s " % event.access_code.lower(), "Bob")

    assert bob.event_id == event.id
    assert not event_manager.is_host(event.id, bob.id)
    names = [p.name for p in event_manager.get_participants(event.id)]
    assert names == ["Alice", "Bob"]


def test_join_unknown_event(event_manager):
    with pytest.raises(NotFoundError):
        event_manager.join_event("ZZZZZZ", "Bob")


def test_get_missing_records(event_manager):
    assert event_manager.get_event("missing") is None
    assert event_manager.get_participant("missing") is None
    assert not event_manager.is_host("missing", None)
