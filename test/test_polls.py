"""
Unit tests for PollManager.
"""

import os
import tempfile

import pytest

from eventjam.database import Database
from eventjam.events import EventManager
from eventjam.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from eventjam.polls import PollManager


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
def event(temp_db):
    """An event with a host and two guests."""
    manager = EventManager(temp_db)
    event, host = manager.create_event("Party", "Alice")
    bob = manager.join_event(event.access_code, "Bob")
    carol = manager.join_event(event.access_code, "Carol")
    return event, host, bob, carol


@pytest.fixture
def polls(temp_db):
    return PollManager(temp_db)


def option_id(poll, title):
    return next(option.id for option in poll.options if option.title == title)


def counts(poll):
    return {option.title: option.vote_count for option in poll.options}


def test_create_poll(polls, event):
    ev, host, _, _ = event

    poll = polls.create_poll(ev.id, host.id, " Dinner? ", ["Pizza", " ", "Sushi "], description="Friday")

    assert poll.title == "Dinner?"
    assert poll.description == "Friday"
    assert [option.title for option in poll.options] == ["Pizza", "Sushi"]
    assert poll.allow_multiple_votes is False
    assert poll.is_closed is False


def test_create_poll_validation(polls, temp_db, event):
    ev, host, _, _ = event
    _, outsider = EventManager(temp_db).create_event("Other", "Dave")

    with pytest.raises(ValidationError):
        polls.create_poll(ev.id, host.id, "", ["A", "B"])
    with pytest.raises(ValidationError):
        polls.create_poll(ev.id, host.id, "Dinner?", ["Pizza", "  "])
    with pytest.raises(NotFoundError):
        polls.create_poll("missing", host.id, "Dinner?", ["A", "B"])
    with pytest.raises(PermissionDeniedError):
        polls.create_poll(ev.id, outsider.id, "Dinner?", ["A", "B"])

    assert polls.get_polls(ev.id) == []


def test_polls_listed_newest_first(polls, event):
    ev, host, _, _ = event
    first = polls.create_poll(ev.id, host.id, "First", ["A", "B"])
    second = polls.create_poll(ev.id, host.id, "Second", ["A", "B"])

    assert [poll.id for poll in polls.get_polls(ev.id)] == [second.id, first.id]


def test_single_choice_vote_moves(polls, event):
    ev, host, bob, _ = event
    poll = polls.create_poll(ev.id, host.id, "Dinner?", ["Pizza", "Sushi"])

    polls.vote(poll.id, bob.id, option_id(poll, "Pizza"))
    poll = polls.vote(poll.id, bob.id, option_id(poll, "Sushi"))

    assert counts(poll) == {"Pizza": 0, "Sushi": 1}

    # Voting for the same option again changes nothing
    poll = polls.vote(poll.id, bob.id, option_id(poll, "Sushi"))
    assert counts(poll) == {"Pizza": 0, "Sushi": 1}


def test_multiple_choice_vote_toggles(polls, event):
    ev, host, bob, carol = event
    poll = polls.create_poll(ev.id, host.id, "Games?", ["Chess", "Go", "Uno"], allow_multiple_votes=True)

    polls.vote(poll.id, bob.id, option_id(poll, "Chess"))
    polls.vote(poll.id, bob.id, option_id(poll, "Go"))
    polls.vote(poll.id, carol.id, option_id(poll, "Go"))
    poll = polls.vote(poll.id, bob.id, option_id(poll, "Chess"))

    assert counts(poll) == {"Chess": 0, "Go": 2, "Uno": 0}
    go = next(option for option in poll.options if option.title == "Go")
    assert set(go.voter_ids) == {bob.id, carol.id}


def test_vote_checks(polls, temp_db, event):
    ev, host, bob, _ = event
    _, outsider = EventManager(temp_db).create_event("Other", "Dave")
    poll = polls.create_poll(ev.id, host.id, "Dinner?", ["Pizza", "Sushi"])
    other = polls.create_poll(ev.id, host.id, "Music?", ["Rock", "Jazz"])

    with pytest.raises(NotFoundError):
        polls.vote("missing", bob.id, option_id(poll, "Pizza"))
    with pytest.raises(NotFoundError):
        polls.vote(poll.id, bob.id, option_id(other, "Rock"))
    with pytest.raises(PermissionDeniedError):
        polls.vote(poll.id, outsider.id, option_id(poll, "Pizza"))


def test_remove_vote(polls, event):
    ev, host, bob, _ = event
    poll = polls.create_poll(ev.id, host.id, "Dinner?", ["Pizza", "Sushi"])
    pizza = option_id(poll, "Pizza")
    polls.vote(poll.id, bob.id, pizza)

    poll = polls.remove_vote(poll.id, bob.id, pizza)

    assert counts(poll) == {"Pizza": 0, "Sushi": 0}
    with pytest.raises(NotFoundError):
        polls.remove_vote(poll.id, bob.id, pizza)


def test_closed_poll_rejects_changes(polls, event):
    ev, host, bob, _ = event
    poll = polls.create_poll(ev.id, host.id, "Dinner?", ["Pizza", "Sushi"])
    polls.vote(poll.id, bob.id, option_id(poll, "Pizza"))

    with pytest.raises(PermissionDeniedError):
        polls.close_poll(poll.id, bob.id)
    closed = polls.close_poll(poll.id, host.id)

    assert closed.is_closed
    with pytest.raises(ValidationError):
        polls.vote(poll.id, bob.id, option_id(poll, "Sushi"))
    with pytest.raises(ValidationError):
        polls.remove_vote(poll.id, bob.id, option_id(poll, "Pizza"))
    with pytest.raises(ValidationError):
        polls.add_option(poll.id, bob.id, "Tacos")
    assert counts(polls.get_poll(poll.id)) == {"Pizza": 1, "Sushi": 0}


def test_delete_poll(polls, event):
    ev, host, bob, carol = event
    poll = polls.create_poll(ev.id, bob.id, "Dinner?", ["Pizza", "Sushi"])
    polls.vote(poll.id, carol.id, option_id(poll, "Pizza"))

    with pytest.raises(PermissionDeniedError):
        polls.delete_poll(poll.id, carol.id)

    # The host may delete any poll
    polls.delete_poll(poll.id, host.id)

    assert polls.get_polls(ev.id) == []
    with pytest.raises(NotFoundError):
        polls.get_poll(poll.id)


def test_add_and_remove_options(polls, event):
    ev, host, bob, _ = event
    poll = polls.create_poll(ev.id, host.id, "Dinner?", ["Pizza", "Sushi"])

    tacos = polls.add_option(poll.id, bob.id, " Tacos ")
    assert tacos.title == "Tacos"
    with pytest.raises(ValidationError):
        polls.add_option(poll.id, bob.id, " ")

    polls.vote(poll.id, bob.id, tacos.id)
    with pytest.raises(PermissionDeniedError):
        polls.remove_option(tacos.id, bob.id)
    polls.remove_option(tacos.id, host.id)

    poll = polls.get_poll(poll.id)
    assert [option.title for option in poll.options] == ["Pizza", "Sushi"]
    assert counts(poll) == {"Pizza": 0, "Sushi": 0}

    # Two options is the minimum
    with pytest.raises(ValidationError):
        polls.remove_option(option_id(poll, "Pizza"), host.id)
    with pytest.raises(NotFoundError):
        polls.remove_option("missing", host.id)
