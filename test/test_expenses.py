"""
Unit tests for ExpenseManager and the expense split.
"""

import os
import sqlite3
import tempfile

import pytest

from eventjam.database import Database
from eventjam.events import EventManager
from eventjam.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from eventjam.expenses import ExpenseManager, parse_amount


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
    """An event with a host and one guest."""
    manager = EventManager(temp_db)
    event, host = manager.create_event("Trip", "Alice")
    guest = manager.join_event(event.access_code, "Bob")
    return event, host, guest


@pytest.fixture
def expenses(temp_db):
    return ExpenseManager(temp_db)


def test_add_and_list_newest_first(expenses, event):
    ev, host, guest = event
    fuel = expenses.add_expense(ev.id, host.id, "Fuel", 40)
    food = expenses.add_expense(ev.id, guest.id, "Food", "12,50")

    listed = expenses.get_expenses(ev.id)

    assert [expense.id for expense in listed] == [food.id, fuel.id]
    assert listed[0].amount == 12.5
    assert listed[0].paid_by_name == "Bob"


def test_add_expense_validation(expenses, event):
    ev, host, _ = event

    with pytest.raises(ValidationError):
        expenses.add_expense(ev.id, host.id, "  ", 10)
    with pytest.raises(ValidationError):
        expenses.add_expense(ev.id, host.id, "Fuel", "abc")
    with pytest.raises(ValidationError):
        expenses.add_expense(ev.id, host.id, "Fuel", 0)
    with pytest.raises(NotFoundError):
        expenses.add_expense("missing", host.id, "Fuel", 10)
    with pytest.raises(NotFoundError):
        expenses.add_expense(ev.id, "missing", "Fuel", 10)

    assert expenses.get_expenses(ev.id) == []


def test_add_expense_for_other_event_participant(expenses, temp_db, event):
    ev, _, _ = event
    _, outsider = EventManager(temp_db).create_event("Other", "Carol")

    with pytest.raises(PermissionDeniedError):
        expenses.add_expense(ev.id, outsider.id, "Fuel", 10)


def test_parse_amount():
    assert parse_amount("7.25") == 7.25
    assert parse_amount(" 3,5 ") == 3.5
    for bad in ("", "nan", "inf", -1, True, None):
        with pytest.raises(ValidationError):
            parse_amount(bad)


def test_remove_expense_permissions(expenses, event):
    ev, host, guest = event
    hosts = expenses.add_expense(ev.id, host.id, "Fuel", 40)
    guests = expenses.add_expense(ev.id, guest.id, "Food", 20)

    with pytest.raises(PermissionDeniedError):
        expenses.remove_expense(hosts.id, guest.id)
    with pytest.raises(PermissionDeniedError):
        expenses.remove_expense(hosts.id, None)
    with pytest.raises(NotFoundError):
        expenses.remove_expense("missing", host.id)

    expenses.remove_expense(guests.id, guest.id)
    expenses.remove_expense(hosts.id, host.id)

    assert expenses.get_expenses(ev.id) == []


def test_summary_splits_equally(expenses, event):
    ev, host, guest = event
    expenses.add_expense(ev.id, host.id, "Fuel", 40)
    expenses.add_expense(ev.id, host.id, "Tolls", 20)
    expenses.add_expense(ev.id, guest.id, "Food", 30)

    summary = expenses.get_summary(ev.id)

    assert summary.total == pytest.approx(90)
    assert summary.per_person == pytest.approx(45)
    by_name = {balance.name: balance for balance in summary.participants}
    assert by_name["Alice"].paid == pytest.approx(60)
    assert by_name["Alice"].receives == pytest.approx(15)
    assert by_name["Bob"].paid == pytest.approx(30)
    assert by_name["Bob"].owes == pytest.approx(45)
    assert by_name["Bob"].receives == pytest.approx(-15)
    assert sum(balance.receives for balance in summary.participants) == pytest.approx(0)


def test_extra_participant_shares_the_cost(expenses, event):
    ev, host, _ = event
    expenses.add_expense(ev.id, host.id, "Cabin", 90)

    extra = expenses.add_extra_participant(ev.id, " Dana ")
    summary = expenses.get_summary(ev.id)

    assert extra.is_extra is True
    assert extra.name == "Dana"
    assert summary.per_person == pytest.approx(30)
    dana = next(b for b in summary.participants if b.participant_id == extra.id)
    assert dana.is_extra is True
    assert dana.paid == 0
    assert dana.receives == pytest.approx(-30)


def test_extra_participant_validation(expenses, event):
    ev, _, _ = event
    with pytest.raises(ValidationError):
        expenses.add_extra_participant(ev.id, "  ")
    with pytest.raises(NotFoundError):
        expenses.add_extra_participant("missing", "Dana")


def test_summary_without_participants(expenses):
    summary = expenses.get_summary("missing")

    assert summary.total == 0
    assert summary.per_person == 0
    assert summary.participants == []


def test_participants_table_gains_is_extra_column():
    """Databases created before extra participants existed are migrated."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    conn = sqlite3.connect(path)
    conn.execute(
        """
        CREATE TABLE event_participants (
            id TEXT PRIMARY KEY,
            event_id TEXT NOT NULL,
            name TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
        """
    )
    conn.execute(
        "INSERT INTO event_participants VALUES ('p1', 'e1', 'Alice', '2024-01-01T00:00:00+00:00')"
    )
    conn.commit()
    conn.close()

    try:
        db = Database(db_path=path)
        participant = EventManager(db).get_participant("p1")
        assert participant.name == "Alice"
        assert participant.is_extra is False
    finally:
        os.unlink(path)
