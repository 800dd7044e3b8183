"""
Expense splitting for eventjam.

Participants record what they paid for the event; the summary splits the
total equally between every participant, extras included.
"""

import logging
import math
from typing import List, Optional, Union

from .database import Database, EventRepository, ExpenseRepository
from .exceptions import NotFoundError, PermissionDeniedError, ValidationError
from .models import Expense, ExpenseSummary, Participant, ParticipantBalance


def parse_amount(value: Union[str, float, int]) -> float:
    """
    Parse an amount as typed by a user ("12.50" or "12,50").

    Raises:
        ValidationError: if the amount is not a positive finite number
    """
    if isinstance(value, bool):
        raise ValidationError("Amount must be a number")
    if isinstance(value, str):
        value = value.strip().replace(",", ".")
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValidationError("Amount must be a number")
    if not math.isfinite(amount) or amount <= 0:
        raise ValidationError("Amount must be greater than zero")
    return amount


class ExpenseManager:
    """Records expenses and computes who owes what."""

    def __init__(self, database: Database):
        """
        Initialize ExpenseManager.

        Args:
            database: Database instance for persistence
        """
        self.database = database
        self.repository = ExpenseRepository(database)
        self.event_repository = EventRepository(database)
        self.logger = logging.getLogger(__name__)

    def _require_participant(self, event_id: str, participant_id: Optional[str]) -> Participant:
        if self.event_repository.get_event(event_id) is None:
            raise NotFoundError("Event not found")
        participant = self.event_repository.get_participant(participant_id) if participant_id else None
        if participant is None:
            raise NotFoundError("Participant not found")
        if participant.event_id != event_id:
            raise PermissionDeniedError("You are not a participant of this event")
        return participant

    def add_expense(
        self, event_id: str, participant_id: str, title: str, amount: Union[str, float]
    ) -> Expense:
        """
        Record that participant_id paid amount for title.

        Raises:
            NotFoundError: unknown event or participant
            PermissionDeniedError: the participant belongs to another event
            ValidationError: empty title or invalid amount
        """
        title = (title or "").strip()
        if not title:
            raise ValidationError("Expense description is required")
        amount = parse_amount(amount)
        payer = self._require_participant(event_id, participant_id)

        expense = self.repository.add(event_id, payer.id, title, amount)
        self.logger.info(
            "%s paid %.2f for %s in event %s (expense %s)",
            payer.name,
            amount,
            title,
            event_id,
            expense.id,
        )
        return expense

    def remove_expense(self, expense_id: str, participant_id: Optional[str]) -> None:
        """
        Remove an expense. The payer and the event host may remove it.

        Raises:
            NotFoundError: if the expense does not exist
            PermissionDeniedError: if the participant may not remove it
        """
        expense = self.repository.get_expense(expense_id)
        if expense is None:
            raise NotFoundError("Expense not found")
        event = self.event_repository.get_event(expense.event_id)
        is_host = event is not None and event.host_participant_id == participant_id
        if not participant_id or (participant_id != expense.paid_by_participant_id and not is_host):
            raise PermissionDeniedError("You can only remove expenses you paid")
        if not self.repository.remove(expense_id):
            raise NotFoundError("Expense not found")
        self.logger.info("Removed expense %s from event %s", expense_id, expense.event_id)

    def get_expenses(self, event_id: str) -> List[Expense]:
        """All expenses of an event, newest first."""
        return self.repository.list_for_event(event_id)

    def get_summary(self, event_id: str) -> ExpenseSummary:
        """Split the total equally and report each participant's balance."""
        participants = self.event_repository.get_participants(event_id)
        if not participants:
            return ExpenseSummary(total=0.0, per_person=0.0)

        expenses = self.get_expenses(event_id)
        total = sum(expense.amount for expense in expenses)
        per_person = total / len(participants)

        paid_by = {}
        for expense in expenses:
            paid_by[expense.paid_by_participant_id] = (
                paid_by.get(expense.paid_by_participant_id, 0.0) + expense.amount
            )

        balances = []
        for participant in participants:
            paid = paid_by.get(participant.id, 0.0)
            balances.append(
                ParticipantBalance(
                    participant_id=participant.id,
                    name=participant.name,
                    is_extra=participant.is_extra,
                    paid=paid,
                    owes=per_person,
                    receives=paid - per_person,
                )
            )
        return ExpenseSummary(total=total, per_person=per_person, participants=balances)

    def add_extra_participant(self, event_id: str, name: str) -> Participant:
        """
        Add someone who shares the costs but has not joined the event.

        Raises:
            NotFoundError: unknown event
            ValidationError: empty name
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required")
        if self.event_repository.get_event(event_id) is None:
            raise NotFoundError("Event not found")
        participant = self.event_repository.add_participant(event_id, name, is_extra=True)
        self.logger.info("Added extra participant %s to event %s", name, event_id)
        return participant
