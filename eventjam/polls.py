"""
Polls for eventjam.

A participant puts a question with two or more options to the event. Single
choice polls keep one vote per participant; multiple choice polls toggle a
vote per option. Closed polls no longer change.
"""

import logging
from typing import List, Optional

from .database import Database, EventRepository, PollRepository
from .exceptions import NotFoundError, PermissionDeniedError, ValidationError
from .models import Poll, PollOption

MIN_OPTIONS = 2


class PollManager:
    """Creates polls and records votes."""

    def __init__(self, database: Database):
        """
        Initialize PollManager.

        Args:
            database: Database instance for persistence
        """
        self.database = database
        self.repository = PollRepository(database)
        self.event_repository = EventRepository(database)
        self.logger = logging.getLogger(__name__)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require_member(self, event_id: str, participant_id: Optional[str]) -> None:
        participant = self.event_repository.get_participant(participant_id) if participant_id else None
        if participant is None:
            raise NotFoundError("Participant not found")
        if participant.event_id != event_id:
            raise PermissionDeniedError("You are not a participant of this event")

    def _require_poll(self, poll_id: str) -> Poll:
        poll = self.repository.get_poll(poll_id)
        if poll is None:
            raise NotFoundError("Poll not found")
        return poll

    def _require_open(self, poll: Poll) -> None:
        if poll.is_closed:
            raise ValidationError("This poll is closed")

    def _require_owner(self, poll: Poll, participant_id: Optional[str]) -> None:
        """The poll's creator and the event host manage a poll."""
        if participant_id and participant_id == poll.created_by_participant_id:
            return
        event = self.event_repository.get_event(poll.event_id)
        if participant_id and event is not None and event.host_participant_id == participant_id:
            return
        raise PermissionDeniedError("Only the poll creator or the host can change this poll")

    def _with_options(self, poll: Poll) -> Poll:
        poll.options = self.repository.get_options(poll.id)
        return poll

    # =========================================================================
    # Polls
    # =========================================================================

    def create_poll(
        self,
        event_id: str,
        participant_id: str,
        title: str,
        options: List[str],
        description: Optional[str] = None,
        allow_multiple_votes: bool = False,
    ) -> Poll:
        """
        Create a poll. Blank options are dropped; at least two must remain.

        Raises:
            NotFoundError: unknown event or participant
            PermissionDeniedError: the participant belongs to another event
            ValidationError: empty title or fewer than two options
        """
        title = (title or "").strip()
        if not title:
            raise ValidationError("Poll title is required")
        options = [option.strip() for option in options if option and option.strip()]
        if len(options) < MIN_OPTIONS:
            raise ValidationError("A poll needs at least %d options" % MIN_OPTIONS)
        if self.event_repository.get_event(event_id) is None:
            raise NotFoundError("Event not found")
        self._require_member(event_id, participant_id)

        description = description.strip() if description else None
        poll = self.repository.create(
            event_id, participant_id, title, description or None, options, allow_multiple_votes
        )
        self.logger.info(
            "Created poll %s (%s) in event %s with %d options", poll.title, poll.id, event_id, len(options)
        )
        return self._with_options(poll)

    def get_poll(self, poll_id: str) -> Poll:
        return self._with_options(self._require_poll(poll_id))

    def get_polls(self, event_id: str) -> List[Poll]:
        """All polls of an event, newest first, with their options and votes."""
        return [self._with_options(poll) for poll in self.repository.list_for_event(event_id)]

    def close_poll(self, poll_id: str, participant_id: Optional[str]) -> Poll:
        poll = self._require_poll(poll_id)
        self._require_owner(poll, participant_id)
        if not poll.is_closed:
            self.repository.set_closed(poll_id)
            self.logger.info("Closed poll %s", poll_id)
        return self.get_poll(poll_id)

    def delete_poll(self, poll_id: str, participant_id: Optional[str]) -> None:
        poll = self._require_poll(poll_id)
        self._require_owner(poll, participant_id)
        self.repository.delete(poll_id)
        self.logger.info("Deleted poll %s from event %s", poll_id, poll.event_id)

    # =========================================================================
    # Options
    # =========================================================================

    def add_option(self, poll_id: str, participant_id: Optional[str], title: str) -> PollOption:
        title = (title or "").strip()
        if not title:
            raise ValidationError("Option text is required")
        poll = self._require_poll(poll_id)
        self._require_open(poll)
        self._require_member(poll.event_id, participant_id)
        option = self.repository.add_option(poll_id, title)
        self.logger.debug("Added option %s to poll %s", option.id, poll_id)
        return option

    def remove_option(self, option_id: str, participant_id: Optional[str]) -> None:
        option = self.repository.get_option(option_id)
        if option is None:
            raise NotFoundError("Option not found")
        poll = self._require_poll(option.poll_id)
        self._require_owner(poll, participant_id)
        if len(self.repository.get_options(poll.id)) <= MIN_OPTIONS:
            raise ValidationError("A poll needs at least %d options" % MIN_OPTIONS)
        self.repository.remove_option(option_id)
        self.logger.debug("Removed option %s from poll %s", option_id, poll.id)

    # =========================================================================
    # Votes
    # =========================================================================

    def vote(self, poll_id: str, participant_id: Optional[str], option_id: str) -> Poll:
        """
        Vote for an option.

        Single choice: the vote moves to option_id. Multiple choice: a vote
        for option_id is added, or taken back if it was already there.

        Returns:
            The poll with updated options
        """
        poll = self._require_poll(poll_id)
        self._require_open(poll)
        self._require_member(poll.event_id, participant_id)
        option = self.repository.get_option(option_id)
        if option is None or option.poll_id != poll_id:
            raise NotFoundError("Option not found")

        if poll.allow_multiple_votes:
            if option_id in self.repository.get_votes(poll_id, participant_id):
                self.repository.remove_vote(poll_id, option_id, participant_id)
                self.logger.debug("%s took back vote for %s in poll %s", participant_id, option_id, poll_id)
            else:
                self.repository.add_vote(poll_id, option_id, participant_id)
                self.logger.debug("%s voted for %s in poll %s", participant_id, option_id, poll_id)
        else:
            self.repository.replace_vote(poll_id, option_id, participant_id)
            self.logger.debug("%s voted for %s in poll %s", participant_id, option_id, poll_id)
        return self.get_poll(poll_id)

    def remove_vote(self, poll_id: str, participant_id: Optional[str], option_id: str) -> Poll:
        """
        Take back a vote.

        Raises:
            NotFoundError: if the participant has not voted for option_id
        """
        poll = self._require_poll(poll_id)
        self._require_open(poll)
        if not participant_id or not self.repository.remove_vote(poll_id, option_id, participant_id):
            raise NotFoundError("You have not voted for this option")
        return self.get_poll(poll_id)
