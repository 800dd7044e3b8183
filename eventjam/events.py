"""
Event and participant management for eventjam.

An event is joined by sharing its access code; participants are identified
by an id scoped to the event.
"""

import logging
import secrets
import string
from typing import Optional, Tuple

from .database import Database, EventRepository
from .exceptions import NotFoundError
from .models import Event, Participant

ACCESS_CODE_LENGTH = 6
# No 0/O or 1/I so codes survive being read aloud
ACCESS_CODE_ALPHABET = "".join(c for c in string.ascii_uppercase + string.digits if c not in "0O1I")


class EventManager:
    """Creates events and registers participants."""

    def __init__(self, database: Database):
        """
        Initialize EventManager.

        Args:
            database: Database instance for persistence
        """
        self.database = database
        self.repository = EventRepository(database)
        self.logger = logging.getLogger(__name__)

    def _generate_access_code(self) -> str:
        while True:
            code = "".join(secrets.choice(ACCESS_CODE_ALPHABET) for _ in range(ACCESS_CODE_LENGTH))
            if self.repository.get_event_by_access_code(code) is None:
                return code

    def create_event(self, name: str, host_name: str) -> Tuple[Event, Participant]:
        """
        Create an event and register its host as the first participant.

        Returns:
            (event, host participant)
        """
        event = self.repository.create_event(name, self._generate_access_code())
        host = self.repository.add_participant(event.id, host_name)
        self.repository.set_host(event.id, host.id)
        event = self.repository.get_event(event.id)
        self.logger.info(
            "Created event %s (%s) hosted by %s, access code %s",
            event.name,
            event.id,
            host.name,
            event.access_code,
        )
        return event, host

    def get_event(self, event_id: str) -> Optional[Event]:
        return self.repository.get_event(event_id)

    def get_event_by_access_code(self, access_code: str) -> Optional[Event]:
        return self.repository.get_event_by_access_code(access_code.strip().upper())

    def join_event(self, access_code: str, name: str) -> Participant:
        """
        Join an event by access code.

        Raises:
            NotFoundError: if no event has this access code
        """
        event = self.get_event_by_access_code(access_code)
        if event is None:
            raise NotFoundError("No event with access code %s" % access_code)
        participant = self.repository.add_participant(event.id, name)
        self.logger.info("%s joined event %s", participant.name, event.id)
        return participant

    def get_participant(self, participant_id: str) -> Optional[Participant]:
        return self.repository.get_participant(participant_id)

    def get_participants(self, event_id: str):
        return self.repository.get_participants(event_id)

    def is_host(self, event_id: str, participant_id: Optional[str]) -> bool:
        if not participant_id:
            return False
        event = self.get_event(event_id)
        return event is not None and event.host_participant_id == participant_id
