"""
Playlist store for eventjam.

Owns the persisted playlist items of every event and publishes a change feed
so open player views can refetch when another participant edits the list.
"""

import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Union

from .database import Database, EventRepository, PlaylistRepository
from .exceptions import NotFoundError, PermissionDeniedError
from .models import DeleteNotification, InsertNotification, PlaylistItem

ChangeNotification = Union[InsertNotification, DeleteNotification]
ChangeCallback = Callable[[ChangeNotification], None]


@dataclass(frozen=True)
class Subscription:
    """Handle returned by PlaylistStore.subscribe()."""

    id: int
    event_id: str


class PlaylistStore:
    """Ordered playlist items per event, with insert/delete notifications."""

    def __init__(self, database: Database):
        """
        Initialize PlaylistStore.

        Args:
            database: Database instance for persistence
        """
        self.database = database
        self.repository = PlaylistRepository(database)
        self.event_repository = EventRepository(database)
        self.logger = logging.getLogger(__name__)

        self._subscribers: Dict[str, Dict[int, ChangeCallback]] = {}
        self._subscribers_lock = threading.Lock()
        self._subscription_ids = itertools.count(1)

    # =========================================================================
    # Items
    # =========================================================================

    def insert(
        self,
        event_id: str,
        participant_id: str,
        external_media_id: str,
        title: str,
        thumbnail_url: Optional[str] = None,
        channel_label: Optional[str] = None,
    ) -> PlaylistItem:
        """
        Append a video to an event playlist.

        Returns:
            The stored item, with its id and added_at assigned
        """
        item = self.repository.add(
            event_id=event_id,
            participant_id=participant_id,
            external_media_id=external_media_id,
            title=title,
            thumbnail_url=thumbnail_url,
            channel_label=channel_label,
        )
        self.logger.info(
            "Added %s to playlist of event %s (item %s, video %s)",
            title,
            event_id,
            item.id,
            external_media_id,
        )
        self._publish(InsertNotification(event_id=event_id, item=item))
        return item

    def delete(self, item_id: str) -> bool:
        """Remove an item. Returns False if it did not exist."""
        item = self.repository.get_item(item_id)
        if item is None:
            return False
        if not self.repository.remove(item_id):
            return False
        self.logger.info("Removed item %s from playlist of event %s", item_id, item.event_id)
        self._publish(DeleteNotification(event_id=item.event_id, item_id=item_id))
        return True

    def remove_item(self, item_id: str, participant_id: Optional[str]) -> None:
        """
        Remove an item on behalf of a participant.

        Raises:
            NotFoundError: if the item does not exist
            PermissionDeniedError: if the participant may not remove it
        """
        item = self.repository.get_item(item_id)
        if item is None:
            raise NotFoundError("Playlist item not found")
        if not self.can_delete(item, participant_id):
            raise PermissionDeniedError("You can only remove videos you added")
        if not self.delete(item_id):
            raise NotFoundError("Playlist item not found")

    def list_ordered(self, event_id: str) -> List[PlaylistItem]:
        """All items of an event, oldest first."""
        return self.repository.list_ordered(event_id)

    def get_item(self, item_id: str) -> Optional[PlaylistItem]:
        return self.repository.get_item(item_id)

    def can_delete(self, item: PlaylistItem, participant_id: Optional[str]) -> bool:
        """Contributors may remove their own items; the event host may remove any."""
        if not participant_id:
            return False
        if item.added_by_participant_id == participant_id:
            return True
        event = self.event_repository.get_event(item.event_id)
        return event is not None and event.host_participant_id == participant_id

    # =========================================================================
    # Change feed
    # =========================================================================

    def subscribe(self, event_id: str, on_change: ChangeCallback) -> Subscription:
        """Register a callback for changes to one event's playlist."""
        subscription = Subscription(id=next(self._subscription_ids), event_id=event_id)
        with self._subscribers_lock:
            self._subscribers.setdefault(event_id, {})[subscription.id] = on_change
        self.logger.debug("Subscription %s opened for event %s", subscription.id, event_id)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._subscribers_lock:
            callbacks = self._subscribers.get(subscription.event_id)
            if callbacks is None or callbacks.pop(subscription.id, None) is None:
                return
            if not callbacks:
                del self._subscribers[subscription.event_id]
        self.logger.debug(
            "Subscription %s closed for event %s", subscription.id, subscription.event_id
        )

    def subscriber_count(self, event_id: str) -> int:
        with self._subscribers_lock:
            return len(self._subscribers.get(event_id, {}))

    def _publish(self, notification: ChangeNotification) -> None:
        """Deliver a notification to every subscriber of its event, in commit order."""
        with self._subscribers_lock:
            callbacks = list(self._subscribers.get(notification.event_id, {}).values())

        for callback in callbacks:
            try:
                callback(notification)
            except Exception as e:
                self.logger.error("Error in playlist change subscriber: %s", e, exc_info=True)
