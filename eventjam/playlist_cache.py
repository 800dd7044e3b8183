"""
Playlist cache for eventjam.

Keeps a short-lived snapshot of each event's canonical playlist so that
several open views of the same event share one fetch.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Tuple

from .exceptions import FetchError
from .models import PlaylistItem

if TYPE_CHECKING:
    from .config_manager import ConfigManager
    from .playlist_store import PlaylistStore


class PlaylistCache:
    """Bounded-freshness cache of canonical playlists, keyed by event id."""

    def __init__(
        self,
        store: "PlaylistStore",
        config_manager: "ConfigManager",
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize PlaylistCache.

        Args:
            store: PlaylistStore to fetch from
            config_manager: ConfigManager for the freshness window
            clock: Monotonic time source (seconds)
        """
        self.store = store
        self.config_manager = config_manager
        self.logger = logging.getLogger(__name__)
        self._clock = clock
        self._lock = threading.Lock()
        # event_id -> (fetched_at, items)
        self._entries: Dict[str, Tuple[float, List[PlaylistItem]]] = {}
        # Bumped on invalidate so a fetch that started earlier cannot store stale data
        self._generations: Dict[str, int] = {}

    @property
    def ttl_seconds(self) -> float:
        return self.config_manager.get_float("playlist_cache_ttl_seconds", 30.0)

    def _purge_expired(self, now: float) -> None:
        """Drop expired entries. Assumes lock is held."""
        ttl = self.ttl_seconds
        expired = [key for key, (fetched_at, _) in self._entries.items() if now - fetched_at >= ttl]
        for key in expired:
            del self._entries[key]
        if expired:
            self.logger.debug("Purged %d expired playlist snapshots", len(expired))

    def get_cached(self, event_id: str) -> Optional[List[PlaylistItem]]:
        """Return the fresh snapshot for an event, or None."""
        with self._lock:
            self._purge_expired(self._clock())
            entry = self._entries.get(event_id)
            return list(entry[1]) if entry else None

    def load(self, event_id: str) -> List[PlaylistItem]:
        """
        Get the canonical playlist for an event.

        Returns the cached snapshot while it is fresh, otherwise fetches.

        Raises:
            FetchError: if the store could not be read. Nothing is cached.
        """
        with self._lock:
            self._purge_expired(self._clock())
            entry = self._entries.get(event_id)
            if entry is not None:
                return list(entry[1])
            generation = self._generations.get(event_id, 0)

        try:
            items = self.store.list_ordered(event_id)
        except Exception as e:
            self.logger.error("Failed to fetch playlist for event %s: %s", event_id, e)
            raise FetchError(event_id, "Could not load the playlist: %s" % e) from e

        with self._lock:
            if self._generations.get(event_id, 0) == generation:
                self._entries[event_id] = (self._clock(), list(items))
            else:
                self.logger.debug("Playlist for event %s changed during fetch, not caching", event_id)

        self.logger.debug("Fetched %d playlist items for event %s", len(items), event_id)
        return list(items)

    def invalidate(self, event_id: str) -> None:
        """Forget the snapshot for an event (called on change notifications)."""
        with self._lock:
            self._entries.pop(event_id, None)
            self._generations[event_id] = self._generations.get(event_id, 0) + 1

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
