"""
View ownership for eventjam.

Every open event view (a browser tab showing the player) gets its own
PlaylistEngine and its own BrowserPlayerSurface. Engines of the same event
share the process-wide PlaylistCache.
"""

import logging
import threading
import uuid
from typing import Callable, Dict, List, Optional

from .engine import PlaylistEngine
from .player_runtime import PlayerRuntime
from .player_surface import BrowserPlayerSurface


class ViewManager:
    """Mounts and unmounts playlist engines for open views."""

    def __init__(
        self,
        store,  # PlaylistStore
        cache,  # PlaylistCache
        config_manager,
        runtime: Optional[PlayerRuntime] = None,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
        start_monitors: bool = True,
    ):
        """
        Initialize ViewManager.

        Args:
            store: PlaylistStore shared by all engines
            cache: PlaylistCache shared by all engines
            config_manager: ConfigManager for engine settings
            runtime: Player runtime registry (defaults to the process-wide one)
            timer_factory: Passed through to each engine
            start_monitors: Whether engines run their polling threads
        """
        self.store = store
        self.cache = cache
        self.config_manager = config_manager
        self.runtime = runtime or PlayerRuntime.instance()
        self.logger = logging.getLogger(__name__)
        self._timer_factory = timer_factory
        self._start_monitors = start_monitors
        self._lock = threading.Lock()
        self._engines: Dict[str, PlaylistEngine] = {}

    def mount(self, event_id: str) -> str:
        """
        Open a view on an event.

        Returns:
            The new view id
        """
        view_id = str(uuid.uuid4())
        surface = BrowserPlayerSurface(view_id)
        engine = PlaylistEngine(
            event_id,
            self.store,
            self.cache,
            surface,
            self.config_manager,
            runtime=self.runtime,
            timer_factory=self._timer_factory,
        )
        with self._lock:
            self._engines[view_id] = engine

        engine.mount(start_monitors=self._start_monitors)
        self.logger.info("Mounted view %s for event %s", view_id, event_id)
        return view_id

    def get(self, view_id: str) -> Optional[PlaylistEngine]:
        with self._lock:
            return self._engines.get(view_id)

    def get_surface(self, view_id: str) -> Optional[BrowserPlayerSurface]:
        engine = self.get(view_id)
        return engine.surface if engine else None

    def view_ids(self, event_id: Optional[str] = None) -> List[str]:
        with self._lock:
            return [
                view_id
                for view_id, engine in self._engines.items()
                if event_id is None or engine.event_id == event_id
            ]

    def unmount(self, view_id: str) -> bool:
        """Close a view. Returns False if it was not open."""
        with self._lock:
            engine = self._engines.pop(view_id, None)
        if engine is None:
            return False
        engine.unmount()
        self.logger.info("Unmounted view %s", view_id)
        return True

    def shutdown(self) -> None:
        """Unmount every open view."""
        with self._lock:
            engines = list(self._engines.values())
            self._engines.clear()
        for engine in engines:
            try:
                engine.unmount()
            except Exception as e:
                self.logger.error("Error unmounting view for event %s: %s", engine.event_id, e, exc_info=True)
        if engines:
            self.logger.info("Closed %d open views", len(engines))
