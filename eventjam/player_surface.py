"""
Player control surface for eventjam.

Wraps the embedded third-party video player behind a small capability
interface. The playlist engine only ever talks to a PlayerSurface.
"""

import logging
import math
import threading
from abc import ABC, abstractmethod
from collections import deque
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional

from .exceptions import PlayerNotReadyError


class PlayerState(Enum):
    """Player states, using the YouTube IFrame API codes."""

    UNSTARTED = -1
    ENDED = 0
    PLAYING = 1
    PAUSED = 2
    BUFFERING = 3
    CUED = 5


ReadyCallback = Callable[[], None]
StateCallback = Callable[[PlayerState], None]
ErrorCallback = Callable[[Any], None]


class PlayerSurface(ABC):
    """
    Abstract control surface for an embedded player.

    Control calls made before the player reported ready raise
    PlayerNotReadyError. Loads autoplay only after allow_autoplay() was
    called, so the first item of a session never starts with sound.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._autoplay_allowed = False
        self._on_ready: Optional[ReadyCallback] = None
        self._on_state_change: Optional[StateCallback] = None
        self._on_error: Optional[ErrorCallback] = None

    def set_callbacks(
        self,
        on_ready: Optional[ReadyCallback] = None,
        on_state_change: Optional[StateCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        """Register the engine's handlers for player events."""
        self._on_ready = on_ready
        self._on_state_change = on_state_change
        self._on_error = on_error

    def clear_callbacks(self) -> None:
        self._on_ready = None
        self._on_state_change = None
        self._on_error = None

    @property
    def created(self) -> bool:
        """Whether create() has been called. Surfaces built eagerly are always created."""
        return True

    def request_runtime(self) -> None:
        """Inject the player runtime. Nothing to do unless the runtime is loaded lazily."""
        pass

    @property
    def autoplay_allowed(self) -> bool:
        return self._autoplay_allowed

    def allow_autoplay(self) -> None:
        """Mark the session as interacted; every later load autoplays."""
        self._autoplay_allowed = True

    def _require_ready(self) -> None:
        if not self.is_ready():
            raise PlayerNotReadyError("Player is not ready")

    # =========================================================================
    # Control operations
    # =========================================================================

    def load_item(self, external_media_id: str) -> None:
        self._require_ready()
        self._load(external_media_id, autoplay=self._autoplay_allowed)

    def play(self) -> None:
        self._require_ready()
        self._play()

    def pause(self) -> None:
        self._require_ready()
        self._pause()

    def seek(self, seconds: float) -> None:
        self._require_ready()
        self._seek(max(0.0, float(seconds)))

    def set_volume(self, volume: float) -> None:
        """Set volume on a 0..1 scale."""
        self._require_ready()
        self._set_volume(min(1.0, max(0.0, float(volume))))

    def mute(self) -> None:
        self._require_ready()
        self._mute()

    def unmute(self) -> None:
        self._require_ready()
        self._unmute()

    # =========================================================================
    # Implementation hooks
    # =========================================================================

    @abstractmethod
    def create(self, initial_media_id: str) -> None:
        """Construct the embedded player showing initial_media_id (never autoplays)."""
        ...

    @abstractmethod
    def is_ready(self) -> bool:
        ...

    @abstractmethod
    def has_video_data(self) -> bool:
        """False while the player has not loaded any video yet."""
        ...

    @abstractmethod
    def get_current_time(self) -> float:
        ...

    @abstractmethod
    def get_duration(self) -> float:
        ...

    @abstractmethod
    def destroy(self) -> None:
        ...

    @abstractmethod
    def _load(self, external_media_id: str, autoplay: bool) -> None:
        ...

    @abstractmethod
    def _play(self) -> None:
        ...

    @abstractmethod
    def _pause(self) -> None:
        ...

    @abstractmethod
    def _seek(self, seconds: float) -> None:
        ...

    @abstractmethod
    def _set_volume(self, volume: float) -> None:
        ...

    @abstractmethod
    def _mute(self) -> None:
        ...

    @abstractmethod
    def _unmute(self) -> None:
        ...

    # =========================================================================
    # Event dispatch
    # =========================================================================

    def _emit_ready(self) -> None:
        if self._on_ready:
            self._on_ready()

    def _emit_state_change(self, state: PlayerState) -> None:
        if self._on_state_change:
            self._on_state_change(state)

    def _emit_error(self, code: Any) -> None:
        if self._on_error:
            self._on_error(code)


def _as_number(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


class BrowserPlayerSurface(PlayerSurface):
    """
    Surface for a YouTube IFrame player running in a browser page.

    Commands are queued here and drained by the page; the page posts back
    reports (ready, state changes, time, errors) through handle_report().
    """

    def __init__(self, view_id: str):
        super().__init__()
        self.view_id = view_id
        self._lock = threading.Lock()
        self._commands: Deque[Dict[str, Any]] = deque()
        self._created = False
        self._ready = False
        self._destroyed = False
        self._has_video_data = False
        self._current_time = 0.0
        self._duration = 0.0
        self._state = PlayerState.UNSTARTED
        self._media_id: Optional[str] = None  # Video last sent to the page

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def created(self) -> bool:
        return self._created

    @property
    def state(self) -> PlayerState:
        return self._state

    def _enqueue(self, command: str, **kwargs) -> None:
        with self._lock:
            if self._destroyed:
                return
            self._commands.append({"command": command, **kwargs})

    def drain_commands(self) -> List[Dict[str, Any]]:
        """Hand all pending commands to the page, oldest first."""
        with self._lock:
            commands = list(self._commands)
            self._commands.clear()
        return commands

    def request_runtime(self) -> None:
        """Ask the page to inject the IFrame API script."""
        self._enqueue("load_runtime")

    def create(self, initial_media_id: str) -> None:
        with self._lock:
            if self._created or self._destroyed:
                return
            self._created = True
            self._media_id = initial_media_id
        self.logger.debug("Creating player for view %s with %s", self.view_id, initial_media_id)
        self._enqueue("create", media_id=initial_media_id)

    def is_ready(self) -> bool:
        return self._ready and not self._destroyed

    def has_video_data(self) -> bool:
        return self._has_video_data

    def get_current_time(self) -> float:
        return self._current_time

    def get_duration(self) -> float:
        return self._duration

    def destroy(self) -> None:
        with self._lock:
            if self._destroyed:
                return
            self._commands.clear()
            self._commands.append({"command": "destroy"})
            self._destroyed = True
            self._ready = False
        self.clear_callbacks()
        self.logger.debug("Destroyed player for view %s", self.view_id)

    def _load(self, external_media_id: str, autoplay: bool) -> None:
        with self._lock:
            self._current_time = 0.0
            self._duration = 0.0
            self._media_id = external_media_id
        self._enqueue("load", media_id=external_media_id, autoplay=autoplay)

    def _play(self) -> None:
        self._enqueue("play")

    def _pause(self) -> None:
        self._enqueue("pause")

    def _seek(self, seconds: float) -> None:
        self._enqueue("seek", seconds=seconds)

    def _set_volume(self, volume: float) -> None:
        # The IFrame API takes 0..100
        self._enqueue("volume", volume=int(round(volume * 100)))

    def _mute(self) -> None:
        self._enqueue("mute")

    def _unmute(self) -> None:
        self._enqueue("unmute")

    def handle_report(self, report: Dict[str, Any]) -> None:
        """
        Apply a report posted by the page.

        Recognized keys: event ("ready", "state", "error", "progress"),
        state (IFrame API state code), code (error code), current_time,
        duration, has_video_data, media_id. A report whose media_id is not
        the video last sent to the page was posted before the page ran that
        load, and is dropped.
        """
        if self._destroyed:
            return

        with self._lock:
            media_id = report.get("media_id")
            if media_id and self._media_id and media_id != self._media_id:
                self.logger.debug(
                    "Dropping %s report for %s, player %s is on %s",
                    report.get("event"),
                    media_id,
                    self.view_id,
                    self._media_id,
                )
                return

            current_time = _as_number(report.get("current_time"))
            if current_time is not None:
                self._current_time = current_time
            duration = _as_number(report.get("duration"))
            if duration is not None:
                self._duration = duration
            if "has_video_data" in report:
                self._has_video_data = bool(report["has_video_data"])

        event = report.get("event")
        if event == "ready":
            self._ready = True
            self._emit_ready()
        elif event == "state":
            try:
                state = PlayerState(int(report.get("state")))
            except (TypeError, ValueError):
                self.logger.warning("Unknown player state in report: %s", report.get("state"))
                return
            self._state = state
            self._emit_state_change(state)
        elif event == "error":
            self._emit_error(report.get("code"))
        elif event not in (None, "progress"):
            self.logger.warning("Unknown player report event: %s", event)
