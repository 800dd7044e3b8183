"""
Playlist engine for eventjam.

One engine backs one open event view. It keeps a local copy of the event's
playlist in sync with the store, owns the current position in the display
order (canonical or shuffled), applies the advance/repeat policy and drives
the embedded player through its control surface.
"""

import logging
import math
import random
import threading
from enum import Enum
from typing import Callable, List, Optional, Set

from .advance import AdvanceAction, decide_advance, is_end_of_item, next_index, previous_index
from .exceptions import (
    ExternalPlayerError,
    FetchError,
    LoadTransientError,
    PlaybackControlError,
    PlayerNotReadyError,
)
from .models import DeleteNotification, InsertNotification, PlayerSnapshot, PlaylistItem
from .player_runtime import PlayerRuntime
from .player_surface import PlayerState, PlayerSurface


def _is_finite(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


class EngineState(Enum):
    """Engine state enumeration."""

    EMPTY = "empty"  # No items
    IDLE = "idle"  # Items present, player not ready yet
    READY = "ready"  # Player ready, nothing started
    PLAYING = "playing"
    PAUSED = "paused"


class PlaylistEngine:
    """Reconciles a remotely edited playlist with local playback."""

    def __init__(
        self,
        event_id: str,
        store,  # PlaylistStore
        cache,  # PlaylistCache
        surface: PlayerSurface,
        config_manager,
        runtime: Optional[PlayerRuntime] = None,
        rng: Optional[random.Random] = None,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ):
        """
        Initialize PlaylistEngine.

        Args:
            event_id: Event whose playlist this engine plays
            store: PlaylistStore for the change feed
            cache: PlaylistCache shared between views
            surface: PlayerSurface owned exclusively by this engine
            config_manager: ConfigManager for timing and policy settings
            runtime: Player runtime registry (defaults to the process-wide one)
            rng: Random source for shuffling
            timer_factory: Builds delayed calls (threading.Timer signature)
        """
        self.event_id = event_id
        self.store = store
        self.cache = cache
        self.surface = surface
        self.config_manager = config_manager
        self.runtime = runtime or PlayerRuntime.instance()

        self.logger = logging.getLogger(__name__)
        self.lock = threading.RLock()
        self._rng = rng or random.Random()
        self._timer_factory = timer_factory

        # Playlist
        self._canonical: List[PlaylistItem] = []
        self._display: List[PlaylistItem] = []
        self.shuffle_enabled = False
        self.repeat_enabled = False

        # Position
        self.state = EngineState.EMPTY
        self.index: Optional[int] = None
        self.has_user_interacted = False
        self._pending_index: Optional[int] = None
        self._loaded_item_id: Optional[str] = None
        self._ended_item_id: Optional[str] = None  # End of item already handled for this one

        # Mirrors of the player
        self.is_playing = False
        self.is_buffering = False
        self.progress_seconds = 0.0
        self.duration_seconds = 0.0
        self.volume = config_manager.get_float("default_volume", 0.7)
        self.is_muted = False
        self.last_error: Optional[str] = None
        self._fetch_failed = False
        self._error_item_id: Optional[str] = None  # Item whose player error is being skipped
        self._playing_item_id: Optional[str] = None  # Last item the player reported PLAYING for

        # Lifecycle
        self._runtime_loaded = False
        self._mounted = False
        self._unmounted = False
        self._subscription = None
        self._stop_event = threading.Event()
        self._monitor_threads: List[threading.Thread] = []
        self._timers: Set[threading.Timer] = set()

    # =========================================================================
    # Derived state
    # =========================================================================

    @property
    def items(self) -> List[PlaylistItem]:
        """Display order."""
        return list(self._display)

    @property
    def canonical_items(self) -> List[PlaylistItem]:
        return list(self._canonical)

    @property
    def current_item(self) -> Optional[PlaylistItem]:
        if self.index is None or not (0 <= self.index < len(self._display)):
            return None
        return self._display[self.index]

    def snapshot(self) -> PlayerSnapshot:
        """Everything a full or minimized view renders."""
        with self.lock:
            return PlayerSnapshot(
                event_id=self.event_id,
                state=self.state.value,
                index=self.index,
                current_item=self.current_item,
                items=list(self._display),
                has_user_interacted=self.has_user_interacted,
                is_playing=self.is_playing,
                is_buffering=self.is_buffering,
                progress_seconds=self.progress_seconds,
                duration_seconds=self.duration_seconds,
                volume=self.volume,
                is_muted=self.is_muted,
                shuffle_enabled=self.shuffle_enabled,
                repeat_enabled=self.repeat_enabled,
                last_error=self.last_error,
            )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def mount(self, start_monitors: bool = True) -> None:
        """Subscribe to changes, fetch the playlist and bring up the player."""
        with self.lock:
            if self._mounted or self._unmounted:
                return
            self._mounted = True

            self.surface.set_callbacks(
                on_ready=self.on_player_ready,
                on_state_change=self.on_player_state_change,
                on_error=self.on_player_error,
            )
            self._subscription = self.store.subscribe(self.event_id, self.on_remote_change)
            self.refresh()

        self.runtime.ensure_loading(self.surface.request_runtime)
        self.runtime.when_loaded(self._on_runtime_loaded)

        if start_monitors:
            self._start_monitors()
        self.logger.info("Playlist engine mounted for event %s", self.event_id)

    def unmount(self) -> None:
        """
        Tear everything down: both monitors, the change feed subscription,
        the player surface and any pending timers.
        """
        with self.lock:
            if self._unmounted:
                return
            self._unmounted = True
            self._stop_event.set()

            for timer in list(self._timers):
                timer.cancel()
            self._timers.clear()

            if self._subscription is not None:
                self.store.unsubscribe(self._subscription)
                self._subscription = None

            try:
                self.surface.destroy()
            except Exception as e:
                self.logger.warning("Error destroying player surface: %s", e, exc_info=True)

            self.is_playing = False
            threads = list(self._monitor_threads)
            self._monitor_threads.clear()

        # Join outside the lock so a tick waiting on it can finish
        for thread in threads:
            if thread is not threading.current_thread():
                thread.join(timeout=2.0)
                if thread.is_alive():
                    self.logger.warning("Monitor thread %s did not stop within timeout", thread.name)

        self.logger.info("Playlist engine unmounted for event %s", self.event_id)

    @property
    def mounted(self) -> bool:
        return self._mounted and not self._unmounted

    @property
    def monitor_threads(self) -> List[threading.Thread]:
        return list(self._monitor_threads)

    def _start_monitors(self) -> None:
        """Start the end-of-item and progress polling threads."""
        interval = self.config_manager.get_float("poll_interval_seconds", 1.0)

        def run(tick):
            while not self._stop_event.is_set():
                try:
                    tick()
                except Exception as e:
                    self.logger.error("Error in player monitor: %s", e, exc_info=True)
                self._stop_event.wait(interval)

        for name, tick in (("EndOfItemMonitor", self.check_end_of_item), ("ProgressMonitor", self.update_progress)):
            thread = threading.Thread(
                target=run, args=(tick,), daemon=True, name="%s-%s" % (name, self.event_id)
            )
            self._monitor_threads.append(thread)
            thread.start()

    def _schedule(self, delay: float, callback: Callable[[], None]) -> None:
        """Run callback after delay seconds, unless the engine is unmounted first."""

        def fire():
            with self.lock:
                self._timers.discard(timer)
                if self._unmounted:
                    return
                callback()

        timer = self._timer_factory(delay, fire)
        timer.daemon = True
        self._timers.add(timer)
        timer.start()

    # =========================================================================
    # Playlist sync
    # =========================================================================

    def refresh(self) -> bool:
        """
        Fetch the canonical playlist and reconcile with it.

        Returns:
            False if the fetch failed; the previous snapshot is kept and
            last_error carries a message for the user.
        """
        with self.lock:
            if self._unmounted:
                return False
            try:
                items = self.cache.load(self.event_id)
            except FetchError as e:
                self.last_error = e.message
                self._fetch_failed = True
                self.logger.warning("Playlist fetch failed for event %s: %s", self.event_id, e)
                return False

            if self._fetch_failed:
                self._fetch_failed = False
                self.last_error = None
            self._apply_canonical(items)
            return True

    def on_remote_change(self, notification) -> None:
        """Handle a change feed notification for this event."""
        with self.lock:
            if self._unmounted:
                return
            if isinstance(notification, InsertNotification):
                self.logger.debug("Item %s inserted remotely", notification.item.id)
            elif isinstance(notification, DeleteNotification):
                self.logger.debug("Item %s deleted remotely", notification.item_id)
                self.on_item_removed(notification.item_id)
            else:
                self.logger.warning("Rejected unknown playlist notification: %r", notification)
                return

            self.cache.invalidate(self.event_id)
            self.refresh()

    def on_item_removed(self, removed_id: str) -> None:
        """Drop an item locally and keep the position as stable as possible."""
        with self.lock:
            if not any(item.id == removed_id for item in self._canonical):
                return
            self._apply_canonical([item for item in self._canonical if item.id != removed_id])

    def _apply_canonical(self, items: List[PlaylistItem]) -> None:
        """Install a new canonical order and remap the position onto it. Assumes lock is held."""
        previous_item = self.current_item
        previous_index = self.index
        was_empty = not self._canonical

        self._canonical = list(items)

        if not self._canonical:
            self._enter_empty()
            return

        if was_empty or not self.shuffle_enabled:
            self._display = list(self._canonical)
        else:
            # Keep the shuffled order; drop removed items, append new ones
            by_id = {item.id: item for item in self._canonical}
            kept = [by_id[item.id] for item in self._display if item.id in by_id]
            kept_ids = {item.id for item in kept}
            self._display = kept + [item for item in self._canonical if item.id not in kept_ids]

        if previous_item is not None:
            position = self._position_of(previous_item.id, self._display)
            if position is not None:
                self.index = position
                return
            # Current item was removed: whatever slid into its place plays next
            self.index = min(previous_index, len(self._display) - 1)
            self.logger.info(
                "Current item %s removed, moving to index %s", previous_item.id, self.index
            )
            self._load_index(self.index)
            return

        self.index = 0
        if self.state == EngineState.EMPTY:
            self.state = EngineState.READY if self.surface.is_ready() else EngineState.IDLE
        if self._runtime_loaded and not self._player_created():
            self._create_player()
        elif self._player_created():
            self._load_index(self.index)

    def _enter_empty(self) -> None:
        """Assumes lock is held."""
        was_playing = self.is_playing
        self._display = []
        self.index = None
        self._pending_index = None
        self.shuffle_enabled = False  # A refilled list starts in canonical order
        self.is_playing = False
        self.is_buffering = False
        self.progress_seconds = 0.0
        self.duration_seconds = 0.0
        self.state = EngineState.EMPTY
        if was_playing:
            self._control("pause", self.surface.pause)
        self.logger.info("Playlist for event %s is empty", self.event_id)

    @staticmethod
    def _position_of(item_id: str, order: List[PlaylistItem]) -> Optional[int]:
        for position, item in enumerate(order):
            if item.id == item_id:
                return position
        return None

    # =========================================================================
    # Position
    # =========================================================================

    def _mark_interaction(self) -> None:
        if not self.has_user_interacted:
            self.has_user_interacted = True
            self.surface.allow_autoplay()

    def select_index(self, index: int) -> bool:
        """
        Play the item at index in the display order.

        Returns:
            False when the playlist is empty
        """
        with self.lock:
            if self._unmounted or not self._display:
                self.logger.debug("select_index(%s) ignored, playlist empty", index)
                return False
            if not 0 <= index < len(self._display):
                clamped = min(max(index, 0), len(self._display) - 1)
                self.logger.warning("select_index(%s) out of range, clamping to %s", index, clamped)
                index = clamped

            self._mark_interaction()
            if index == self.index and self._loaded_item_id == self._display[index].id:
                if self._player_created() and not self.surface.is_ready():
                    # Played by on_player_ready
                    self._pending_index = index
                    return True
                return self.play()
            self.index = index
            self._load_index(index)
            return True

    def advance_to_next(self) -> bool:
        with self.lock:
            if self._unmounted or not self._display:
                return False
            self._mark_interaction()
            self.index = next_index(self.index or 0, len(self._display))
            self._load_index(self.index)
            return True

    def advance_to_previous(self) -> bool:
        with self.lock:
            if self._unmounted or not self._display:
                return False
            self._mark_interaction()
            self.index = previous_index(self.index or 0, len(self._display))
            self._load_index(self.index)
            return True

    def reconcile_after_toggle_shuffle(self, new_order: List[PlaylistItem]) -> int:
        """Index of the current item in new_order, or 0 if it is not there."""
        current = self.current_item
        if current is None:
            return 0
        position = self._position_of(current.id, new_order)
        return position if position is not None else 0

    # =========================================================================
    # Shuffle and repeat
    # =========================================================================

    def toggle_shuffle(self) -> bool:
        """
        Switch between canonical and a freshly shuffled order.

        Returns:
            The new shuffle setting
        """
        with self.lock:
            self._mark_interaction()
            previous_item = self.current_item

            if not self.shuffle_enabled:
                new_order = list(self._canonical)
                self._rng.shuffle(new_order)
                if self.config_manager.get_bool("shuffle_restart_from_top", False):
                    new_index = 0
                else:
                    new_index = self.reconcile_after_toggle_shuffle(new_order)
            else:
                new_order = list(self._canonical)
                new_index = self.reconcile_after_toggle_shuffle(new_order)

            self.shuffle_enabled = not self.shuffle_enabled
            self._display = new_order
            self.logger.info(
                "Shuffle %s for event %s", "enabled" if self.shuffle_enabled else "disabled", self.event_id
            )

            if not new_order:
                return self.shuffle_enabled

            self.index = new_index
            if previous_item is None or new_order[new_index].id != previous_item.id:
                self._load_index(new_index)
            return self.shuffle_enabled

    def set_repeat(self, enabled: bool) -> None:
        with self.lock:
            self.repeat_enabled = bool(enabled)

    def toggle_repeat(self) -> bool:
        with self.lock:
            self.repeat_enabled = not self.repeat_enabled
            return self.repeat_enabled

    # =========================================================================
    # Player loading
    # =========================================================================

    def _player_created(self) -> bool:
        return bool(self.surface.created)

    def _on_runtime_loaded(self) -> None:
        with self.lock:
            if self._unmounted:
                return
            self._runtime_loaded = True
            if not self._player_created():
                self._create_player()

    def _create_player(self) -> None:
        """Construct the embedded player on the current item. Assumes lock is held."""
        item = self.current_item
        if item is None:
            return
        self.surface.create(item.external_media_id)
        self._loaded_item_id = item.id
        self._pending_index = None

    def _load_index(self, index: int, attempt: int = 0) -> None:
        """Load the item at index into the player. Assumes lock is held."""
        if not 0 <= index < len(self._display):
            return
        item = self._display[index]

        if not self._player_created():
            if self._runtime_loaded:
                self._create_player()
            else:
                self._pending_index = index
            return

        try:
            if not self.surface.is_ready():
                raise PlayerNotReadyError("Player is not ready")
            if not self.surface.has_video_data():
                raise LoadTransientError("Player has no video data yet")
            self.surface.load_item(item.external_media_id)
        except PlayerNotReadyError:
            # Only the most recent request survives
            self._pending_index = index
            self.logger.debug("Player not ready, index %s pending", index)
            return
        except Exception as e:
            self._retry_load(item, attempt, e)
            return

        self._pending_index = None
        self._loaded_item_id = item.id
        self._ended_item_id = None
        self._playing_item_id = None
        self.progress_seconds = 0.0
        self.duration_seconds = 0.0
        if self.last_error and self._error_item_id != item.id:
            self.last_error = None
        self.logger.info("Loaded %s (%s) at index %s", item.title, item.external_media_id, index)

    def _retry_load(self, item: PlaylistItem, attempt: int, error: Exception) -> None:
        attempts = self.config_manager.get_int("load_retry_attempts", 5)
        if attempt + 1 >= attempts:
            self.logger.warning(
                "Giving up loading %s after %d attempts: %s", item.external_media_id, attempt + 1, error
            )
            return

        delay = self.config_manager.get_int("load_retry_delay_ms", 300) / 1000.0
        self.logger.debug(
            "Load of %s failed (%s), retrying in %.2fs", item.external_media_id, error, delay
        )

        def retry():
            # A newer selection supersedes this retry
            current = self.current_item
            if current is None or current.id != item.id:
                return
            self._load_index(self.index, attempt + 1)

        self._schedule(delay, retry)

    # =========================================================================
    # Player control
    # =========================================================================

    def _control(self, name: str, call: Callable[[], None]) -> bool:
        """Invoke a surface control; failures are logged and leave state unchanged."""
        try:
            call()
            return True
        except PlayerNotReadyError:
            self.logger.debug("Ignoring %s, player not ready", name)
            return False
        except Exception as e:
            error = PlaybackControlError("%s failed: %s" % (name, e))
            self.logger.warning("%s", error, exc_info=True)
            return False

    def play(self) -> bool:
        with self.lock:
            if self.current_item is None:
                return False
            self._mark_interaction()
            if not self._control("play", self.surface.play):
                return False
            self._ended_item_id = None
            self.is_playing = True
            self.state = EngineState.PLAYING
            return True

    def pause(self) -> bool:
        with self.lock:
            if not self._control("pause", self.surface.pause):
                return False
            self.is_playing = False
            if self.state != EngineState.EMPTY:
                self.state = EngineState.PAUSED
            return True

    def toggle_play(self) -> bool:
        with self.lock:
            return self.pause() if self.is_playing else self.play()

    def seek(self, seconds: float) -> bool:
        with self.lock:
            seconds = max(0.0, float(seconds))
            if self.duration_seconds > 0:
                seconds = min(seconds, self.duration_seconds)
            if not self._control("seek", lambda: self.surface.seek(seconds)):
                return False
            self.progress_seconds = seconds
            return True

    def set_volume(self, volume: float) -> bool:
        """Set volume (0..1). Zero mutes, anything else unmutes."""
        with self.lock:
            volume = min(1.0, max(0.0, float(volume)))
            self.volume = volume
            self.is_muted = volume == 0
            if not self.surface.is_ready():
                return True  # Applied once the player is ready
            self._control("volume", lambda: self.surface.set_volume(volume))
            if self.is_muted:
                self._control("mute", self.surface.mute)
            else:
                self._control("unmute", self.surface.unmute)
            return True

    def toggle_mute(self) -> bool:
        with self.lock:
            call = self.surface.unmute if self.is_muted else self.surface.mute
            if not self._control("mute", call):
                return self.is_muted
            self.is_muted = not self.is_muted
            return self.is_muted

    # =========================================================================
    # Player events
    # =========================================================================

    def on_player_ready(self) -> None:
        with self.lock:
            if self._unmounted:
                return
            self.logger.info("Player ready for event %s", self.event_id)
            if self.state in (EngineState.IDLE, EngineState.EMPTY) and self._display:
                self.state = EngineState.READY
            duration = self.surface.get_duration()
            self.duration_seconds = float(duration) if _is_finite(duration) and duration > 0 else 0.0

            self._control("volume", lambda: self.surface.set_volume(self.volume))
            if self.is_muted:
                self._control("mute", self.surface.mute)

            pending = self._pending_index
            self._pending_index = None
            if pending is not None and 0 <= pending < len(self._display):
                if self._display[pending].id != self._loaded_item_id:
                    self._load_index(pending)
                elif self.has_user_interacted:
                    self.play()

    def on_player_state_change(self, state: PlayerState) -> None:
        with self.lock:
            if self._unmounted:
                return
            self.is_playing = state == PlayerState.PLAYING
            self.is_buffering = state == PlayerState.BUFFERING

            if state == PlayerState.PLAYING:
                self.state = EngineState.PLAYING
                self._playing_item_id = self._loaded_item_id
                duration = self.surface.get_duration()
                if _is_finite(duration) and duration > 0:
                    self.duration_seconds = float(duration)
            elif state == PlayerState.PAUSED:
                self.state = EngineState.PAUSED
            elif state == PlayerState.ENDED:
                # An ENDED for an item the poll already moved past is stale
                current = self.current_item
                if current is not None and current.id == self._playing_item_id:
                    self._handle_end_of_item()
            elif state in (PlayerState.CUED, PlayerState.UNSTARTED):
                if self._display:
                    self.state = EngineState.READY

    def on_player_error(self, code) -> None:
        """The player could not play the current item: skip it after a short delay."""
        with self.lock:
            if self._unmounted:
                return
            item = self.current_item
            error = ExternalPlayerError(code, item.external_media_id if item else None)
            self.logger.error("%s", error)
            self.last_error = "Error playing video"
            if item is None:
                return
            self._error_item_id = item.id

            def skip():
                current = self.current_item
                if current is None or current.id != item.id:
                    return
                self._error_item_id = None
                self.index = next_index(self.index, len(self._display))
                self._load_index(self.index)

            self._schedule(self.config_manager.get_float("error_advance_delay_seconds", 3.0), skip)

    # =========================================================================
    # Polling
    # =========================================================================

    def check_end_of_item(self) -> bool:
        """
        Advance or pause when the current item is about to end.

        Returns:
            True if an end of item was handled on this tick
        """
        with self.lock:
            current = self.current_item
            if self._unmounted or not self.is_playing or current is None:
                return False
            if not self.surface.is_ready():
                return False
            # Until the player reports PLAYING for this item, its time may still be the previous one's
            if current.id != self._playing_item_id:
                return False
            try:
                current_time = self.surface.get_current_time()
                duration = self.surface.get_duration()
            except Exception as e:
                self.logger.warning("Error reading player position: %s", e)
                return False

            threshold = self.config_manager.get_float("end_of_item_threshold_seconds", 1.0)
            if not is_end_of_item(current_time, duration, threshold):
                return False
            return self._handle_end_of_item()

    def _handle_end_of_item(self) -> bool:
        """Apply the advance policy, at most once per loaded item. Assumes lock is held."""
        item = self.current_item
        if item is None or item.id == self._ended_item_id:
            return False
        self._ended_item_id = item.id

        decision = decide_advance(self.index, len(self._display), self.repeat_enabled)
        if decision.action == AdvanceAction.ADVANCE:
            self.logger.debug("End of %s, advancing to index %s", item.title, decision.index)
            self._mark_interaction()
            self.index = decision.index
            self._load_index(self.index)
        else:
            self.logger.info("End of playlist reached for event %s", self.event_id)
            self._control("pause", self.surface.pause)
            self.is_playing = False
            self.state = EngineState.PAUSED
        return True

    def update_progress(self) -> None:
        """Mirror the player's position and duration."""
        with self.lock:
            if self._unmounted or not self.is_playing or not self.surface.is_ready():
                return
            try:
                current_time = self.surface.get_current_time()
                duration = self.surface.get_duration()
            except Exception as e:
                self.logger.warning("Error updating progress: %s", e)
                return

            if _is_finite(current_time) and current_time >= 0:
                self.progress_seconds = float(current_time)
            if _is_finite(duration) and duration > 0:
                self.duration_seconds = float(duration)
