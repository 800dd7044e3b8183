"""
Embedded player runtime registry.

The YouTube IFrame API is loaded once per browser session. This registry is
the single place that knows whether it has been requested and whether it is
available; every player surface waits on it instead of loading it again.
"""

import logging
import threading
from concurrent import futures
from typing import Callable, Optional


class PlayerRuntime:
    """Init-once registry for the external player runtime."""

    _instance: Optional["PlayerRuntime"] = None
    _instance_lock = threading.Lock()

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._loading_started = False
        self._loaded: futures.Future = futures.Future()

    @classmethod
    def instance(cls) -> "PlayerRuntime":
        """The process-wide registry."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Forget the process-wide registry. Used by tests."""
        with cls._instance_lock:
            cls._instance = None

    @property
    def loading_started(self) -> bool:
        return self._loading_started

    def is_loaded(self) -> bool:
        return self._loaded.done() and self._loaded.exception() is None

    def ensure_loading(self, loader: Callable[[], None]) -> bool:
        """
        Start loading the runtime unless that already happened.

        Args:
            loader: Injects the runtime (e.g. queues the script tag for the page).

        Returns:
            True if this call invoked the loader
        """
        with self._lock:
            if self._loading_started:
                return False
            self._loading_started = True

        self.logger.info("Loading embedded player runtime")
        try:
            loader()
        except Exception as e:
            self.logger.error("Embedded player runtime failed to load: %s", e, exc_info=True)
            with self._lock:
                self._loading_started = False
            return False
        return True

    def mark_loaded(self) -> None:
        """Called once the runtime reports it is available."""
        with self._lock:
            if self._loaded.done():
                return
            self._loading_started = True
        try:
            self._loaded.set_result(True)
        except futures.InvalidStateError:
            return
        self.logger.info("Embedded player runtime ready")

    def when_loaded(self, callback: Callable[[], None]) -> None:
        """Run callback once the runtime is loaded (immediately if it already is)."""

        def _run(_future):
            try:
                callback()
            except Exception as e:
                self.logger.error("Error in player runtime callback: %s", e, exc_info=True)

        self._loaded.add_done_callback(_run)

    def wait_loaded(self, timeout: Optional[float] = None) -> bool:
        """Block until the runtime is loaded. Returns False on timeout."""
        try:
            self._loaded.result(timeout=timeout)
            return True
        except futures.TimeoutError:
            return False
