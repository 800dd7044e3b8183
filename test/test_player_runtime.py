"""
Unit tests for the PlayerRuntime registry.
"""

import threading
from unittest.mock import Mock

from eventjam.player_runtime import PlayerRuntime


def test_instance_is_shared():
    assert PlayerRuntime.instance() is PlayerRuntime.instance()


def test_reset_instance():
    first = PlayerRuntime.instance()
    PlayerRuntime.reset_instance()
    assert PlayerRuntime.instance() is not first


def test_loader_runs_once():
    runtime = PlayerRuntime()
    loader = Mock()

    assert runtime.ensure_loading(loader) is True
    assert runtime.ensure_loading(loader) is False
    assert runtime.loading_started

    loader.assert_called_once_with()


def test_loader_runs_once_across_threads():
    runtime = PlayerRuntime()
    loader = Mock()
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        runtime.ensure_loading(loader)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert loader.call_count == 1


def test_failed_loader_can_be_retried():
    runtime = PlayerRuntime()
    loader = Mock(side_effect=[RuntimeError("blocked"), None])

    assert runtime.ensure_loading(loader) is False
    assert not runtime.loading_started
    assert runtime.ensure_loading(loader) is True


def test_when_loaded_waits_for_mark_loaded():
    runtime = PlayerRuntime()
    callback = Mock()

    runtime.when_loaded(callback)
    callback.assert_not_called()
    assert not runtime.is_loaded()

    runtime.mark_loaded()
    runtime.mark_loaded()

    callback.assert_called_once_with()
    assert runtime.is_loaded()


def test_when_loaded_after_load_runs_immediately():
    runtime = PlayerRuntime()
    runtime.mark_loaded()
    callback = Mock()

    runtime.when_loaded(callback)

    callback.assert_called_once_with()


def test_failing_callback_does_not_break_others():
    runtime = PlayerRuntime()
    healthy = Mock()
    runtime.when_loaded(Mock(side_effect=RuntimeError("boom")))
    runtime.when_loaded(healthy)

    runtime.mark_loaded()

    healthy.assert_called_once_with()


def test_wait_loaded():
    runtime = PlayerRuntime()
    assert runtime.wait_loaded(timeout=0.01) is False

    threading.Timer(0.01, runtime.mark_loaded).start()
    assert runtime.wait_loaded(timeout=2.0) is True
