"""
Unit tests for ViewManager.
"""

import os
import tempfile

import pytest

from eventjam.config_manager import ConfigManager
from eventjam.database import Database
from eventjam.events import EventManager
from eventjam.player_runtime import PlayerRuntime
from eventjam.player_surface import BrowserPlayerSurface
from eventjam.playlist_cache import PlaylistCache
from eventjam.playlist_store import PlaylistStore
from eventjam.views import ViewManager


@pytest.fixture
def temp_db():
    """Create a temporary database."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    db = Database(db_path=path)
    yield db
    db.close()
    os.unlink(path)


@pytest.fixture
def store(temp_db):
    return PlaylistStore(temp_db)


@pytest.fixture
def runtime():
    return PlayerRuntime()


@pytest.fixture
def view_manager(temp_db, store, runtime):
    config_manager = ConfigManager(temp_db)
    cache = PlaylistCache(store, config_manager)
    manager = ViewManager(store, cache, config_manager, runtime=runtime, start_monitors=False)
    yield manager
    manager.shutdown()


@pytest.fixture
def event(temp_db, store):
    event, host = EventManager(temp_db).create_event("Party", "Alice")
    store.insert(event.id, host.id, "vidA", "A")
    store.insert(event.id, host.id, "vidB", "B")
    return event


def test_mount_creates_engine_with_own_surface(view_manager, event):
    first = view_manager.mount(event.id)
    second = view_manager.mount(event.id)

    engine_1 = view_manager.get(first)
    engine_2 = view_manager.get(second)

    assert first != second
    assert engine_1.event_id == event.id
    assert isinstance(view_manager.get_surface(first), BrowserPlayerSurface)
    assert engine_1.surface is not engine_2.surface
    assert engine_1.cache is engine_2.cache
    assert [item.title for item in engine_1.items] == ["A", "B"]
    assert set(view_manager.view_ids(event.id)) == {first, second}


def test_runtime_is_requested_by_first_view_only(view_manager, event):
    first = view_manager.mount(event.id)
    second = view_manager.mount(event.id)

    assert view_manager.get_surface(first).drain_commands() == [{"command": "load_runtime"}]
    assert view_manager.get_surface(second).drain_commands() == []


def test_runtime_loaded_creates_every_player(view_manager, event, runtime):
    views = [view_manager.mount(event.id) for _ in range(2)]
    for view_id in views:
        view_manager.get_surface(view_id).drain_commands()

    runtime.mark_loaded()

    for view_id in views:
        assert view_manager.get_surface(view_id).drain_commands() == [
            {"command": "create", "media_id": "vidA"}
        ]


def test_unmount(view_manager, event, store):
    view_id = view_manager.mount(event.id)
    surface = view_manager.get_surface(view_id)

    assert view_manager.unmount(view_id) is True
    assert view_manager.unmount(view_id) is False

    assert view_manager.get(view_id) is None
    assert surface.destroyed
    assert store.subscriber_count(event.id) == 0


def test_shutdown_unmounts_all(view_manager, event, store):
    for _ in range(3):
        view_manager.mount(event.id)
    assert store.subscriber_count(event.id) == 3

    view_manager.shutdown()

    assert view_manager.view_ids() == []
    assert store.subscriber_count(event.id) == 0


def test_get_unknown_view(view_manager):
    assert view_manager.get("missing") is None
    assert view_manager.get_surface("missing") is None
