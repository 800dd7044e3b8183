"""
Unit tests for PlaylistCache.

Uses a mock store and a controllable clock.
"""

from unittest.mock import Mock

import pytest

from eventjam.exceptions import FetchError
from eventjam.models import PlaylistItem
from eventjam.playlist_store import PlaylistStore
from eventjam.playlist_cache import PlaylistCache


def make_item(item_id, event_id="ev1"):
    return PlaylistItem(
        id=item_id,
        event_id=event_id,
        external_media_id="vid-" + item_id,
        title="Song " + item_id,
        added_by_participant_id="p1",
    )


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def mock_store():
    store = Mock(spec=PlaylistStore)
    store.list_ordered.return_value = [make_item("a"), make_item("b")]
    return store


@pytest.fixture
def mock_config_manager():
    config = Mock()
    config.get_float.side_effect = lambda key, default=None: {
        "playlist_cache_ttl_seconds": 30.0,
    }.get(key, default)
    return config


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(mock_store, mock_config_manager, clock):
    return PlaylistCache(mock_store, mock_config_manager, clock=clock)


def test_load_fetches_once_while_fresh(cache, mock_store, clock):
    first = cache.load("ev1")
    clock.now += 29
    second = cache.load("ev1")

    assert [item.id for item in first] == ["a", "b"]
    assert [item.id for item in second] == ["a", "b"]
    mock_store.list_ordered.assert_called_once_with("ev1")


def test_expired_snapshot_is_refetched(cache, mock_store, clock):
    cache.load("ev1")
    clock.now += 30
    mock_store.list_ordered.return_value = [make_item("a")]

    items = cache.load("ev1")

    assert [item.id for item in items] == ["a"]
    assert mock_store.list_ordered.call_count == 2


def test_expired_entries_are_purged(cache, clock):
    cache.load("ev1")
    assert cache.get_cached("ev1") is not None

    clock.now += 31

    assert cache.get_cached("ev1") is None


def test_invalidate_forces_refetch(cache, mock_store):
    cache.load("ev1")
    cache.invalidate("ev1")
    cache.load("ev1")

    assert mock_store.list_ordered.call_count == 2


def test_fetch_failure_raises_and_caches_nothing(cache, mock_store):
    mock_store.list_ordered.side_effect = RuntimeError("network down")

    with pytest.raises(FetchError) as exc_info:
        cache.load("ev1")

    assert exc_info.value.event_id == "ev1"
    assert "network down" in exc_info.value.message
    assert cache.get_cached("ev1") is None


def test_retry_after_failure_succeeds(cache, mock_store):
    mock_store.list_ordered.side_effect = [RuntimeError("network down"), [make_item("a")]]

    with pytest.raises(FetchError):
        cache.load("ev1")
    items = cache.load("ev1")

    assert [item.id for item in items] == ["a"]


def test_returned_lists_are_copies(cache):
    items = cache.load("ev1")
    items.clear()

    assert len(cache.load("ev1")) == 2


def test_invalidate_during_fetch_does_not_store_stale_data(cache, mock_store):
    def fetch(event_id):
        # A change notification lands while this fetch is in flight
        cache.invalidate(event_id)
        return [make_item("stale")]

    mock_store.list_ordered.side_effect = fetch

    items = cache.load("ev1")

    assert [item.id for item in items] == ["stale"]
    assert cache.get_cached("ev1") is None


def test_events_are_cached_independently(cache, mock_store):
    cache.load("ev1")
    cache.load("ev2")
    cache.invalidate("ev1")

    assert cache.get_cached("ev1") is None
    assert cache.get_cached("ev2") is not None


def test_clear(cache):
    cache.load("ev1")
    cache.clear()
    assert cache.get_cached("ev1") is None
