"""
Unit tests for ConfigManager.
"""

import os
import tempfile

import pytest

from eventjam.config_manager import ConfigManager
from eventjam.database import Database


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    db = Database(db_path=path)
    yield db
    db.close()
    os.unlink(path)


@pytest.fixture
def config_manager(temp_db):
    """Create a ConfigManager instance for testing."""
    return ConfigManager(temp_db)


def test_get_default(config_manager):
    """Test getting default configuration values."""
    assert config_manager.get("playlist_cache_ttl_seconds") == "30"
    assert config_manager.get("load_retry_delay_ms") == "300"
    assert config_manager.get("youtube_api_key") is None


def test_typed_defaults(config_manager):
    assert config_manager.get_float("end_of_item_threshold_seconds") == 1.0
    assert config_manager.get_int("load_retry_attempts") == 5
    assert config_manager.get_float("error_advance_delay_seconds") == 3.0
    assert config_manager.get_float("default_volume") == 0.7
    assert config_manager.get_bool("shuffle_restart_from_top") is False


def test_set_and_get(config_manager):
    """Test setting and getting configuration values."""
    config_manager.set("youtube_api_key", "abc123")
    assert config_manager.get("youtube_api_key") == "abc123"

    config_manager.set("test_key", "test_value")
    assert config_manager.get("test_key") == "test_value"


def test_get_int(config_manager):
    """Test getting integer configuration values."""
    config_manager.set("test_int", "42")
    assert config_manager.get_int("test_int") == 42
    assert config_manager.get_int("nonexistent", default=10) == 10

    config_manager.set("invalid_int", "not_a_number")
    assert config_manager.get_int("invalid_int", default=0) == 0


def test_get_float(config_manager):
    """Test getting float configuration values."""
    config_manager.set("test_float", "3.14")
    assert config_manager.get_float("test_float") == 3.14
    assert config_manager.get_float("nonexistent", default=1.0) == 1.0

    config_manager.set("invalid_float", "not_a_number")
    assert config_manager.get_float("invalid_float", default=0.0) == 0.0


def test_get_bool(config_manager):
    """Test getting boolean configuration values."""
    config_manager.set("test_bool", "true")
    assert config_manager.get_bool("test_bool") is True

    config_manager.set("test_bool", "false")
    assert config_manager.get_bool("test_bool") is False

    config_manager.set("test_bool", True)
    assert config_manager.get("test_bool") == "true"


def test_values_persist_across_instances(temp_db):
    ConfigManager(temp_db).set("poll_interval_seconds", "0.5")
    assert ConfigManager(temp_db).get_float("poll_interval_seconds") == 0.5


def test_full_config_masks_api_key(config_manager):
    config_manager.set("youtube_api_key", "secret")
    full = config_manager.get_full_config()

    assert full["values"]["youtube_api_key"] == "********"
    assert "youtube_api_key" in full["schema"]
    assert set(full["groups"]) >= {"playback", "sync", "api"}


def test_full_config_without_api_key(config_manager):
    full = config_manager.get_full_config()
    assert full["values"]["youtube_api_key"] is None


def test_empty_value_falls_back_to_default(config_manager):
    config_manager.set("load_retry_attempts", "")
    assert config_manager.get("load_retry_attempts") == "5"

    config_manager.set("test_int", "")
    assert config_manager.get_int("test_int", default=3) == 3
    assert config_manager.get_bool("test_int", default=True) is True
