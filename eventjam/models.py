"""
Data models for eventjam.

Defines typed dataclasses for all entities used throughout the application.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class Event:
    """A gathering with its own participants and playlist."""

    id: str
    name: str
    access_code: str
    host_participant_id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class Participant:
    """Someone who joined an event. Identity is scoped to the event."""

    id: str
    event_id: str
    name: str
    is_extra: bool = False  # Added to split costs; never joined with the access code
    created_at: Optional[datetime] = None


@dataclass
class PlaylistItem:
    """A video contributed to an event playlist."""

    id: str
    event_id: str
    external_media_id: str  # YouTube video id
    title: str
    added_by_participant_id: str
    channel_label: Optional[str] = None
    thumbnail_url: Optional[str] = None
    added_by_name: Optional[str] = None
    added_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "external_media_id": self.external_media_id,
            "title": self.title,
            "channel_label": self.channel_label,
            "thumbnail_url": self.thumbnail_url,
            "added_by_participant_id": self.added_by_participant_id,
            "added_by_name": self.added_by_name,
            "added_at": self.added_at.isoformat() if self.added_at else None,
        }


@dataclass
class InsertNotification:
    """Change feed notification: an item was added to an event playlist."""

    event_id: str
    item: PlaylistItem


@dataclass
class DeleteNotification:
    """Change feed notification: an item was removed from an event playlist."""

    event_id: str
    item_id: str


@dataclass
class SearchResult:
    """A single video returned by the search proxy."""

    external_media_id: str
    title: str
    thumbnail_url: Optional[str] = None
    channel_label: Optional[str] = None


@dataclass
class PlayerSnapshot:
    """
    Everything a full or minimized player view needs to render.

    Produced by PlaylistEngine.snapshot(); views never read engine internals.
    """

    event_id: str
    state: str
    index: Optional[int]
    current_item: Optional[PlaylistItem]
    items: List[PlaylistItem] = field(default_factory=list)
    has_user_interacted: bool = False
    is_playing: bool = False
    is_buffering: bool = False
    progress_seconds: float = 0.0
    duration_seconds: float = 0.0
    volume: float = 0.7
    is_muted: bool = False
    shuffle_enabled: bool = False
    repeat_enabled: bool = False
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "state": self.state,
            "index": self.index,
            "current_item": self.current_item.to_dict() if self.current_item else None,
            "items": [item.to_dict() for item in self.items],
            "has_user_interacted": self.has_user_interacted,
            "is_playing": self.is_playing,
            "is_buffering": self.is_buffering,
            "progress_seconds": self.progress_seconds,
            "duration_seconds": self.duration_seconds,
            "progress_label": format_time(self.progress_seconds),
            "duration_label": format_time(self.duration_seconds),
            "volume": self.volume,
            "is_muted": self.is_muted,
            "shuffle_enabled": self.shuffle_enabled,
            "repeat_enabled": self.repeat_enabled,
            "last_error": self.last_error,
        }


@dataclass
class Expense:
    """Money one participant paid on behalf of the event."""

    id: str
    event_id: str
    title: str
    amount: float
    paid_by_participant_id: str
    paid_by_name: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class ParticipantBalance:
    """What one participant paid against their equal share."""

    participant_id: str
    name: str
    is_extra: bool
    paid: float
    owes: float  # Equal share of the total
    receives: float  # paid - owes; negative means they still have to pay


@dataclass
class ExpenseSummary:
    total: float
    per_person: float
    participants: List[ParticipantBalance] = field(default_factory=list)


@dataclass
class PollOption:
    id: str
    poll_id: str
    title: str
    created_at: Optional[datetime] = None
    voter_ids: List[str] = field(default_factory=list)

    @property
    def vote_count(self) -> int:
        return len(self.voter_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "poll_id": self.poll_id,
            "title": self.title,
            "vote_count": self.vote_count,
            "voter_ids": list(self.voter_ids),
        }


@dataclass
class Poll:
    """A question put to the participants of an event."""

    id: str
    event_id: str
    title: str
    created_by_participant_id: str
    description: Optional[str] = None
    allow_multiple_votes: bool = False
    is_closed: bool = False
    created_at: Optional[datetime] = None
    options: List[PollOption] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "title": self.title,
            "description": self.description,
            "created_by_participant_id": self.created_by_participant_id,
            "allow_multiple_votes": self.allow_multiple_votes,
            "is_closed": self.is_closed,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "options": [option.to_dict() for option in self.options],
        }


@dataclass
class ConfigEntry:
    """Configuration entry."""

    key: str
    value: str
    updated_at: Optional[datetime] = None


def format_time(seconds: float) -> str:
    """Format seconds as m:ss for the player views."""
    if not seconds or seconds < 0:
        seconds = 0
    mins = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{mins}:{secs:02d}"
