"""
FastAPI web server for eventjam.

Provides the REST API for events, playlists, search and per-view playback
control, plus the player page that hosts the embedded YouTube player.
"""

import logging
from pathlib import Path
from typing import Any, List, Optional, Union

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel

from ..config_manager import API_KEY_MASK, ConfigManager
from ..engine import PlaylistEngine
from ..events import EventManager
from ..exceptions import (
    FetchError,
    NotFoundError,
    PermissionDeniedError,
    SearchError,
    ValidationError,
)
from ..expenses import ExpenseManager
from ..player_runtime import PlayerRuntime
from ..playlist_cache import PlaylistCache
from ..playlist_store import PlaylistStore
from ..polls import PollManager
from ..views import ViewManager
from ..youtube import YouTubeSearch

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"


# Request models
class CreateEventRequest(BaseModel):
    name: str
    host_name: str


class JoinEventRequest(BaseModel):
    access_code: str
    name: str


class AddItemRequest(BaseModel):
    participant_id: str
    external_media_id: str  # YouTube video id
    title: str
    thumbnail_url: Optional[str] = None
    channel_label: Optional[str] = None


class SelectRequest(BaseModel):
    index: int


class SeekRequest(BaseModel):
    seconds: float


class VolumeRequest(BaseModel):
    volume: float  # 0..1


class RepeatRequest(BaseModel):
    enabled: Optional[bool] = None  # None toggles


class PlayerReportRequest(BaseModel):
    """Report posted by the player page; see BrowserPlayerSurface.handle_report."""

    event: str
    state: Optional[int] = None
    code: Optional[Any] = None
    current_time: Optional[float] = None
    duration: Optional[float] = None
    has_video_data: Optional[bool] = None
    media_id: Optional[str] = None  # Video the page's player is on


class AddExpenseRequest(BaseModel):
    participant_id: str  # Who paid
    title: str
    amount: Union[float, str]  # "12,50" is accepted


class ExtraParticipantRequest(BaseModel):
    name: str


class CreatePollRequest(BaseModel):
    participant_id: str
    title: str
    options: List[str]
    description: Optional[str] = None
    allow_multiple_votes: bool = False


class VoteRequest(BaseModel):
    participant_id: str
    option_id: str


class PollOptionRequest(BaseModel):
    participant_id: str
    title: str


class ParticipantRequest(BaseModel):
    participant_id: str


class ConfigUpdateRequest(BaseModel):
    key: str
    value: str


# Dependency to get components
def get_event_manager(request: Request) -> EventManager:
    """Get EventManager from app state."""
    return request.app.state.event_manager


def get_playlist_store(request: Request) -> PlaylistStore:
    """Get PlaylistStore from app state."""
    return request.app.state.playlist_store


def get_playlist_cache(request: Request) -> PlaylistCache:
    """Get PlaylistCache from app state."""
    return request.app.state.playlist_cache


def get_view_manager(request: Request) -> ViewManager:
    """Get ViewManager from app state."""
    return request.app.state.view_manager


def get_youtube_search(request: Request) -> YouTubeSearch:
    """Get YouTubeSearch from app state."""
    return request.app.state.youtube_search


def get_config_manager(request: Request) -> ConfigManager:
    """Get ConfigManager from app state."""
    return request.app.state.config_manager


def get_expense_manager(request: Request) -> ExpenseManager:
    """Get ExpenseManager from app state."""
    return request.app.state.expense_manager


def get_poll_manager(request: Request) -> PollManager:
    """Get PollManager from app state."""
    return request.app.state.poll_manager


def _raise_http(error: Exception):
    """Map a domain error from the expense and poll managers to an HTTP error."""
    if isinstance(error, NotFoundError):
        raise HTTPException(status_code=404, detail=str(error))
    if isinstance(error, PermissionDeniedError):
        raise HTTPException(status_code=403, detail=str(error))
    raise HTTPException(status_code=400, detail=str(error))


def get_engine(view_id: str, views: ViewManager = Depends(get_view_manager)) -> PlaylistEngine:
    """Get the engine of an open view, or 404."""
    engine = views.get(view_id)
    if engine is None:
        raise HTTPException(status_code=404, detail="View not found")
    return engine


def _view_response(engine: PlaylistEngine, ok: bool, status: str) -> dict:
    return {"status": status if ok else "ignored", "snapshot": engine.snapshot().to_dict()}


def create_app(
    event_manager: EventManager,
    playlist_store: PlaylistStore,
    playlist_cache: PlaylistCache,
    view_manager: ViewManager,
    youtube_search: YouTubeSearch,
    config_manager: ConfigManager,
    expense_manager: ExpenseManager,
    poll_manager: PollManager,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        event_manager: EventManager instance
        playlist_store: PlaylistStore instance
        playlist_cache: PlaylistCache instance shared with the views
        view_manager: ViewManager instance
        youtube_search: YouTubeSearch instance
        config_manager: ConfigManager instance
        expense_manager: ExpenseManager instance
        poll_manager: PollManager instance

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(title="eventjam", version="0.1.0")

    # Store components in app state
    app.state.event_manager = event_manager
    app.state.playlist_store = playlist_store
    app.state.playlist_cache = playlist_cache
    app.state.view_manager = view_manager
    app.state.youtube_search = youtube_search
    app.state.config_manager = config_manager
    app.state.expense_manager = expense_manager
    app.state.poll_manager = poll_manager

    # Templates
    templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

    # Event endpoints
    @app.post("/api/events")
    async def create_event(
        request_data: CreateEventRequest,
        events: EventManager = Depends(get_event_manager),
    ):
        """Create an event; the creator becomes its host."""
        if not request_data.name.strip() or not request_data.host_name.strip():
            raise HTTPException(status_code=400, detail="Event name and host name are required")
        event, host = events.create_event(request_data.name.strip(), request_data.host_name.strip())
        return {"event": event, "host": host}

    @app.post("/api/events/join")
    async def join_event(
        request_data: JoinEventRequest,
        events: EventManager = Depends(get_event_manager),
    ):
        """Join an event by access code."""
        if not request_data.name.strip():
            raise HTTPException(status_code=400, detail="Name is required")
        try:
            participant = events.join_event(request_data.access_code, request_data.name.strip())
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return {"event": events.get_event(participant.event_id), "participant": participant}

    @app.get("/api/events/{event_id}")
    async def get_event(event_id: str, events: EventManager = Depends(get_event_manager)):
        """Get an event and its participants."""
        event = events.get_event(event_id)
        if not event:
            raise HTTPException(status_code=404, detail="Event not found")
        return {"event": event, "participants": events.get_participants(event_id)}

    # Playlist endpoints
    @app.get("/api/events/{event_id}/playlist")
    async def get_playlist(event_id: str, cache: PlaylistCache = Depends(get_playlist_cache)):
        """Get the canonical playlist, oldest first."""
        try:
            items = cache.load(event_id)
        except FetchError as e:
            raise HTTPException(status_code=503, detail=e.message)
        return {"items": [item.to_dict() for item in items]}

    @app.post("/api/events/{event_id}/playlist")
    async def add_item(
        event_id: str,
        request_data: AddItemRequest,
        events: EventManager = Depends(get_event_manager),
        store: PlaylistStore = Depends(get_playlist_store),
    ):
        """Add a video to the event playlist."""
        if not events.get_event(event_id):
            raise HTTPException(status_code=404, detail="Event not found")
        participant = events.get_participant(request_data.participant_id)
        if not participant:
            raise HTTPException(status_code=400, detail="Participant not found. Please rejoin the event.")
        if participant.event_id != event_id:
            raise HTTPException(status_code=403, detail="You are not a participant of this event")

        try:
            item = store.insert(
                event_id=event_id,
                participant_id=participant.id,
                external_media_id=request_data.external_media_id,
                title=request_data.title,
                thumbnail_url=request_data.thumbnail_url,
                channel_label=request_data.channel_label,
            )
        except Exception as e:
            logger.error("Error adding playlist item: %s", e, exc_info=True)
            raise HTTPException(status_code=503, detail="Could not add the video, please try again")
        return {"status": "added", "item": item.to_dict()}

    @app.delete("/api/playlist/{item_id}")
    async def remove_item(
        item_id: str,
        participant_id: Optional[str] = None,
        store: PlaylistStore = Depends(get_playlist_store),
    ):
        """
        Remove a video from its playlist.

        The participant who added it and the event host may remove it.
        """
        try:
            store.remove_item(item_id, participant_id)
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except PermissionDeniedError as e:
            raise HTTPException(status_code=403, detail=str(e))
        return {"status": "removed"}

    # Expense endpoints
    @app.get("/api/events/{event_id}/expenses")
    async def get_expenses(event_id: str, expenses: ExpenseManager = Depends(get_expense_manager)):
        """Get the expenses of an event, newest first."""
        return {"expenses": expenses.get_expenses(event_id)}

    @app.post("/api/events/{event_id}/expenses")
    async def add_expense(
        event_id: str,
        request_data: AddExpenseRequest,
        expenses: ExpenseManager = Depends(get_expense_manager),
    ):
        """Record an expense paid by a participant."""
        try:
            expense = expenses.add_expense(
                event_id, request_data.participant_id, request_data.title, request_data.amount
            )
        except (NotFoundError, PermissionDeniedError, ValidationError) as e:
            _raise_http(e)
        return {"status": "added", "expense": expense}

    @app.delete("/api/expenses/{expense_id}")
    async def remove_expense(
        expense_id: str,
        participant_id: Optional[str] = None,
        expenses: ExpenseManager = Depends(get_expense_manager),
    ):
        """Remove an expense. The payer and the event host may remove it."""
        try:
            expenses.remove_expense(expense_id, participant_id)
        except (NotFoundError, PermissionDeniedError) as e:
            _raise_http(e)
        return {"status": "removed"}

    @app.get("/api/events/{event_id}/expenses/summary")
    async def get_expense_summary(event_id: str, expenses: ExpenseManager = Depends(get_expense_manager)):
        """Total, equal share and balance per participant."""
        return expenses.get_summary(event_id)

    @app.post("/api/events/{event_id}/participants/extra")
    async def add_extra_participant(
        event_id: str,
        request_data: ExtraParticipantRequest,
        expenses: ExpenseManager = Depends(get_expense_manager),
    ):
        """Add someone who shares the costs without joining the event."""
        try:
            participant = expenses.add_extra_participant(event_id, request_data.name)
        except (NotFoundError, ValidationError) as e:
            _raise_http(e)
        return {"status": "added", "participant": participant}

    # Poll endpoints
    @app.get("/api/events/{event_id}/polls")
    async def get_polls(event_id: str, polls: PollManager = Depends(get_poll_manager)):
        """Get the polls of an event, newest first."""
        return {"polls": [poll.to_dict() for poll in polls.get_polls(event_id)]}

    @app.post("/api/events/{event_id}/polls")
    async def create_poll(
        event_id: str,
        request_data: CreatePollRequest,
        polls: PollManager = Depends(get_poll_manager),
    ):
        """Create a poll with at least two options."""
        try:
            poll = polls.create_poll(
                event_id,
                request_data.participant_id,
                request_data.title,
                request_data.options,
                description=request_data.description,
                allow_multiple_votes=request_data.allow_multiple_votes,
            )
        except (NotFoundError, PermissionDeniedError, ValidationError) as e:
            _raise_http(e)
        return {"status": "created", "poll": poll.to_dict()}

    @app.post("/api/polls/{poll_id}/votes")
    async def vote(poll_id: str, request_data: VoteRequest, polls: PollManager = Depends(get_poll_manager)):
        """Vote for an option (toggles in multiple choice polls)."""
        try:
            poll = polls.vote(poll_id, request_data.participant_id, request_data.option_id)
        except (NotFoundError, PermissionDeniedError, ValidationError) as e:
            _raise_http(e)
        return {"status": "voted", "poll": poll.to_dict()}

    @app.delete("/api/polls/{poll_id}/votes/{option_id}")
    async def remove_vote(
        poll_id: str,
        option_id: str,
        participant_id: Optional[str] = None,
        polls: PollManager = Depends(get_poll_manager),
    ):
        try:
            poll = polls.remove_vote(poll_id, participant_id, option_id)
        except (NotFoundError, ValidationError) as e:
            _raise_http(e)
        return {"status": "removed", "poll": poll.to_dict()}

    @app.post("/api/polls/{poll_id}/close")
    async def close_poll(
        poll_id: str,
        request_data: ParticipantRequest,
        polls: PollManager = Depends(get_poll_manager),
    ):
        try:
            poll = polls.close_poll(poll_id, request_data.participant_id)
        except (NotFoundError, PermissionDeniedError) as e:
            _raise_http(e)
        return {"status": "closed", "poll": poll.to_dict()}

    @app.delete("/api/polls/{poll_id}")
    async def delete_poll(
        poll_id: str,
        participant_id: Optional[str] = None,
        polls: PollManager = Depends(get_poll_manager),
    ):
        try:
            polls.delete_poll(poll_id, participant_id)
        except (NotFoundError, PermissionDeniedError) as e:
            _raise_http(e)
        return {"status": "deleted"}

    @app.post("/api/polls/{poll_id}/options")
    async def add_poll_option(
        poll_id: str,
        request_data: PollOptionRequest,
        polls: PollManager = Depends(get_poll_manager),
    ):
        try:
            option = polls.add_option(poll_id, request_data.participant_id, request_data.title)
        except (NotFoundError, PermissionDeniedError, ValidationError) as e:
            _raise_http(e)
        return {"status": "added", "option": option.to_dict()}

    @app.delete("/api/poll-options/{option_id}")
    async def remove_poll_option(
        option_id: str,
        participant_id: Optional[str] = None,
        polls: PollManager = Depends(get_poll_manager),
    ):
        try:
            polls.remove_option(option_id, participant_id)
        except (NotFoundError, PermissionDeniedError, ValidationError) as e:
            _raise_http(e)
        return {"status": "removed"}

    # Search endpoint
    @app.get("/api/search")
    async def search(
        q: str = "",
        max_results: Optional[int] = None,
        youtube: YouTubeSearch = Depends(get_youtube_search),
    ):
        """Search YouTube for videos."""
        if not q.strip():
            raise HTTPException(status_code=400, detail="Search term is required")
        if not youtube.is_configured():
            raise HTTPException(status_code=503, detail="YouTube API key not configured")
        try:
            results = youtube.search(q, max_results)
        except SearchError as e:
            raise HTTPException(status_code=502, detail=str(e))
        return {"results": results}

    # View endpoints
    @app.post("/api/events/{event_id}/views")
    async def mount_view(
        event_id: str,
        events: EventManager = Depends(get_event_manager),
        views: ViewManager = Depends(get_view_manager),
    ):
        """Open a player view on an event."""
        if not events.get_event(event_id):
            raise HTTPException(status_code=404, detail="Event not found")
        view_id = views.mount(event_id)
        return {"view_id": view_id, "snapshot": views.get(view_id).snapshot().to_dict()}

    @app.delete("/api/views/{view_id}")
    async def unmount_view(view_id: str, views: ViewManager = Depends(get_view_manager)):
        """Close a player view and release its player."""
        if not views.unmount(view_id):
            raise HTTPException(status_code=404, detail="View not found")
        return {"status": "unmounted"}

    @app.get("/api/views/{view_id}")
    async def get_view(engine: PlaylistEngine = Depends(get_engine)):
        """Get the view snapshot (position, progress, modes, items)."""
        return engine.snapshot().to_dict()

    @app.post("/api/views/{view_id}/select")
    async def select(request_data: SelectRequest, engine: PlaylistEngine = Depends(get_engine)):
        """Play the item at an index of the display order."""
        return _view_response(engine, engine.select_index(request_data.index), "selected")

    @app.post("/api/views/{view_id}/next")
    async def next_item(engine: PlaylistEngine = Depends(get_engine)):
        return _view_response(engine, engine.advance_to_next(), "next")

    @app.post("/api/views/{view_id}/previous")
    async def previous_item(engine: PlaylistEngine = Depends(get_engine)):
        return _view_response(engine, engine.advance_to_previous(), "previous")

    @app.post("/api/views/{view_id}/play")
    async def play(engine: PlaylistEngine = Depends(get_engine)):
        return _view_response(engine, engine.play(), "playing")

    @app.post("/api/views/{view_id}/pause")
    async def pause(engine: PlaylistEngine = Depends(get_engine)):
        return _view_response(engine, engine.pause(), "paused")

    @app.post("/api/views/{view_id}/toggle-play")
    async def toggle_play(engine: PlaylistEngine = Depends(get_engine)):
        return _view_response(engine, engine.toggle_play(), "toggled")

    @app.post("/api/views/{view_id}/seek")
    async def seek(request_data: SeekRequest, engine: PlaylistEngine = Depends(get_engine)):
        return _view_response(engine, engine.seek(request_data.seconds), "seeked")

    @app.post("/api/views/{view_id}/volume")
    async def set_volume(request_data: VolumeRequest, engine: PlaylistEngine = Depends(get_engine)):
        return _view_response(engine, engine.set_volume(request_data.volume), "updated")

    @app.post("/api/views/{view_id}/mute")
    async def toggle_mute(engine: PlaylistEngine = Depends(get_engine)):
        muted = engine.toggle_mute()
        return {"status": "muted" if muted else "unmuted", "snapshot": engine.snapshot().to_dict()}

    @app.post("/api/views/{view_id}/shuffle")
    async def toggle_shuffle(engine: PlaylistEngine = Depends(get_engine)):
        enabled = engine.toggle_shuffle()
        return {"status": "shuffled" if enabled else "unshuffled", "snapshot": engine.snapshot().to_dict()}

    @app.post("/api/views/{view_id}/repeat")
    async def repeat(request_data: RepeatRequest, engine: PlaylistEngine = Depends(get_engine)):
        if request_data.enabled is None:
            engine.toggle_repeat()
        else:
            engine.set_repeat(request_data.enabled)
        return {"status": "updated", "snapshot": engine.snapshot().to_dict()}

    @app.post("/api/views/{view_id}/refresh")
    async def refresh(engine: PlaylistEngine = Depends(get_engine)):
        """Refetch the playlist, e.g. after a failed load."""
        engine.cache.invalidate(engine.event_id)
        if not engine.refresh():
            raise HTTPException(status_code=503, detail=engine.last_error or "Could not load the playlist")
        return {"status": "refreshed", "snapshot": engine.snapshot().to_dict()}

    # Player bridge endpoints
    @app.get("/api/views/{view_id}/player/commands")
    async def player_commands(view_id: str, views: ViewManager = Depends(get_view_manager)):
        """Commands queued for the player page, oldest first."""
        surface = views.get_surface(view_id)
        if surface is None:
            # The page keeps polling after unmount; tell it to tear down
            return {"commands": [{"command": "destroy"}]}
        return {"commands": surface.drain_commands()}

    @app.post("/api/views/{view_id}/player/report")
    async def player_report(
        view_id: str,
        request_data: PlayerReportRequest,
        views: ViewManager = Depends(get_view_manager),
    ):
        """Ready, state, progress and error reports from the player page."""
        surface = views.get_surface(view_id)
        if surface is None:
            raise HTTPException(status_code=404, detail="View not found")
        report = {key: value for key, value in request_data if value is not None}
        surface.handle_report(report)
        return {"status": "ok"}

    @app.post("/api/player/runtime-loaded")
    async def runtime_loaded(views: ViewManager = Depends(get_view_manager)):
        """The IFrame API finished loading in a page."""
        views.runtime.mark_loaded()
        return {"status": "ok"}

    # Configuration endpoints
    @app.get("/api/config")
    async def get_config(config: ConfigManager = Depends(get_config_manager)):
        """
        Get all configuration with rich schema metadata.

        Returns:
            - values: Current configuration values
            - schema: Metadata for each editable key
            - groups: Group definitions for organizing the config UI
        """
        return config.get_full_config()

    @app.patch("/api/config")
    async def update_config(
        request_data: ConfigUpdateRequest,
        config: ConfigManager = Depends(get_config_manager),
    ):
        """Update one configuration value."""
        if request_data.key not in ConfigManager.DEFAULTS:
            raise HTTPException(status_code=400, detail="Unknown configuration key")
        if request_data.key == "youtube_api_key" and request_data.value == API_KEY_MASK:
            # The settings form echoed the masked key back unchanged
            return {"status": "unchanged", "key": request_data.key}
        config.set(request_data.key, request_data.value)
        return {
            "status": "updated",
            "key": request_data.key,
            "value": request_data.value,
        }

    # Web UI
    @app.get("/views/{view_id}", response_class=HTMLResponse)
    async def player_page(view_id: str, request: Request, views: ViewManager = Depends(get_view_manager)):
        """Serve the player page for an open view."""
        engine = views.get(view_id)
        if engine is None:
            raise HTTPException(status_code=404, detail="View not found")
        runtime: PlayerRuntime = views.runtime
        return templates.TemplateResponse(
            request,
            "player.html",
            {
                "view_id": view_id,
                "snapshot": engine.snapshot(),
                "poll_interval_ms": int(config_manager.get_float("poll_interval_seconds", 1.0) * 1000),
                # Another page already asked for the IFrame API; load it here too
                "runtime_pending": runtime.loading_started and not runtime.is_loaded(),
            },
        )

    return app
