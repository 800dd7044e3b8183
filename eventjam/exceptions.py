"""
Exception types for eventjam.

Only FetchError, SearchError, PermissionDeniedError, NotFoundError and
ValidationError ever reach the web layer. The player errors stay inside the
playlist engine, which logs them and keeps the session alive.
"""


class EventJamError(Exception):
    """Base class for all eventjam errors."""

    pass


class FetchError(EventJamError):
    """Raised when the playlist for an event cannot be retrieved."""

    def __init__(self, event_id: str, message: str):
        super().__init__(message)
        self.event_id = event_id
        self.message = message


class SearchError(EventJamError):
    """Raised when the video search proxy fails. The message is shown to the user as is."""

    pass


class PermissionDeniedError(EventJamError):
    """Raised when a participant may not modify an item."""

    pass


class NotFoundError(EventJamError):
    """Raised when an event, participant or item does not exist."""

    pass


class ValidationError(EventJamError):
    """Raised when an expense or poll request is malformed, or a poll is closed."""

    pass


class PlayerNotReadyError(EventJamError):
    """A control call reached the player surface before it reported ready."""

    pass


class LoadTransientError(EventJamError):
    """The player could not take a load request yet (no video data)."""

    pass


class PlaybackControlError(EventJamError):
    """A play/pause/seek/volume call on the player surface failed."""

    pass


class ExternalPlayerError(EventJamError):
    """The embedded player reported an error for the current item."""

    def __init__(self, code, media_id=None):
        super().__init__("Player error %s for %s" % (code, media_id))
        self.code = code
        self.media_id = media_id
