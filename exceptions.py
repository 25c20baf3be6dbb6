"""Exceptions raised by the playlist core and its adapters."""

from typing import Optional


class PlaylistError(Exception):
    """Base class for every playlist error."""


class DuplicateTrack(PlaylistError):
    """An upload matched an existing track's content handle."""

    def __init__(self, content_handle: str, existing_id: Optional[str] = None) -> None:
        super().__init__(f"Track with content handle {content_handle!r} already exists")
        self.content_handle = content_handle
        self.existing_id = existing_id


class TrackNotFound(PlaylistError):
    """An action referenced a track id that is not in the store."""

    def __init__(self, track_id: str) -> None:
        super().__init__(f"Track {track_id!r} not found")
        self.track_id = track_id


class NotAuthorized(PlaylistError):
    """The acting user is not on the admin allow-list."""

    def __init__(self, user_id: int) -> None:
        super().__init__(f"User {user_id} is not an admin")
        self.user_id = user_id


class ViewStale(PlaylistError):
    """A registered message could not be edited or deleted any more."""


class MediaUnresolvable(PlaylistError):
    """The origin media of a track can no longer be copied or resent."""


class PersistenceFailure(PlaylistError):
    """A write to the persistence provider kept failing."""


class TransportFatal(PlaylistError):
    """Connectivity to the chat platform was lost; the process should exit."""
