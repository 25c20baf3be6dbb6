"""Per-user session state for the playlist bot.

Two small maps, both process-lifetime only and never persisted: the
pagination cursor of each user and the "now playing" preview of each user.
They are owned by one ``SessionState`` instance handed to the managers that
use them, instead of being module globals.
"""

import asyncio
import itertools
from typing import Dict, Optional

from models import PaginationSession, PlaybackSession


class SessionState:
    def __init__(self) -> None:
        # { user_id: PaginationSession }
        self.pagination: Dict[int, PaginationSession] = {}
        # { user_id: PlaybackSession }
        self.playback: Dict[int, PlaybackSession] = {}
        # { user_id: pending expiry task }
        self.expiry_tasks: Dict[int, asyncio.Task] = {}
        self._tokens = itertools.count(1)

    # ── Pagination ───────────────────────────────────────────────────

    def get_pagination(self, user_id: int) -> Optional[PaginationSession]:
        return self.pagination.get(user_id)

    def set_pagination(self, user_id: int, session: PaginationSession) -> None:
        self.pagination[user_id] = session

    def clear_pagination(self, user_id: int) -> None:
        self.pagination.pop(user_id, None)

    # ── Playback ─────────────────────────────────────────────────────

    def next_token(self) -> int:
        """Return a new playback generation token."""
        return next(self._tokens)

    def get_playback(self, user_id: int) -> Optional[PlaybackSession]:
        return self.playback.get(user_id)

    def set_playback(self, user_id: int, session: PlaybackSession) -> None:
        self.playback[user_id] = session

    def pop_playback(self, user_id: int, token: Optional[int] = None) -> Optional[PlaybackSession]:
        """Remove and return the user's session.

        With ``token`` the session is only removed if it still carries that
        token, so a superseded caller cannot clear a newer session.
        """
        session = self.playback.get(user_id)
        if session is None:
            return None
        if token is not None and session.token != token:
            return None
        del self.playback[user_id]
        return session

    def replace_expiry_task(self, user_id: int, task: Optional[asyncio.Task]) -> None:
        old = self.expiry_tasks.pop(user_id, None)
        # An expiry task may tear down its own session; it must not cancel itself.
        if old is not None and old is not task and not old.done() and old is not asyncio.current_task():
            old.cancel()
        if task is not None:
            self.expiry_tasks[user_id] = task

    def cancel_all(self) -> None:
        for task in self.expiry_tasks.values():
            if not task.done():
                task.cancel()
        self.expiry_tasks.clear()
