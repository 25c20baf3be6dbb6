"""Per-user pagination over the named track views."""

import math
from datetime import datetime
from typing import Optional

from constants import PAGE_SIZE
from exceptions import ViewStale
from models import MessageRef, Page, PaginationSession, ViewRole
from state import SessionState
from store import TrackStore
from transport import Transport
import render


class PaginationSessionManager:
    """Remembers which view and page each user is looking at.

    Pages are recomputed from the store on every render, so a refresh after
    a like or a delete always shows the current playlist.
    """

    def __init__(
        self,
        store: TrackStore,
        sessions: SessionState,
        transport: Transport,
        *,
        page_size: int = PAGE_SIZE,
    ) -> None:
        self.store = store
        self.sessions = sessions
        self.transport = transport
        self.page_size = page_size

    async def render(
        self,
        user_id: int,
        view_key: str,
        page: int = 1,
        *,
        now: Optional[datetime] = None,
    ) -> Optional[Page]:
        """Compute one page of ``view_key`` and remember it as the user's cursor.

        ``page`` is clamped to the available range.  An empty view clears the
        cursor and returns ``None``.
        """
        tracks = await self.store.query(view_key, user_id=user_id, now=now)
        if not tracks:
            self.sessions.clear_pagination(user_id)
            return None

        total_pages = max(1, math.ceil(len(tracks) / self.page_size))
        page = min(max(1, page), total_pages)

        previous = self.sessions.get_pagination(user_id)
        self.sessions.set_pagination(
            user_id,
            PaginationSession(
                view_key=view_key,
                page=page,
                channel_id=previous.channel_id if previous else None,
                message=previous.message if previous else None,
            ),
        )

        start = (page - 1) * self.page_size
        return Page(
            view_key=view_key,
            page=page,
            total_pages=total_pages,
            total=len(tracks),
            page_size=self.page_size,
            entries=tracks[start:start + self.page_size],
        )

    async def show(
        self,
        user_id: int,
        channel_id: int,
        view_key: str,
        page: int = 1,
        *,
        message: Optional[MessageRef] = None,
    ) -> Optional[Page]:
        """Render a page and put it in the chat.

        With ``message`` the existing list message is edited in place, but
        only if it is the one this user's cursor points at.  A list message
        owned by someone else, or one that is gone, gets a new message instead.
        """
        previous = self.sessions.get_pagination(user_id)
        owned = message is not None and previous is not None and previous.message == message

        result = await self.render(user_id, view_key, page)
        rendered = render.page(result) if result is not None else render.empty_list()

        ref: Optional[MessageRef] = None
        if owned:
            try:
                await self.transport.edit(message, rendered.text, rendered.controls)
                ref = message
            except ViewStale:
                ref = None
        if ref is None:
            ref = await self.transport.send_text(
                channel_id, rendered.text, rendered.controls, role=ViewRole.LIST
            )

        session = self.sessions.get_pagination(user_id)
        if session is not None:
            session.channel_id = channel_id
            session.message = ref
        return result

    async def refresh(self, user_id: int) -> Optional[Page]:
        """Re-render the user's last page.  No-op without a cursor."""
        session = self.sessions.get_pagination(user_id)
        if session is None:
            return None
        if session.channel_id is None:
            return await self.render(user_id, session.view_key, session.page)
        return await self.show(
            user_id,
            session.channel_id,
            session.view_key,
            session.page,
            message=session.message,
        )
