"""Per-user "now playing" previews started from a list.

Each user has at most one preview: a copy of the track's media plus a like
bar.  Starting a new one tears the old one down first.  With a TTL the
preview removes itself; the timer carries the session's generation token and
does nothing if a newer preview has replaced the one it was started for.
"""

import asyncio
import sys
import time
from typing import List, Optional

from constants import PLAYBACK_TTL_SECONDS
from engine import MutationEngine
from exceptions import MediaUnresolvable, TrackNotFound, TransportFatal, ViewStale
from models import MessageRef, PlaybackSession, Track, ViewRole
from state import SessionState
import render


class PlaybackSessionManager:
    def __init__(
        self,
        engine: MutationEngine,
        sessions: SessionState,
        *,
        ttl_seconds: float = PLAYBACK_TTL_SECONDS,
    ) -> None:
        self.engine = engine
        self.transport = engine.transport
        self.sessions = sessions
        self.ttl_seconds = ttl_seconds

    async def play(self, user_id: int, channel_id: int, track_id: str) -> List[MessageRef]:
        """Replace the user's preview with one for ``track_id``.

        Raises ``TrackNotFound`` if the track is gone,
        ``MediaUnresolvable`` if its origin media cannot be copied and
        ``ViewStale`` if the channel refused the copy.
        """
        await self.stop(user_id)
        track = await self.engine.store.find_by_id(track_id)

        expires_at = time.time() + self.ttl_seconds if self.ttl_seconds > 0 else None
        session = PlaybackSession(
            track_id=track_id,
            token=self.sessions.next_token(),
            expires_at=expires_at,
        )
        self.sessions.set_playback(user_id, session)

        try:
            await self._render(session, track, user_id, channel_id)
        except (MediaUnresolvable, TrackNotFound, ViewStale):
            self.sessions.pop_playback(user_id, session.token)
            await self._teardown(session)
            raise

        if self.sessions.get_playback(user_id) is not session:
            # A newer play() for this user won while we were sending.
            await self._teardown(session)
            return []

        if self.ttl_seconds > 0:
            task = asyncio.create_task(self._expire_after(user_id, session.token, self.ttl_seconds))
            self.sessions.replace_expiry_task(user_id, task)
        return list(session.rendered)

    async def _render(self, session: PlaybackSession, track: Track, user_id: int, channel_id: int) -> None:
        origin = track.origin()
        if origin is not None:
            media = await self.transport.copy_media(origin, channel_id, render.now_playing(track))
        else:
            try:
                media = await self.transport.send_text(
                    channel_id, render.now_playing(track), role=ViewRole.PREVIEW
                )
            except ViewStale as exc:
                print(f"[playback] Could not send preview: {exc}", file=sys.stderr)
                return
        session.rendered.append(media)
        await self.engine.register_view(track.id, media)

        is_admin = self.engine.is_admin(user_id)
        bar = render.like_bar(track, show_delete=is_admin)
        role = ViewRole.ADMIN_BAR if is_admin else ViewRole.PREVIEW_BAR
        try:
            bar_ref = await self.transport.send_text(channel_id, bar.text, bar.controls, role=role)
        except ViewStale as exc:
            print(f"[playback] Could not send preview like bar: {exc}", file=sys.stderr)
            return
        session.rendered.append(bar_ref)
        await self.engine.register_view(track.id, bar_ref)

    async def _teardown(self, session: PlaybackSession) -> None:
        if not session.rendered:
            return
        await asyncio.gather(*(self.transport.delete(ref) for ref in session.rendered))
        await self.engine.retire_views(session.track_id, session.rendered)

    async def stop(self, user_id: int) -> Optional[PlaybackSession]:
        """Tear down the user's current preview, if any."""
        self.sessions.replace_expiry_task(user_id, None)
        session = self.sessions.pop_playback(user_id)
        if session is not None:
            await self._teardown(session)
        return session

    async def expire(self, user_id: int, token: int) -> bool:
        """Tear down the preview only if it is still generation ``token``."""
        session = self.sessions.pop_playback(user_id, token)
        if session is None:
            return False
        self.sessions.replace_expiry_task(user_id, None)
        await self._teardown(session)
        return True

    async def _expire_after(self, user_id: int, token: int, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            await self.expire(user_id, token)
        except TransportFatal:
            return

    def close(self) -> None:
        self.sessions.cancel_all()
