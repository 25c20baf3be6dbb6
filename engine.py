"""Mutation engine: every change to a track, and its fan-out to chat.

A track moves through upload → type selection → likes → deletion.  Each
operation runs under that track's lock, persists the new state first, and
then pushes it to every registered message.  Messages that can no longer be
updated are dropped from the registry instead of being retried.
"""

import asyncio
import contextlib
import sys
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, FrozenSet, Iterable, List, Optional

from constants import NOTICE_SECONDS, SELECTOR_CLEANUP_SECONDS
from exceptions import DuplicateTrack, NotAuthorized, TrackNotFound, TransportFatal, ViewStale
from models import (
    LikeResult,
    MessageRef,
    SourceRef,
    Track,
    TrackKind,
    UploadEvent,
    ViewRole,
    make_track_id,
    sanitize_title,
)
from registry import ViewRegistry
from store import TrackStore
from transport import Transport
import render


class MutationEngine:
    def __init__(
        self,
        store: TrackStore,
        transport: Transport,
        *,
        admin_ids: Iterable[int] = (),
        notice_seconds: float = NOTICE_SECONDS,
        selector_cleanup_seconds: float = SELECTOR_CLEANUP_SECONDS,
    ) -> None:
        self.store = store
        self.transport = transport
        self.registry = ViewRegistry(store)
        self.admin_ids: FrozenSet[int] = frozenset(admin_ids)
        self.notice_seconds = notice_seconds
        self.selector_cleanup_seconds = selector_cleanup_seconds
        self._locks: Dict[str, asyncio.Lock] = {}
        self._background: set = set()

    def is_admin(self, user_id: int) -> bool:
        return user_id in self.admin_ids

    @contextlib.asynccontextmanager
    async def locked(self, track_id: str) -> AsyncIterator[None]:
        """Serialize every mutation of one track."""
        lock = self._locks.get(track_id)
        if lock is None:
            lock = self._locks[track_id] = asyncio.Lock()
        async with lock:
            yield

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _cleanup_later(self, ref: MessageRef, delay: float) -> None:
        try:
            await self.transport.delete_later(ref, delay)
        except TransportFatal:
            return

    async def _send(self, channel_id: int, rendered: render.Rendered, role: str) -> Optional[MessageRef]:
        try:
            return await self.transport.send_text(channel_id, rendered.text, rendered.controls, role=role)
        except ViewStale as exc:
            print(f"[engine] Could not send {role} message: {exc}", file=sys.stderr)
            return None

    # ── Upload ───────────────────────────────────────────────────────

    async def upload(self, event: UploadEvent) -> Track:
        """Create a track for a new upload and send its message set.

        The track is persisted before anything is shown to the user.  A
        duplicate upload gets a short warning, its message is removed and
        ``DuplicateTrack`` is raised.
        """
        now = datetime.now(timezone.utc)
        now_ms = int(now.timestamp() * 1000)
        upload_ref = MessageRef(event.chat_id, event.message_id, ViewRole.UPLOAD)
        track = Track(
            id=make_track_id(event.content_handle, now_ms),
            source_ref=SourceRef(event.transfer_handle, event.content_handle),
            title=sanitize_title(event.display_name, now_ms),
            owner_id=event.uploader_id,
            created_at=now,
            views=[upload_ref],
        )
        try:
            track = await self.store.create(track)
        except DuplicateTrack:
            print(f"[engine] Duplicate upload from {event.uploader_id}: {track.title}")
            await self.transport.notify(
                event.chat_id,
                "⚠️ This track is already in the playlist and won't be added again.",
                self.notice_seconds,
            )
            await self.transport.delete(upload_ref)
            raise

        print(f"[engine] Track added: {track.id} ({track.title})")
        await self.transport.notify(event.chat_id, render.track_added(track), self.notice_seconds)

        async with self.locked(track.id):
            selector = await self._send(event.chat_id, render.type_selector(track), ViewRole.SELECTOR)
            if selector is not None:
                track = await self.registry.register(track.id, selector)
            bar = await self._send(event.chat_id, render.like_bar(track), ViewRole.LIKE_BAR)
            if bar is not None:
                track = await self.registry.register(track.id, bar)
        return track

    # ── Type selection ───────────────────────────────────────────────

    async def set_type(self, track_id: str, kind: str, selector: Optional[MessageRef] = None) -> Track:
        """Set original/cover and retire the selector message.

        The selector is first swapped to a confirmation, then removed from the
        registry and deleted shortly after.  The like bar stays.
        """
        if kind not in TrackKind.ALL:
            raise ValueError(f"Unknown track kind {kind!r}")
        async with self.locked(track_id):
            track = await self.store.find_by_id(track_id)
            track.kind = kind
            track = await self.store.update(track)

            if selector is not None:
                selectors = [MessageRef(selector.chat_id, selector.message_id, ViewRole.SELECTOR)]
            else:
                selectors = track.views_with_role(ViewRole.SELECTOR)
            confirmation = render.type_confirmation(kind)
            for ref in selectors:
                try:
                    await self.transport.edit(ref, confirmation.text, confirmation.controls)
                except ViewStale:
                    continue
                self._spawn(self._cleanup_later(ref, self.selector_cleanup_seconds))
            updated = await self.registry.unregister(track_id, selectors)
        return updated or track

    # ── Likes ────────────────────────────────────────────────────────

    async def toggle_like(self, track_id: str, user_id: int) -> LikeResult:
        """Flip ``user_id`` in the voter set and refresh every like bar."""
        async with self.locked(track_id):
            track = await self.store.find_by_id(track_id)
            if user_id in track.voters:
                track.voters.discard(user_id)
                liked = False
            else:
                track.voters.add(user_id)
                liked = True
            track = await self.store.update(track)
            track = await self._fan_out(track)
        return LikeResult(track=track, liked=liked)

    async def _render_like_bar(self, ref: MessageRef, track: Track) -> None:
        rendered = render.like_bar(track, show_delete=ref.role == ViewRole.ADMIN_BAR)
        await self.transport.edit(ref, rendered.text, rendered.controls)

    async def _fan_out(self, track: Track) -> Track:
        """Re-render every like bar concurrently; prune the ones that failed."""
        refs = track.views_with_role(*ViewRole.RENDERS_LIKES)
        if not refs:
            return track
        results = await asyncio.gather(
            *(self._render_like_bar(ref, track) for ref in refs),
            return_exceptions=True,
        )
        stale: List[MessageRef] = []
        for ref, result in zip(refs, results):
            if result is None:
                continue
            if isinstance(result, TransportFatal) or not isinstance(result, Exception):
                raise result
            if not isinstance(result, ViewStale):
                print(f"[engine] Like bar {ref.chat_id}/{ref.message_id} failed: {result!r}", file=sys.stderr)
            stale.append(ref)
        if not stale:
            return track
        print(f"[engine] Pruning {len(stale)} stale view(s) of {track.id}")
        updated = await self.registry.unregister_missing(track.id, stale)
        return updated or track

    # ── Deletion ─────────────────────────────────────────────────────

    async def delete_track(self, track_id: str, user_id: int) -> Track:
        """Admin-only: remove every message of a track, then the track."""
        if not self.is_admin(user_id):
            raise NotAuthorized(user_id)
        track = await self._remove(track_id)
        print(f"[engine] Track {track_id} deleted by {user_id}")
        return track

    async def orphan(self, track_id: str) -> Optional[Track]:
        """Remove a track whose media is gone.  Missing tracks are ignored."""
        try:
            track = await self._remove(track_id)
        except TrackNotFound:
            return None
        print(f"[engine] Track {track_id} removed: media no longer available")
        return track

    async def _remove(self, track_id: str) -> Track:
        async with self.locked(track_id):
            track = await self.store.find_by_id(track_id)
            await asyncio.gather(*(self.transport.delete(ref) for ref in track.views))
            await self.store.delete(track_id)
        self._locks.pop(track_id, None)
        return track

    # ── Registry access for other managers ───────────────────────────

    async def register_view(self, track_id: str, ref: MessageRef) -> Track:
        async with self.locked(track_id):
            return await self.registry.register(track_id, ref)

    async def retire_views(self, track_id: str, refs: Iterable[MessageRef]) -> Optional[Track]:
        async with self.locked(track_id):
            return await self.registry.unregister(track_id, refs)

    async def close(self) -> None:
        for task in list(self._background):
            task.cancel()
        self._background.clear()
