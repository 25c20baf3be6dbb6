"""Single source of truth for command logic.

Every public function here is a **pure async helper** that performs the
real work for one inbound event: an upload, a menu selection or a button
press.  The cogs (prefix, slash and button handlers) only translate Discord
objects into these calls and show the returned ``Reply``.

Functions here must NOT reference the ``bot`` instance or any decorator.
They receive the ``Services`` bundle and plain ids as explicit arguments.
"""

import sys
from dataclasses import dataclass
from typing import Iterable, Optional

from constants import NOTICE_SECONDS, PAGE_SIZE, PLAYBACK_TTL_SECONDS, STATS_LABEL, VIEW_LABELS
from engine import MutationEngine
from exceptions import (
    DuplicateTrack,
    MediaUnresolvable,
    NotAuthorized,
    PersistenceFailure,
    TrackNotFound,
    TransportFatal,
    ViewStale,
)
from models import VIEW_KEYS, Action, MessageRef, Track, UploadEvent, ViewRole
from pagination import PaginationSessionManager
from playback import PlaybackSessionManager
from state import SessionState
from store import TrackStore
from transport import Transport
import render


@dataclass
class Services:
    store: TrackStore
    transport: Transport
    sessions: SessionState
    engine: MutationEngine
    pagination: PaginationSessionManager
    playback: PlaybackSessionManager

    async def close(self) -> None:
        self.playback.close()
        await self.engine.close()
        await self.store.close()


def build_services(
    store: TrackStore,
    transport: Transport,
    *,
    admin_ids: Iterable[int] = (),
    page_size: int = PAGE_SIZE,
    playback_ttl: float = PLAYBACK_TTL_SECONDS,
    notice_seconds: float = NOTICE_SECONDS,
) -> Services:
    """Wire the store, session layer and managers together."""
    sessions = SessionState()
    engine = MutationEngine(store, transport, admin_ids=admin_ids, notice_seconds=notice_seconds)
    return Services(
        store=store,
        transport=transport,
        sessions=sessions,
        engine=engine,
        pagination=PaginationSessionManager(store, sessions, transport, page_size=page_size),
        playback=PlaybackSessionManager(engine, sessions, ttl_seconds=playback_ttl),
    )


@dataclass(frozen=True)
class Reply:
    """Short acknowledgement shown only to the acting user."""

    text: Optional[str] = None
    alert: bool = False


SAVE_FAILED = Reply("❌ Couldn't save that right now. Please try again later.", alert=True)
NOT_FOUND = Reply("Track not found.")


# ── Uploads ──────────────────────────────────────────────────────────

async def handle_upload(svc: Services, event: UploadEvent) -> Optional[Track]:
    """Add an uploaded file to the playlist.  Returns ``None`` if rejected."""
    try:
        return await svc.engine.upload(event)
    except DuplicateTrack:
        return None
    except TrackNotFound:
        # Deleted before its messages were registered.
        print(f"[core] Upload from {event.uploader_id} was deleted while being added", file=sys.stderr)
        return None
    except PersistenceFailure as exc:
        print(f"[core] Upload from {event.uploader_id} not saved: {exc}", file=sys.stderr)
        await svc.transport.notify(event.chat_id, "❌ Could not process the file.", svc.engine.notice_seconds)
        return None


# ── Menu ─────────────────────────────────────────────────────────────

def view_for_label(text: str) -> Optional[str]:
    """Map a typed menu label to its view key (or ``"stats"``)."""
    text = (text or "").strip()
    if text == STATS_LABEL:
        return "stats"
    for key, label in VIEW_LABELS.items():
        if text == label:
            return key
    return None


async def stats_text(svc: Services) -> str:
    return render.stats(await svc.store.stats()).text


async def open_view(
    svc: Services,
    user_id: int,
    channel_id: int,
    view_key: str,
    page: int = 1,
    *,
    message: Optional[MessageRef] = None,
) -> Reply:
    """Show ``view_key`` (or the stats) to the user in ``channel_id``."""
    if view_key == "stats":
        return Reply(await stats_text(svc))
    if view_key not in VIEW_KEYS:
        return Reply("Unknown list.")
    try:
        await svc.pagination.show(user_id, channel_id, view_key, page, message=message)
    except ViewStale as exc:
        print(f"[core] Could not show {view_key} to {user_id}: {exc}", file=sys.stderr)
        return Reply("❌ Could not show the list here.")
    return Reply()


async def send_menu(svc: Services, channel_id: int) -> None:
    rendered = render.menu()
    await svc.transport.send_text(channel_id, rendered.text, rendered.controls, role=ViewRole.LIST)


# ── Button actions ───────────────────────────────────────────────────

async def handle_action(
    svc: Services,
    action: Action,
    user_id: int,
    channel_id: int,
    message: Optional[MessageRef] = None,
) -> Reply:
    """Run one button press.  Never raises for expected failures."""
    try:
        if action.kind == "like":
            return await _like(svc, action.target, user_id)
        if action.kind == "type":
            await svc.engine.set_type(action.target, action.arg or "", selector=message)
            return Reply("✔️ Saved")
        if action.kind == "del":
            return await _delete(svc, action.target, user_id)
        if action.kind == "play":
            return await _play(svc, action.target, user_id, channel_id)
        if action.kind == "page":
            try:
                page = int(action.arg or 1)
            except ValueError:
                page = 1
            return await open_view(svc, user_id, channel_id, action.target, page, message=message)
        if action.kind == "menu":
            return await open_view(svc, user_id, channel_id, action.target)
    except TrackNotFound:
        return NOT_FOUND
    except ViewStale as exc:
        print(f"[core] {action.encode()} by {user_id}: {exc}", file=sys.stderr)
        return Reply()
    except PersistenceFailure as exc:
        print(f"[core] {action.encode()} by {user_id} not saved: {exc}", file=sys.stderr)
        return SAVE_FAILED
    except ValueError as exc:
        print(f"[core] Bad action {action.encode()}: {exc}", file=sys.stderr)
        return Reply("That button is no longer valid.")
    except TransportFatal:
        return Reply()
    return Reply()


async def _refresh_list(svc: Services, user_id: int) -> None:
    try:
        await svc.pagination.refresh(user_id)
    except ViewStale as exc:
        print(f"[core] Could not refresh the list of {user_id}: {exc}", file=sys.stderr)


async def _like(svc: Services, track_id: str, user_id: int) -> Reply:
    result = await svc.engine.toggle_like(track_id, user_id)
    if result.liked:
        return Reply(f"{render.like_effect()} Liked")
    return Reply("💤 Like removed")


async def _delete(svc: Services, track_id: str, user_id: int) -> Reply:
    try:
        track = await svc.engine.delete_track(track_id, user_id)
    except NotAuthorized:
        return Reply("⛔ Only admins can delete tracks.", alert=True)
    await _refresh_list(svc, user_id)
    return Reply(f'🧹 Track "{track.title}" deleted.')


async def _play(svc: Services, track_id: str, user_id: int, channel_id: int) -> Reply:
    try:
        await svc.playback.play(user_id, channel_id, track_id)
    except MediaUnresolvable as exc:
        print(f"[core] Media for {track_id} is gone: {exc}", file=sys.stderr)
        await svc.engine.orphan(track_id)
        await _refresh_list(svc, user_id)
        return Reply("⚠️ That track is no longer available and was removed from the list.")
    except ViewStale as exc:
        print(f"[core] Could not play {track_id} in {channel_id}: {exc}", file=sys.stderr)
        return Reply("❌ Could not play that track here.", alert=True)
    return Reply()
