"""Data model for the community playlist.

``Track`` is the single canonical shape used by every layer.  Persistence
providers translate to and from the record layout with ``to_record`` /
``from_record``; nothing else sees raw dicts.
"""

import copy
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set


class TrackKind:
    ORIGINAL = "original"
    COVER = "cover"

    ALL = (ORIGINAL, COVER)


class ViewRole:
    UPLOAD = "upload"        # the user's own upload message (origin media)
    NOTICE = "notice"        # "track added" confirmation
    SELECTOR = "selector"    # original / cover chooser
    LIKE_BAR = "like_bar"
    PREVIEW = "preview"          # media copy sent by a playback session
    PREVIEW_BAR = "preview_bar"  # like bar sent by a playback session
    ADMIN_BAR = "admin_bar"      # preview like bar for an admin, with delete
    LIST = "list"                # pagination message, never registered on a track

    ALL = (UPLOAD, NOTICE, SELECTOR, LIKE_BAR, PREVIEW, PREVIEW_BAR, ADMIN_BAR, LIST)

    # Roles whose message shows like-bar text and controls.
    RENDERS_LIKES = (LIKE_BAR, PREVIEW_BAR, ADMIN_BAR)


VIEW_KEYS = ("all", "mine", "originals", "covers", "top_week", "top_all")


@dataclass(frozen=True)
class MessageRef:
    """Address of one chat message.  Identity ignores the role tag."""

    chat_id: int
    message_id: int
    role: str = field(default=ViewRole.LIKE_BAR, compare=False)

    def to_record(self) -> Dict[str, Any]:
        return {"chatId": self.chat_id, "messageId": self.message_id, "role": self.role}

    @classmethod
    def from_record(cls, raw: Dict[str, Any], default_role: str = ViewRole.LIKE_BAR) -> "MessageRef":
        return cls(
            chat_id=int(raw["chatId"]),
            message_id=int(raw["messageId"]),
            role=raw.get("role") or default_role,
        )


@dataclass(frozen=True)
class SourceRef:
    transfer_handle: str
    content_handle: str


@dataclass
class Track:
    id: str
    source_ref: SourceRef
    title: str
    owner_id: int
    kind: str = TrackKind.ORIGINAL
    voters: Set[int] = field(default_factory=set)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    views: List[MessageRef] = field(default_factory=list)

    @property
    def likes(self) -> int:
        return len(self.voters)

    @property
    def content_handle(self) -> str:
        return self.source_ref.content_handle

    def copy(self) -> "Track":
        return copy.deepcopy(self)

    def views_with_role(self, *roles: str) -> List[MessageRef]:
        return [ref for ref in self.views if ref.role in roles]

    def origin(self) -> Optional[MessageRef]:
        uploads = self.views_with_role(ViewRole.UPLOAD)
        return uploads[0] if uploads else None

    # ── Record translation ───────────────────────────────────────────

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sourceRef": {
                "transferHandle": self.source_ref.transfer_handle,
                "contentHandle": self.source_ref.content_handle,
            },
            "title": self.title,
            "ownerId": self.owner_id,
            "kind": self.kind,
            "voters": sorted(self.voters),
            "createdAt": self.created_at.isoformat(),
            "views": [ref.to_record() for ref in self.views],
        }

    @classmethod
    def from_record(cls, raw: Dict[str, Any]) -> "Track":
        """Build a Track from a stored record.

        Accepts the current layout and the flat layout written by the first
        revision of the bot (``fileId`` / ``fileUniqueId`` / ``userId`` /
        ``type`` / ``messages``).  Legacy messages carry no role, so roles are
        assigned by position: upload, notice, selector, then like bars.
        """
        if "sourceRef" in raw:
            src = raw["sourceRef"] or {}
            source_ref = SourceRef(
                transfer_handle=str(src.get("transferHandle") or ""),
                content_handle=str(src["contentHandle"]),
            )
            views = [MessageRef.from_record(v) for v in raw.get("views") or []]
            owner = raw.get("ownerId")
            kind = raw.get("kind") or TrackKind.ORIGINAL
        else:
            source_ref = SourceRef(
                transfer_handle=str(raw.get("fileId") or ""),
                content_handle=str(raw["fileUniqueId"]),
            )
            legacy_roles = [ViewRole.UPLOAD, ViewRole.NOTICE, ViewRole.SELECTOR]
            views = []
            for idx, msg in enumerate(raw.get("messages") or []):
                role = legacy_roles[idx] if idx < len(legacy_roles) else ViewRole.LIKE_BAR
                views.append(MessageRef.from_record(msg, default_role=role))
            owner = raw.get("userId")
            kind = raw.get("type") or TrackKind.ORIGINAL

        if kind not in TrackKind.ALL:
            kind = TrackKind.ORIGINAL

        return cls(
            id=str(raw["id"]),
            source_ref=source_ref,
            title=str(raw.get("title") or raw["id"]),
            owner_id=int(owner) if owner is not None else 0,
            kind=kind,
            voters={int(v) for v in raw.get("voters") or []},
            created_at=_parse_timestamp(raw.get("createdAt")),
            views=views,
        )


def _parse_timestamp(value: Any) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


_PATH_HOSTILE = re.compile(r'[\\/:*?"<>|]+')


def sanitize_title(name: Optional[str], now_ms: int) -> str:
    """Replace path-hostile characters; fall back to a generated name."""
    name = (name or "").strip()
    if not name:
        return f"track_{now_ms}.mp3"
    return _PATH_HOSTILE.sub("_", name)


def make_track_id(content_handle: str, now_ms: int) -> str:
    return f"{content_handle[:16]}_{now_ms}"


# ── Inbound events ───────────────────────────────────────────────────

@dataclass(frozen=True)
class UploadEvent:
    content_handle: str
    transfer_handle: str
    display_name: Optional[str]
    uploader_id: int
    chat_id: int
    message_id: int


@dataclass(frozen=True)
class LikeResult:
    track: Track
    liked: bool


@dataclass(frozen=True)
class StoreStats:
    users: int
    tracks: int
    likes: int


# ── Sessions ─────────────────────────────────────────────────────────

@dataclass
class PaginationSession:
    view_key: str
    page: int
    channel_id: Optional[int] = None
    message: Optional[MessageRef] = None


@dataclass
class PlaybackSession:
    track_id: str
    token: int
    rendered: List[MessageRef] = field(default_factory=list)
    expires_at: Optional[float] = None


@dataclass
class Page:
    view_key: str
    page: int
    total_pages: int
    total: int
    page_size: int
    entries: List[Track]

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages


# ── Action payloads ──────────────────────────────────────────────────

ACTION_PREFIX = "mp"
ACTION_KINDS = ("like", "type", "del", "play", "page", "menu")

_ACTION_RE = re.compile(
    r"^mp:(?P<kind>like|type|del|play|page|menu):(?P<target>[^:]+)(?::(?P<arg>[^:]+))?$"
)


@dataclass(frozen=True)
class Action:
    """Structured button payload: ``mp:<kind>:<target>[:<arg>]``.

    ``target`` is a track id, except for ``page`` and ``menu`` where it is a
    view key.  ``arg`` carries the kind for ``type`` and the page number for
    ``page``.
    """

    kind: str
    target: str
    arg: Optional[str] = None

    def encode(self) -> str:
        base = f"{ACTION_PREFIX}:{self.kind}:{self.target}"
        return f"{base}:{self.arg}" if self.arg is not None else base

    @classmethod
    def parse(cls, payload: str) -> "Action":
        match = _ACTION_RE.match(payload or "")
        if not match:
            raise ValueError(f"Malformed action payload: {payload!r}")
        return cls(kind=match["kind"], target=match["target"], arg=match["arg"])
