"""Durable track storage.

``TrackStore`` keeps every track in memory and writes each change through a
persistence provider before the in-memory copy is replaced, so a change the
user has been told about is already on disk.  Two providers are available:

* ``JsonSnapshotProvider``: the whole playlist as one JSON file, rewritten
  atomically (temp file + ``os.replace``) on every change.
* ``SqlDocumentProvider``: one row per track in a SQL table (SQLAlchemy async,
  aiosqlite by default) holding the record as a JSON document.
"""

import asyncio
import json
import os
import sys
import tempfile
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, String, delete, select
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from constants import WEEK_SECONDS
from exceptions import DuplicateTrack, PersistenceFailure, TrackNotFound
from models import VIEW_KEYS, StoreStats, Track, TrackKind


# ── Providers ────────────────────────────────────────────────────────

class PersistenceProvider:
    """Interface every storage backend implements."""

    async def load_all(self) -> List[Dict[str, Any]]:
        raise NotImplementedError

    async def upsert(self, record: Dict[str, Any]) -> None:
        raise NotImplementedError

    async def remove(self, track_id: str) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class JsonSnapshotProvider(PersistenceProvider):
    """Keeps the playlist as a JSON array of track records in one file."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._records: Dict[str, Dict[str, Any]] = {}
        self._write_lock = asyncio.Lock()

    async def load_all(self) -> List[Dict[str, Any]]:
        if not os.path.exists(self.path):
            await asyncio.to_thread(self._write_snapshot, [])
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as exc:
            aside = f"{self.path}.corrupt"
            print(f"[store] Could not read {self.path}: {exc}; moved to {aside}", file=sys.stderr)
            os.replace(self.path, aside)
            raw = []
        if not isinstance(raw, list):
            print(f"[store] {self.path} is not a list of tracks; ignoring it.", file=sys.stderr)
            raw = []
        self._records = {}
        for rec in raw:
            if isinstance(rec, dict) and rec.get("id") is not None:
                self._records[str(rec["id"])] = rec
        return list(self._records.values())

    async def upsert(self, record: Dict[str, Any]) -> None:
        async with self._write_lock:
            updated = dict(self._records)
            updated[record["id"]] = record
            await asyncio.to_thread(self._write_snapshot, list(updated.values()))
            self._records = updated

    async def remove(self, track_id: str) -> None:
        async with self._write_lock:
            if track_id not in self._records:
                return
            updated = {k: v for k, v in self._records.items() if k != track_id}
            await asyncio.to_thread(self._write_snapshot, list(updated.values()))
            self._records = updated

    def _write_snapshot(self, records: List[Dict[str, Any]]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".tracks-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(records, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise


class _Base(DeclarativeBase):
    pass


class TrackRow(_Base):
    __tablename__ = "tracks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    content_handle: Mapped[str] = mapped_column(String(128), unique=True, index=True)
    created_at: Mapped[str] = mapped_column(String(40), index=True)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON)


class SqlDocumentProvider(PersistenceProvider):
    """Stores each track record as a JSON document row."""

    def __init__(self, url: str) -> None:
        self.url = url
        self._engine: Optional[AsyncEngine] = None

    async def _ensure_engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = create_async_engine(self.url)
            async with self._engine.begin() as conn:
                await conn.run_sync(_Base.metadata.create_all)
        return self._engine

    async def load_all(self) -> List[Dict[str, Any]]:
        engine = await self._ensure_engine()
        async with engine.connect() as conn:
            result = await conn.execute(
                select(TrackRow.payload).order_by(TrackRow.created_at, TrackRow.id)
            )
            return [dict(row[0]) for row in result]

    async def upsert(self, record: Dict[str, Any]) -> None:
        engine = await self._ensure_engine()
        async with engine.begin() as conn:
            await conn.execute(delete(TrackRow).where(TrackRow.id == record["id"]))
            await conn.execute(
                TrackRow.__table__.insert().values(
                    id=record["id"],
                    content_handle=record["sourceRef"]["contentHandle"],
                    created_at=record["createdAt"],
                    payload=record,
                )
            )

    async def remove(self, track_id: str) -> None:
        engine = await self._ensure_engine()
        async with engine.begin() as conn:
            await conn.execute(delete(TrackRow).where(TrackRow.id == track_id))

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None


def create_provider(backend: str, *, data_file: str, database_url: str) -> PersistenceProvider:
    """Build the provider named by ``STORE_BACKEND``."""
    if backend == "json":
        return JsonSnapshotProvider(data_file)
    if backend == "sql":
        return SqlDocumentProvider(database_url)
    raise ValueError(f"Unknown store backend: {backend!r}")


# ── Track store ──────────────────────────────────────────────────────

def _popularity_key(track: Track):
    # Most likes first, then newest first; id settles identical timestamps.
    return (-track.likes, -track.created_at.timestamp(), track.id)


class TrackStore:
    """In-memory track cache backed by a persistence provider."""

    def __init__(
        self,
        provider: PersistenceProvider,
        *,
        write_retries: int = 3,
        retry_delay: float = 0.2,
    ) -> None:
        self.provider = provider
        self.write_retries = max(1, write_retries)
        self.retry_delay = retry_delay
        self._tracks: Dict[str, Track] = {}
        self._by_content: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def open(self) -> None:
        """Load every persisted track into memory."""
        records = await self.provider.load_all()
        tracks: Dict[str, Track] = {}
        by_content: Dict[str, str] = {}
        for rec in records:
            try:
                track = Track.from_record(rec)
            except (KeyError, TypeError, ValueError) as exc:
                print(f"[store] Skipping unreadable record {rec.get('id')!r}: {exc}", file=sys.stderr)
                continue
            if track.content_handle in by_content:
                print(f"[store] Skipping duplicate record {track.id!r}", file=sys.stderr)
                continue
            tracks[track.id] = track
            by_content[track.content_handle] = track.id
        self._tracks = tracks
        self._by_content = by_content
        print(f"[store] Loaded {len(tracks)} track(s).")

    async def close(self) -> None:
        await self.provider.close()

    def __len__(self) -> int:
        return len(self._tracks)

    def count(self) -> int:
        return len(self._tracks)

    # -- Writes -----------------------------------------------------------

    async def _persist(self, op, *args) -> None:
        last_exc: Optional[Exception] = None
        for attempt in range(1, self.write_retries + 1):
            try:
                await op(*args)
                return
            except Exception as exc:  # provider errors are backend specific
                last_exc = exc
                print(
                    f"[store] Write failed (attempt {attempt}/{self.write_retries}): {exc}",
                    file=sys.stderr,
                )
                if attempt < self.write_retries:
                    await asyncio.sleep(self.retry_delay * attempt)
        raise PersistenceFailure(str(last_exc)) from last_exc

    async def create(self, track: Track) -> Track:
        async with self._lock:
            existing = self._by_content.get(track.content_handle)
            if existing is not None:
                raise DuplicateTrack(track.content_handle, existing)
            if track.id in self._tracks:
                raise DuplicateTrack(track.content_handle, track.id)
            stored = track.copy()
            await self._persist(self.provider.upsert, stored.to_record())
            self._tracks[stored.id] = stored
            self._by_content[stored.content_handle] = stored.id
            return stored.copy()

    async def update(self, track: Track) -> Track:
        async with self._lock:
            current = self._tracks.get(track.id)
            if current is None:
                raise TrackNotFound(track.id)
            stored = track.copy()
            await self._persist(self.provider.upsert, stored.to_record())
            if current.content_handle != stored.content_handle:
                self._by_content.pop(current.content_handle, None)
            self._tracks[stored.id] = stored
            self._by_content[stored.content_handle] = stored.id
            return stored.copy()

    async def delete(self, track_id: str) -> None:
        async with self._lock:
            current = self._tracks.get(track_id)
            if current is None:
                return
            await self._persist(self.provider.remove, track_id)
            self._tracks.pop(track_id, None)
            self._by_content.pop(current.content_handle, None)

    # -- Reads ------------------------------------------------------------

    async def find_by_id(self, track_id: str) -> Track:
        track = self._tracks.get(track_id)
        if track is None:
            raise TrackNotFound(track_id)
        return track.copy()

    async def find_by_content(self, content_handle: str) -> Optional[Track]:
        track_id = self._by_content.get(content_handle)
        return self._tracks[track_id].copy() if track_id else None

    async def all(self) -> List[Track]:
        return [t.copy() for t in self._tracks.values()]

    async def query(
        self,
        view_key: str,
        user_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[Track]:
        """Return the named projection of the playlist."""
        tracks = list(self._tracks.values())
        if view_key == "all":
            result = tracks
        elif view_key == "mine":
            result = [t for t in tracks if t.owner_id == user_id]
        elif view_key == "originals":
            result = [t for t in tracks if t.kind == TrackKind.ORIGINAL]
        elif view_key == "covers":
            result = [t for t in tracks if t.kind == TrackKind.COVER]
        elif view_key == "top_all":
            result = sorted(tracks, key=_popularity_key)
        elif view_key == "top_week":
            now = now or datetime.now(timezone.utc)
            since = now - timedelta(seconds=WEEK_SECONDS)
            result = sorted((t for t in tracks if t.created_at >= since), key=_popularity_key)
        else:
            raise ValueError(f"Unknown view {view_key!r}; expected one of {VIEW_KEYS}")
        return [t.copy() for t in result]

    async def stats(self) -> StoreStats:
        tracks = self._tracks.values()
        return StoreStats(
            users=len({t.owner_id for t in tracks}),
            tracks=len(self._tracks),
            likes=sum(t.likes for t in tracks),
        )
