"""View registry: which chat messages currently render a track.

The registry lives inside each Track (``Track.views``).  These helpers load
the track, change its view list and write it back.  Callers must hold the
track's lock (see ``MutationEngine.locked``) so two changes to the same list
cannot interleave.
"""

from typing import Iterable, List, Optional, Sequence

from exceptions import TrackNotFound
from models import MessageRef, Track
from store import TrackStore


class ViewRegistry:
    def __init__(self, store: TrackStore) -> None:
        self.store = store

    async def register(self, track_id: str, ref: MessageRef) -> Track:
        """Record a newly sent message for a track."""
        track = await self.store.find_by_id(track_id)
        track.views.append(ref)
        return await self.store.update(track)

    async def unregister_missing(self, track_id: str, stale: Iterable[MessageRef]) -> Optional[Track]:
        """Drop the refs that a fan-out attempt could not update.

        Everything not reported stale is kept as it was, including views the
        fan-out never touched.  Returns ``None`` if the track has gone.
        """
        stale = set(stale)
        if not stale:
            return None
        try:
            track = await self.store.find_by_id(track_id)
        except TrackNotFound:
            return None
        kept = [ref for ref in track.views if ref not in stale]
        if len(kept) == len(track.views):
            return track
        track.views = kept
        return await self.store.update(track)

    async def unregister(self, track_id: str, refs: Iterable[MessageRef]) -> Optional[Track]:
        """Retire views on purpose (selector after a type pick, finished previews)."""
        return await self.unregister_missing(track_id, refs)

    async def all(self, track_id: str, roles: Optional[Sequence[str]] = None) -> List[MessageRef]:
        track = await self.store.find_by_id(track_id)
        if roles is None:
            return list(track.views)
        return track.views_with_role(*roles)
