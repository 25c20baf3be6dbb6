"""Shared fixtures: an in-memory chat transport and a temp-file store."""

import itertools
from typing import Dict, List, Optional, Set, Tuple

import pytest

from commands import core
from exceptions import MediaUnresolvable, ViewStale
from models import MessageRef, UploadEvent, ViewRole
from store import JsonSnapshotProvider, TrackStore
from transport import Transport

ADMIN_ID = 1000


class FakeTransport(Transport):
    """Records every call; messages listed in ``gone`` behave as deleted."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.messages: Dict[Tuple[int, int], str] = {}
        self.controls: Dict[Tuple[int, int], list] = {}
        self.sent: List[MessageRef] = []
        self.edits: List[Tuple[MessageRef, str]] = []
        self.deleted: List[MessageRef] = []
        self.notices: List[Tuple[int, str]] = []
        self.gone: Set[Tuple[int, int]] = set()
        self.fail_sends = False
        # Origin media is fine but the target channel refuses the copy.
        self.refuse_media = False

    def text_of(self, ref: MessageRef) -> Optional[str]:
        return self.messages.get((ref.chat_id, ref.message_id))

    async def send_text(self, channel_id, text, controls=None, *, role=ViewRole.LIKE_BAR):
        if self.fail_sends:
            raise ViewStale(f"cannot send to {channel_id}")
        ref = MessageRef(channel_id, 10_000 + next(self._ids), role)
        self.messages[(ref.chat_id, ref.message_id)] = text
        self.controls[(ref.chat_id, ref.message_id)] = controls or []
        self.sent.append(ref)
        return ref

    async def edit(self, ref, text, controls=None):
        key = (ref.chat_id, ref.message_id)
        if key in self.gone:
            raise ViewStale(f"{key} is gone")
        self.messages[key] = text
        self.controls[key] = controls or []
        self.edits.append((ref, text))

    async def delete(self, ref):
        key = (ref.chat_id, ref.message_id)
        self.deleted.append(ref)
        if key in self.gone:
            return False
        self.gone.add(key)
        self.messages.pop(key, None)
        return True

    async def copy_media(self, origin, channel_id, caption):
        if (origin.chat_id, origin.message_id) in self.gone:
            raise MediaUnresolvable(f"{origin} is gone")
        if self.refuse_media:
            raise ViewStale(f"channel {channel_id} refused the media")
        ref = await self.send_text(channel_id, caption, role=ViewRole.PREVIEW)
        return ref

    async def notify(self, channel_id, text, delay):
        self.notices.append((channel_id, text))


_upload_ids = itertools.count(1)


def make_upload(content: str = "abc", *, user_id: int = 1, chat_id: int = 50, name: Optional[str] = "song.mp3") -> UploadEvent:
    return UploadEvent(
        content_handle=content,
        transfer_handle=f"https://cdn.example/{content}",
        display_name=name,
        uploader_id=user_id,
        chat_id=chat_id,
        message_id=next(_upload_ids),
    )


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def data_file(tmp_path):
    return str(tmp_path / "trackList.json")


@pytest.fixture
async def store(data_file):
    track_store = TrackStore(JsonSnapshotProvider(data_file), write_retries=1, retry_delay=0)
    await track_store.open()
    yield track_store
    await track_store.close()


@pytest.fixture
async def services(store, transport):
    svc = core.build_services(
        store,
        transport,
        admin_ids={ADMIN_ID},
        playback_ttl=0,
        notice_seconds=0,
    )
    svc.engine.selector_cleanup_seconds = 0
    yield svc
    svc.playback.close()
    await svc.engine.close()
