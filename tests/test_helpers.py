import asyncio
from types import SimpleNamespace

import helpers


async def test_spawned_task_is_held_until_it_finishes():
    release = asyncio.Event()

    async def wait():
        await release.wait()
        return "done"

    task = helpers.spawn(wait())
    assert task in helpers._background_tasks
    release.set()
    assert await task == "done"
    await asyncio.sleep(0)
    assert task not in helpers._background_tasks


def test_audio_attachment_detection():
    assert helpers.is_audio_attachment(SimpleNamespace(content_type="audio/ogg", filename="x"))
    assert helpers.is_audio_attachment(SimpleNamespace(content_type=None, filename="Song.FLAC"))
    assert not helpers.is_audio_attachment(SimpleNamespace(content_type="image/png", filename="cover.png"))
