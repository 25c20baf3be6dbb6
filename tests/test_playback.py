import asyncio

import pytest

from commands import core
from exceptions import MediaUnresolvable, TrackNotFound
from models import Action, ViewRole

from conftest import ADMIN_ID, make_upload


async def test_play_sends_preview_and_like_bar(services, transport):
    track = await services.engine.upload(make_upload("m1"))
    rendered = await services.playback.play(5, 90, track.id)

    assert [ref.role for ref in rendered] == [ViewRole.PREVIEW, ViewRole.PREVIEW_BAR]
    assert transport.text_of(rendered[0]) == f"▶️ {track.title}"
    stored = await services.store.find_by_id(track.id)
    assert all(ref in stored.views for ref in rendered)


async def test_new_play_replaces_previous_preview(services, transport):
    first = await services.engine.upload(make_upload("m2"))
    second = await services.engine.upload(make_upload("m3"))

    old = await services.playback.play(5, 90, first.id)
    new = await services.playback.play(5, 90, second.id)

    for ref in old:
        assert ref in transport.deleted
    assert services.sessions.get_playback(5).track_id == second.id
    stored = await services.store.find_by_id(first.id)
    assert not any(ref in stored.views for ref in old)
    assert all(ref not in transport.deleted for ref in new)


async def test_admin_preview_shows_delete(services, transport):
    track = await services.engine.upload(make_upload("m4"))
    rendered = await services.playback.play(ADMIN_ID, 90, track.id)
    bar = rendered[-1]
    assert bar.role == ViewRole.ADMIN_BAR
    actions = [c.action for row in transport.controls[(bar.chat_id, bar.message_id)] for c in row]
    assert Action("del", track.id).encode() in actions


async def test_expire_with_stale_token_does_nothing(services, transport):
    track = await services.engine.upload(make_upload("m5"))
    await services.playback.play(5, 90, track.id)
    first_token = services.sessions.get_playback(5).token
    await services.playback.play(5, 90, track.id)
    current = services.sessions.get_playback(5)

    assert await services.playback.expire(5, first_token) is False
    assert services.sessions.get_playback(5) is current

    assert await services.playback.expire(5, current.token) is True
    assert services.sessions.get_playback(5) is None
    for ref in current.rendered:
        assert ref in transport.deleted


async def test_play_unknown_track(services):
    with pytest.raises(TrackNotFound):
        await services.playback.play(5, 90, "missing")
    assert services.sessions.get_playback(5) is None


async def test_lost_media_raises_and_clears_session(services, transport):
    track = await services.engine.upload(make_upload("m6"))
    origin = track.origin()
    transport.gone.add((origin.chat_id, origin.message_id))

    with pytest.raises(MediaUnresolvable):
        await services.playback.play(5, 90, track.id)
    assert services.sessions.get_playback(5) is None


async def test_play_button_orphans_track_with_lost_media(services, transport, store):
    track = await services.engine.upload(make_upload("m7"))
    origin = track.origin()
    transport.gone.add((origin.chat_id, origin.message_id))

    reply = await core.handle_action(services, Action("play", track.id), 5, 90)

    assert "no longer available" in reply.text
    assert len(store) == 0


async def test_refused_media_keeps_the_track(services, transport, store):
    track = await services.engine.upload(make_upload("m8"))
    transport.refuse_media = True

    reply = await core.handle_action(services, Action("play", track.id), 5, 90)

    assert reply.alert
    assert "no longer available" not in reply.text
    assert len(store) == 1
    assert services.sessions.get_playback(5) is None


async def test_preview_expires_after_ttl(services, transport):
    first = await services.engine.upload(make_upload("m9"))
    second = await services.engine.upload(make_upload("m10"))

    services.playback.ttl_seconds = 0.05
    await services.playback.play(5, 90, first.id)
    services.playback.ttl_seconds = 0.4
    kept = await services.playback.play(5, 90, second.id)

    # Past the first preview's TTL: the replacement is untouched.
    await asyncio.sleep(0.15)
    assert services.sessions.get_playback(5).track_id == second.id
    assert all(ref not in transport.deleted for ref in kept)

    await asyncio.sleep(0.5)
    assert services.sessions.get_playback(5) is None
    assert all(ref in transport.deleted for ref in kept)
    stored = await services.store.find_by_id(second.id)
    assert not any(ref in stored.views for ref in kept)
    assert 5 not in services.sessions.expiry_tasks
