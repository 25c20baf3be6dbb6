from commands import core
from exceptions import PersistenceFailure, TrackNotFound
from models import Action, ViewRole

from conftest import ADMIN_ID, make_upload


async def test_like_button_replies_and_toggles(services):
    track = await services.engine.upload(make_upload("c1"))
    liked = await core.handle_action(services, Action("like", track.id), 4, 50)
    assert liked.text.endswith(" Liked")
    removed = await core.handle_action(services, Action("like", track.id), 4, 50)
    assert removed.text == "💤 Like removed"


async def test_buttons_for_missing_track(services):
    reply = await core.handle_action(services, Action("like", "gone_1"), 4, 50)
    assert reply == core.NOT_FOUND


async def test_type_button_with_bad_kind(services):
    track = await services.engine.upload(make_upload("c2"))
    reply = await core.handle_action(services, Action("type", track.id, "remix"), 4, 50)
    assert reply.text == "That button is no longer valid."


async def test_delete_button_checks_admin(services, store):
    track = await services.engine.upload(make_upload("c3"))
    denied = await core.handle_action(services, Action("del", track.id), 4, 50)
    assert denied.alert
    assert len(store) == 1

    done = await core.handle_action(services, Action("del", track.id), ADMIN_ID, 50)
    assert done.text == f'🧹 Track "{track.title}" deleted.'
    assert len(store) == 0


async def test_menu_stats_and_labels(services):
    await services.engine.upload(make_upload("c4", user_id=3))
    reply = await core.handle_action(services, Action("menu", "stats"), 4, 50)
    assert "🎵 Tracks: 1" in reply.text
    assert core.view_for_label("🏆 Top this week") == "top_week"
    assert core.view_for_label("📊 Stats") == "stats"
    assert core.view_for_label("hello") is None


async def test_menu_opens_list(services, transport):
    await services.engine.upload(make_upload("c5"))
    reply = await core.handle_action(services, Action("menu", "all"), 4, 50)
    assert reply.text is None
    assert transport.sent[-1].role == ViewRole.LIST
    assert services.sessions.get_pagination(4).view_key == "all"


async def test_page_button_with_garbage_page(services, transport):
    await services.engine.upload(make_upload("c6"))
    await core.handle_action(services, Action("page", "all", "x"), 4, 50)
    assert services.sessions.get_pagination(4).page == 1


async def test_duplicate_upload_returns_none(services):
    assert await core.handle_upload(services, make_upload("c7")) is not None
    assert await core.handle_upload(services, make_upload("c7", user_id=9)) is None


async def test_failed_save_notifies_user(services, transport, monkeypatch):
    async def broken(track):
        raise PersistenceFailure("disk full")

    monkeypatch.setattr(services.store, "create", broken)
    assert await core.handle_upload(services, make_upload("c8")) is None
    assert transport.notices[-1][1] == "❌ Could not process the file."


async def test_delete_refreshes_the_admin_list(services, transport):
    keep = await services.engine.upload(make_upload("c9", name="keep.mp3"))
    drop = await services.engine.upload(make_upload("c10", name="drop.mp3"))
    await core.open_view(services, ADMIN_ID, 80, "all")
    list_ref = services.sessions.get_pagination(ADMIN_ID).message
    assert "drop.mp3" in transport.text_of(list_ref)

    await core.handle_action(services, Action("del", drop.id), ADMIN_ID, 50)

    assert transport.edits[-1][0] == list_ref
    assert "drop.mp3" not in transport.text_of(list_ref)
    assert keep.title in transport.text_of(list_ref)


async def test_upload_deleted_while_being_added(services, monkeypatch):
    async def track_gone(track_id, ref):
        raise TrackNotFound(track_id)

    monkeypatch.setattr(services.engine.registry, "register", track_gone)
    assert await core.handle_upload(services, make_upload("c11")) is None
