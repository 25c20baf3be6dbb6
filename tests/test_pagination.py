from datetime import datetime, timedelta, timezone

from models import Page, SourceRef, Track, ViewRole
import render

BASE = datetime(2026, 3, 1, tzinfo=timezone.utc)


async def add_tracks(store, count: int, owner: int = 1) -> None:
    for n in range(count):
        await store.create(
            Track(
                id=f"p{n:03d}",
                source_ref=SourceRef("", f"content{n}"),
                title=f"song {n}",
                owner_id=owner,
                created_at=BASE + timedelta(minutes=n),
            )
        )


async def test_ten_tracks_fit_on_one_page(services, store):
    await add_tracks(store, 10)
    page = await services.pagination.render(1, "all")
    assert (page.page, page.total_pages, len(page.entries)) == (1, 1, 10)
    assert not page.has_prev and not page.has_next


async def test_eleventh_track_starts_a_second_page(services, store):
    await add_tracks(store, 11)
    page = await services.pagination.render(1, "all", 2)
    assert (page.page, page.total_pages) == (2, 2)
    assert [t.id for t in page.entries] == ["p010"]


async def test_page_numbers_are_clamped(services, store):
    await add_tracks(store, 25)
    first = await services.pagination.render(1, "all", 1)
    assert [t.id for t in first.entries][:2] == ["p000", "p001"]

    third = await services.pagination.render(1, "all", 3)
    assert len(third.entries) == 5 and third.has_prev and not third.has_next

    beyond = await services.pagination.render(1, "all", 4)
    assert beyond.page == 3
    assert services.sessions.get_pagination(1).page == 3

    below = await services.pagination.render(1, "all", 0)
    assert below.page == 1


async def test_empty_view_clears_the_cursor(services, store, transport):
    await add_tracks(store, 3, owner=1)
    await services.pagination.render(2, "all")
    assert services.sessions.get_pagination(2) is not None

    page = await services.pagination.show(2, 80, "mine")
    assert page is None
    assert services.sessions.get_pagination(2) is None
    assert transport.text_of(transport.sent[-1]) == "The list is empty."


async def test_show_edits_the_same_message_when_paging(services, store, transport):
    await add_tracks(store, 15)
    await services.pagination.show(1, 80, "all")
    list_ref = transport.sent[-1]
    assert list_ref.role == ViewRole.LIST

    await services.pagination.show(1, 80, "all", 2, message=list_ref)
    assert transport.sent[-1] is list_ref
    assert transport.text_of(list_ref).startswith("📋 Track list (page 2 of 2)")


async def test_show_falls_back_to_new_message_when_list_is_gone(services, store, transport):
    await add_tracks(store, 2)
    await services.pagination.show(1, 80, "all")
    old = transport.sent[-1]
    transport.gone.add((old.chat_id, old.message_id))

    await services.pagination.show(1, 80, "all", message=old)
    assert transport.sent[-1] != old
    assert services.sessions.get_pagination(1).message == transport.sent[-1]


async def test_refresh_without_cursor_is_a_no_op(services, transport):
    assert await services.pagination.refresh(5) is None
    assert transport.sent == []


async def test_refresh_reflects_deleted_tracks(services, store, transport):
    await add_tracks(store, 11)
    await services.pagination.show(1, 80, "all", 2)
    await store.delete("p010")

    page = await services.pagination.refresh(1)
    assert (page.page, page.total_pages) == (1, 1)


def test_page_render_has_play_buttons_and_navigation():
    tracks = [
        Track(id=f"r{n}", source_ref=SourceRef("", f"c{n}"), title=f"t{n}", owner_id=1)
        for n in range(7)
    ]

    rendered = render.page(
        Page(view_key="all", page=2, total_pages=3, total=27, page_size=10, entries=tracks)
    )
    assert "`11.` t0 • ❤️ 0" in rendered.text
    assert [len(row) for row in rendered.controls] == [5, 2, 2]
    assert rendered.controls[0][0].action == "mp:play:r0"
    assert [c.action for c in rendered.controls[-1]] == ["mp:page:all:1", "mp:page:all:3"]


async def test_page_button_on_another_users_list_sends_a_new_message(services, store, transport):
    await add_tracks(store, 15)
    await services.pagination.show(1, 80, "all")
    owners_list = transport.sent[-1]
    before = transport.text_of(owners_list)

    await services.pagination.show(2, 80, "all", 2, message=owners_list)

    assert transport.text_of(owners_list) == before
    assert transport.sent[-1] != owners_list
    assert services.sessions.get_pagination(2).message == transport.sent[-1]
    assert services.sessions.get_pagination(1).message == owners_list
