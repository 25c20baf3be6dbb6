from datetime import datetime, timezone

import pytest

from models import Action, MessageRef, SourceRef, Track, TrackKind, ViewRole, make_track_id, sanitize_title


def test_action_encode_and_parse():
    action = Action("type", "abc_123", "cover")
    assert action.encode() == "mp:type:abc_123:cover"
    assert Action.parse("mp:type:abc_123:cover") == action
    assert Action.parse("mp:like:abc_123") == Action("like", "abc_123")


@pytest.mark.parametrize("payload", ["", "like:abc", "mp:boom:abc", "mp:like:", "mp:page:all:2:3"])
def test_action_parse_rejects_malformed(payload):
    with pytest.raises(ValueError):
        Action.parse(payload)


def test_sanitize_title_replaces_path_hostile_characters():
    assert sanitize_title('a/b\\c:d*e?"f<g>h|i.mp3', 1) == "a_b_c_d_e_f_g_h_i.mp3"
    assert sanitize_title("  ", 42) == "track_42.mp3"
    assert sanitize_title(None, 7) == "track_7.mp3"


def test_track_id_uses_content_prefix():
    assert make_track_id("0123456789abcdefXYZ", 99) == "0123456789abcdef_99"


def test_message_ref_identity_ignores_role():
    assert MessageRef(1, 2, ViewRole.LIKE_BAR) == MessageRef(1, 2, ViewRole.PREVIEW_BAR)
    assert MessageRef(1, 2) != MessageRef(1, 3)


def test_record_round_trip_keeps_sorted_voters():
    track = Track(
        id="t1",
        source_ref=SourceRef("url", "hash"),
        title="song.mp3",
        owner_id=5,
        kind=TrackKind.COVER,
        voters={3, 1, 2},
        created_at=datetime(2026, 1, 2, tzinfo=timezone.utc),
        views=[MessageRef(9, 10, ViewRole.UPLOAD)],
    )
    record = track.to_record()
    assert record["voters"] == [1, 2, 3]
    assert record["views"] == [{"chatId": 9, "messageId": 10, "role": "upload"}]
    assert Track.from_record(record) == track


def test_legacy_record_is_imported():
    raw = {
        "id": "old_1",
        "fileId": "file-id",
        "fileUniqueId": "unique",
        "title": "old.mp3",
        "userId": 77,
        "type": "cover",
        "voters": [1],
        "createdAt": "2024-05-01T10:00:00.000Z",
        "messages": [
            {"chatId": 1, "messageId": 11},
            {"chatId": 1, "messageId": 12},
            {"chatId": 1, "messageId": 13},
            {"chatId": 1, "messageId": 14},
        ],
    }
    track = Track.from_record(raw)
    assert track.content_handle == "unique"
    assert track.source_ref.transfer_handle == "file-id"
    assert track.owner_id == 77
    assert track.kind == TrackKind.COVER
    assert [v.role for v in track.views] == [
        ViewRole.UPLOAD,
        ViewRole.NOTICE,
        ViewRole.SELECTOR,
        ViewRole.LIKE_BAR,
    ]
    assert track.origin() == MessageRef(1, 11)
    assert track.created_at == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


def test_unknown_kind_falls_back_to_original():
    raw = {"id": "x", "sourceRef": {"contentHandle": "h"}, "kind": "remix", "ownerId": 1}
    assert Track.from_record(raw).kind == TrackKind.ORIGINAL
