"""Platform-neutral rendering of playlist messages.

Every function returns text plus rows of ``Control`` buttons.  The transport
adapter turns controls into whatever the chat platform uses; the ``action``
of a control is the encoded payload the platform sends back on a press.
"""

import random
from dataclasses import dataclass, field
from typing import List, Optional

from constants import KIND_LABELS, LIKE_EFFECTS, STATS_LABEL, VIEW_LABELS
from models import Action, Page, StoreStats, Track


@dataclass(frozen=True)
class Control:
    label: str
    action: str
    style: str = "secondary"  # primary / secondary / success / danger


@dataclass
class Rendered:
    text: str
    controls: List[List[Control]] = field(default_factory=list)


def like_bar(track: Track, *, show_delete: bool = False) -> Rendered:
    """Like counter and controls shared by every copy of a track's like bar.

    The delete control is only rendered on copies addressed to an admin.
    """
    text = f"❤️ {track.likes} — {track.title}"
    row = [Control("❤️ Like / 💔 Unlike", Action("like", track.id).encode(), "primary")]
    if show_delete:
        row.append(Control("🗑 Delete", Action("del", track.id).encode(), "danger"))
    return Rendered(text, [row])


def type_selector(track: Track) -> Rendered:
    return Rendered(
        f"Choose the track type for **{track.title}**:",
        [
            [Control(KIND_LABELS["original"], Action("type", track.id, "original").encode(), "primary")],
            [Control(KIND_LABELS["cover"], Action("type", track.id, "cover").encode(), "secondary")],
        ],
    )


def type_confirmation(kind: str) -> Rendered:
    return Rendered(f"✅ Type set: {KIND_LABELS.get(kind, kind)}")


def page(page: Page) -> Rendered:
    """List page: numbered entries in the text, ▶ buttons, then navigation."""
    title = VIEW_LABELS.get(page.view_key, VIEW_LABELS["all"])
    start = (page.page - 1) * page.page_size
    lines = [f"{title} (page {page.page} of {page.total_pages})", ""]
    for idx, track in enumerate(page.entries, start=start + 1):
        lines.append(f"`{idx}.` {track.title} • ❤️ {track.likes}")

    controls: List[List[Control]] = []
    row: List[Control] = []
    for idx, track in enumerate(page.entries, start=start + 1):
        row.append(Control(f"▶ {idx}", Action("play", track.id).encode(), "primary"))
        if len(row) == 5:
            controls.append(row)
            row = []
    if row:
        controls.append(row)

    nav: List[Control] = []
    if page.has_prev:
        nav.append(Control("⬅️ Previous", Action("page", page.view_key, str(page.page - 1)).encode()))
    if page.has_next:
        nav.append(Control("➡️ Next", Action("page", page.view_key, str(page.page + 1)).encode()))
    if nav:
        controls.append(nav)
    return Rendered("\n".join(lines), controls)


def empty_list() -> Rendered:
    return Rendered("The list is empty.")


def menu() -> Rendered:
    keys = list(VIEW_LABELS)
    rows = [
        [Control(VIEW_LABELS[k], Action("menu", k).encode()) for k in keys[i:i + 2]]
        for i in range(0, len(keys), 2)
    ]
    rows.append([Control(STATS_LABEL, Action("menu", "stats").encode())])
    return Rendered(
        "🎵 Hi! Send an audio file and I'll add it to the playlist.\n\n"
        "ℹ️ Use the menu below to browse.",
        rows,
    )


def stats(stats: StoreStats) -> Rendered:
    return Rendered(
        "📊 Stats:\n"
        f"👥 Uploaders: {stats.users}\n"
        f"🎵 Tracks: {stats.tracks}\n"
        f"❤️ Likes: {stats.likes}"
    )


def now_playing(track: Track) -> str:
    return f"▶️ {track.title}"


def track_added(track: Track) -> str:
    return f"🎵 ✅ Track added: {track.title}"


def like_effect(rng: Optional[random.Random] = None) -> str:
    return (rng or random).choice(LIKE_EFFECTS)
