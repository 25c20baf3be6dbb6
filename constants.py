"""Shared constants and environment configuration for the playlist bot."""

import os

from dotenv import load_dotenv

load_dotenv()

# Bot version info
BOT_VERSION = "1.4.0"
BOT_BUILD_DATE = "2026-10-17"

# Persistent data file paths (next to this file on disk).
_HERE = os.path.dirname(os.path.abspath(__file__))


def _parse_ids(raw: str) -> frozenset:
    ids = set()
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.add(int(part))
        except ValueError:
            continue
    return frozenset(ids)


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# Environment
DISCORD_TOKEN = os.getenv("DISCORD_TOKEN")
COMMAND_PREFIX = os.getenv("COMMAND_PREFIX", "!")
ADMIN_IDS = _parse_ids(os.getenv("ADMIN_IDS", ""))

# "json" keeps a snapshot file, "sql" keeps one row per track.
STORE_BACKEND = os.getenv("STORE_BACKEND", "json").strip().lower()
DATA_FILE = os.getenv("DATA_FILE", os.path.join(_HERE, "trackList.json"))
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite+aiosqlite:///{os.path.join(_HERE, 'tracks.db')}")
STORE_WRITE_RETRIES = int(os.getenv("STORE_WRITE_RETRIES", "3"))

# 0 disables auto-expiry of "now playing" previews.
PLAYBACK_TTL_SECONDS = int(os.getenv("PLAYBACK_TTL_SECONDS", "60"))

HEALTH_ENABLED = _env_flag("HEALTH_ENABLED", True)
HEALTH_PORT = int(os.getenv("PORT", "3000"))

# Fixed behaviour
PAGE_SIZE = 10
WEEK_SECONDS = 7 * 24 * 60 * 60
NOTICE_SECONDS = 3
SELECTOR_CLEANUP_SECONDS = 2

# Menu labels keyed by view key.  The order here is the menu order.
VIEW_LABELS = {
    "all": "📋 Track list",
    "mine": "🎧 My tracks",
    "originals": "📀 Originals",
    "covers": "🎤 Covers",
    "top_week": "🏆 Top this week",
    "top_all": "🌍 Top all time",
}
STATS_LABEL = "📊 Stats"

KIND_LABELS = {
    "original": "📀 Original",
    "cover": "🎤 Cover version",
}

LIKE_EFFECTS = ["💞", "💫", "💥", "💎", "🔥"]
