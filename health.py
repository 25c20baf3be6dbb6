"""Health-check web server.

Runs a small FastAPI app alongside the bot so a hosting platform can see the
process is alive.

Environment variables:
    PORT            - Port to listen on (default 3000)
    HEALTH_ENABLED  - Set to 0 to skip the server
"""

from typing import Callable, Optional

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from constants import BOT_VERSION

# The bot sets this callback so we can report the playlist size.
_track_count_callback: Optional[Callable[[], int]] = None

app = FastAPI(title="Playlist Bot - Health", docs_url=None, redoc_url=None)


def set_track_count_callback(cb: Optional[Callable[[], int]]) -> None:
    """Register a callback that returns the number of stored tracks."""
    global _track_count_callback
    _track_count_callback = cb


@app.get("/", response_class=PlainTextResponse)
async def index() -> str:
    return "✅ Playlist bot is running"


@app.get("/health")
async def health():
    tracks = _track_count_callback() if _track_count_callback else None
    return {"status": "ok", "version": BOT_VERSION, "tracks": tracks}
