#!/usr/bin/env python3

"""Community playlist Discord bot.

Users post audio files; the bot adds them to a shared playlist that can be
browsed page by page, liked, played back and (by admins) cleaned up.  Every
message showing a track is kept in sync when the track changes.

Connectivity failures are fatal: the bot runs without gateway reconnects and
exits non-zero, and the process supervisor restarts it.
"""

import os
import sys
from typing import Optional

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import discord
from discord.ext import commands

from constants import (
    ADMIN_IDS,
    COMMAND_PREFIX,
    DATA_FILE,
    DATABASE_URL,
    DISCORD_TOKEN,
    HEALTH_ENABLED,
    HEALTH_PORT,
    STORE_BACKEND,
    STORE_WRITE_RETRIES,
)
from commands import core
from commands.admin import AdminCog
from commands.tracks import TracksCog
from store import TrackStore, create_provider
from transport import DiscordTransport
from views.actions import ActionButton
import helpers


class PlaylistBot(commands.Bot):
    def __init__(self) -> None:
        intents = discord.Intents.default()
        intents.message_content = True
        super().__init__(command_prefix=COMMAND_PREFIX, intents=intents, help_command=None)
        self.services: Optional[core.Services] = None
        self.fatal_error: Optional[BaseException] = None
        self._health_server = None

    async def setup_hook(self) -> None:
        provider = create_provider(STORE_BACKEND, data_file=DATA_FILE, database_url=DATABASE_URL)
        store = TrackStore(provider, write_retries=STORE_WRITE_RETRIES)
        await store.open()

        transport = DiscordTransport(self, on_fatal=self._on_transport_fatal)
        self.services = core.build_services(store, transport, admin_ids=ADMIN_IDS)

        self.add_dynamic_items(ActionButton)
        await self.add_cog(TracksCog(self, self.services))
        await self.add_cog(AdminCog(self, self.services))

        if HEALTH_ENABLED:
            await self._start_health_server()

    async def on_ready(self) -> None:
        print(f"Logged in as {self.user} (ID: {self.user.id})")
        print("------")
        try:
            await self.tree.sync()
            print("Synced application commands.")
        except discord.HTTPException as e:
            print(f"Failed to sync application commands: {e}", file=sys.stderr)

    async def on_command_error(self, ctx: commands.Context, error: commands.CommandError) -> None:
        if isinstance(error, commands.CommandNotFound):
            return
        if isinstance(error, (commands.UserInputError, commands.CheckFailure)):
            await ctx.send(f"⚠️ {error}", ephemeral=True, delete_after=5)
            return
        await super().on_command_error(ctx, error)

    def _on_transport_fatal(self, exc: BaseException) -> None:
        if self.fatal_error is not None:
            return
        self.fatal_error = exc
        helpers.spawn(self.close())

    async def _start_health_server(self) -> None:
        """Serve the health-check app on the bot's event loop."""
        import uvicorn

        from health import app as health_app, set_track_count_callback

        store = self.services.store if self.services else None
        set_track_count_callback((lambda: len(store)) if store is not None else None)

        config = uvicorn.Config(health_app, host="0.0.0.0", port=HEALTH_PORT, log_level="warning")
        self._health_server = uvicorn.Server(config)
        helpers.spawn(self._health_server.serve())
        print(f"[health] Web server started on port {HEALTH_PORT}.")

    async def close(self) -> None:
        if self._health_server is not None:
            self._health_server.should_exit = True
        if self.services is not None:
            await self.services.close()
            self.services = None
        await super().close()


def main() -> None:
    if not DISCORD_TOKEN:
        print("ERROR: DISCORD_TOKEN environment variable is not set.")
        sys.exit(1)

    bot = PlaylistBot()
    try:
        bot.run(DISCORD_TOKEN, reconnect=False)
    except Exception as exc:
        print(f"Bot stopped: {exc!r}", file=sys.stderr)
        sys.exit(1)
    if bot.fatal_error is not None:
        sys.exit(1)


if __name__ == "__main__":
    main()
