"""Admin command Cog for the playlist bot."""

import sys

import discord
from discord.ext import commands

from constants import BOT_BUILD_DATE, BOT_VERSION
from models import Action
from commands import core


class AdminCog(commands.Cog):
    """Admin-only maintenance commands (``!mpadmin …``)."""

    def __init__(self, bot: commands.Bot, services: core.Services) -> None:
        self.bot = bot
        self.services = services

    async def cog_check(self, ctx: commands.Context) -> bool:
        return self.services.engine.is_admin(ctx.author.id)

    async def cog_command_error(self, ctx: commands.Context, error: commands.CommandError) -> None:
        if isinstance(error, commands.CheckFailure):
            await ctx.send("⛔ Admins only.", ephemeral=True, delete_after=5)
            return
        print(f"[admin] {ctx.command} failed: {error}", file=sys.stderr)

    @commands.group(name="mpadmin", invoke_without_command=True)
    async def admin_group(self, ctx: commands.Context) -> None:
        """Show bot version and store size."""
        await ctx.send(
            f"Playlist bot v{BOT_VERSION} ({BOT_BUILD_DATE}) • {len(self.services.store)} track(s)"
        )

    @admin_group.command(name="delete")
    async def admin_delete(self, ctx: commands.Context, track_id: str) -> None:
        """Delete a track by id, the same way the 🗑 button does."""
        reply = await core.handle_action(
            self.services, Action("del", track_id), ctx.author.id, ctx.channel.id
        )
        await ctx.send(reply.text or "Done.", delete_after=10)

    @admin_group.command(name="sync")
    async def admin_sync(self, ctx: commands.Context) -> None:
        """Sync slash commands with Discord."""
        try:
            synced = await self.bot.tree.sync()
        except discord.HTTPException as e:
            print(f"Sync error: {e}", file=sys.stderr)
            await ctx.send("❌ Sync failed.")
            return
        await ctx.send(f"Synced {len(synced)} application command(s).")
