"""Playlist command Cog: uploads, menu, lists and button presses."""

import sys
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from constants import NOTICE_SECONDS, VIEW_LABELS
from models import Action
from commands import core
import helpers

_VIEW_CHOICES = [app_commands.Choice(name=label, value=key) for key, label in VIEW_LABELS.items()]


class TracksCog(commands.Cog):
    """Community playlist: upload audio, browse it, like and play tracks."""

    def __init__(self, bot: commands.Bot, services: core.Services) -> None:
        self.bot = bot
        self.services = services

    # ── Inbound messages ─────────────────────────────────────────────

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot:
            return

        attachment = helpers.first_audio_attachment(message)
        if attachment is not None:
            try:
                event = await helpers.upload_event_from_message(message, attachment)
            except discord.HTTPException as exc:
                print(f"[tracks] Could not read upload {attachment.filename}: {exc}", file=sys.stderr)
                await self.services.transport.notify(
                    message.channel.id, "❌ Could not process the file.", NOTICE_SECONDS
                )
                return
            await core.handle_upload(self.services, event)
            return

        view_key = core.view_for_label(message.content)
        if view_key is None:
            return
        reply = await core.open_view(self.services, message.author.id, message.channel.id, view_key)
        if reply.text:
            await message.channel.send(reply.text)

    # ── Button presses (dispatched by views.actions.ActionButton) ────

    async def handle_action(self, interaction: discord.Interaction, action: Action) -> None:
        await interaction.response.defer(ephemeral=True, thinking=False)
        message = helpers.message_ref_for(interaction.message)
        channel_id = interaction.channel_id or (message.chat_id if message else 0)
        reply = await core.handle_action(
            self.services,
            action,
            interaction.user.id,
            channel_id,
            message,
        )
        if not reply.text:
            return
        try:
            if reply.alert:
                await interaction.followup.send(reply.text, ephemeral=True)
            else:
                await helpers.send_ephemeral_temporary(interaction, reply.text, delay=NOTICE_SECONDS)
        except discord.HTTPException as exc:
            print(f"[tracks] Could not acknowledge {action.encode()}: {exc}", file=sys.stderr)

    # ── Commands (!mp … and /mp …) ───────────────────────────────────

    async def _acknowledge(self, ctx: commands.Context, text: Optional[str]) -> None:
        if text:
            await ctx.send(text, ephemeral=True)
        elif ctx.interaction is not None:
            await ctx.send("👇", ephemeral=True, delete_after=NOTICE_SECONDS)

    async def _open(self, ctx: commands.Context, view_key: str, page: int = 1) -> None:
        if ctx.interaction is not None:
            await ctx.defer(ephemeral=True)
        reply = await core.open_view(self.services, ctx.author.id, ctx.channel.id, view_key, page)
        await self._acknowledge(ctx, reply.text)

    @commands.hybrid_group(name="mp", invoke_without_command=True, fallback="menu")
    async def mp_group(self, ctx: commands.Context) -> None:
        """Show the playlist menu."""
        await core.send_menu(self.services, ctx.channel.id)
        await self._acknowledge(ctx, None)

    @mp_group.command(name="start")
    async def mp_start(self, ctx: commands.Context) -> None:
        """Greeting and menu."""
        await core.send_menu(self.services, ctx.channel.id)
        await self._acknowledge(ctx, None)

    @mp_group.command(name="list")
    @app_commands.describe(view="Which list to show", page="Page number")
    @app_commands.choices(view=_VIEW_CHOICES)
    async def mp_list(self, ctx: commands.Context, view: str = "all", page: int = 1) -> None:
        """Show one of the playlist views."""
        await self._open(ctx, view, page)

    @mp_group.command(name="mine")
    async def mp_mine(self, ctx: commands.Context) -> None:
        """Your uploads."""
        await self._open(ctx, "mine")

    @mp_group.command(name="originals")
    async def mp_originals(self, ctx: commands.Context) -> None:
        """Original tracks."""
        await self._open(ctx, "originals")

    @mp_group.command(name="covers")
    async def mp_covers(self, ctx: commands.Context) -> None:
        """Cover versions."""
        await self._open(ctx, "covers")

    @mp_group.command(name="top")
    async def mp_top(self, ctx: commands.Context) -> None:
        """Most liked tracks of all time."""
        await self._open(ctx, "top_all")

    @mp_group.command(name="week")
    async def mp_week(self, ctx: commands.Context) -> None:
        """Most liked tracks uploaded this week."""
        await self._open(ctx, "top_week")

    @mp_group.command(name="stats")
    async def mp_stats(self, ctx: commands.Context) -> None:
        """Playlist statistics."""
        await ctx.send(await core.stats_text(self.services))
