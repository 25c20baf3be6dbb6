"""Discord-side utility functions for the playlist bot.

Every function here is a small utility that does NOT depend on the ``bot``
instance or any cog.  This keeps them importable from the transport and the
cogs without circular-import issues.
"""

import asyncio
import hashlib
import os
from typing import Optional

import discord

from models import MessageRef, UploadEvent, ViewRole

AUDIO_EXTENSIONS = (".mp3", ".m4a", ".aac", ".ogg", ".oga", ".opus", ".wav", ".flac", ".wma")


# ── Attachments ──────────────────────────────────────────────────────

def is_audio_attachment(attachment: discord.Attachment) -> bool:
    content_type = (attachment.content_type or "").lower()
    if content_type.startswith("audio/"):
        return True
    _, ext = os.path.splitext(attachment.filename or "")
    return ext.lower() in AUDIO_EXTENSIONS


def first_audio_attachment(message: discord.Message) -> Optional[discord.Attachment]:
    """Return the first audio attachment of a message, if any."""
    for attachment in message.attachments:
        if is_audio_attachment(attachment):
            return attachment
    return None


async def content_handle_for(attachment: discord.Attachment) -> str:
    """SHA-256 of the attachment bytes.

    Discord CDN URLs are signed and expire, so the URL is only a transfer
    handle; the digest identifies the file itself.
    """
    data = await attachment.read()
    return hashlib.sha256(data).hexdigest()


async def upload_event_from_message(
    message: discord.Message, attachment: discord.Attachment
) -> UploadEvent:
    return UploadEvent(
        content_handle=await content_handle_for(attachment),
        transfer_handle=attachment.url,
        display_name=attachment.filename,
        uploader_id=message.author.id,
        chat_id=message.channel.id,
        message_id=message.id,
    )


def message_ref_for(message: Optional[discord.Message], role: str = ViewRole.LIST) -> Optional[MessageRef]:
    if message is None:
        return None
    return MessageRef(message.channel.id, message.id, role)


# ── Discord message helpers ──────────────────────────────────────────

# The event loop only keeps weak references to tasks.
_background_tasks: set = set()


def spawn(coro) -> asyncio.Task:
    """Run ``coro`` in the background and hold on to the task until it ends."""
    task = asyncio.create_task(coro)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


async def delete_later(message: discord.Message, delay: float) -> None:
    """Delete a message after a delay, ignoring failures."""
    try:
        await asyncio.sleep(delay)
        await message.delete()
    except discord.HTTPException:
        return


async def send_ephemeral_temporary(
    interaction: discord.Interaction, content: str, delay: float = 5
) -> None:
    """Send an ephemeral followup message that auto-deletes after *delay* seconds."""
    msg = await interaction.followup.send(content, ephemeral=True, wait=True)
    spawn(delete_later(msg, delay))
