"""Chat transport used by the playlist core.

``Transport`` is what the core talks to.  ``DiscordTransport`` implements it
on top of discord.py and maps platform failures onto the playlist's error
classes:

* a message that cannot be sent, edited or deleted any more → ``ViewStale``
* origin media that cannot be fetched again → ``MediaUnresolvable``
* lost connectivity (connection resets, timeouts) → ``TransportFatal``, after
  asking the bot to shut down so a supervisor restarts the process.
"""

import asyncio
import sys
from typing import Callable, List, Optional

import aiohttp
import discord

from exceptions import MediaUnresolvable, TransportFatal, ViewStale
from models import MessageRef, ViewRole
from render import Control
from views.actions import build_view
import helpers

Controls = Optional[List[List[Control]]]


class Transport:
    """Message primitives the core needs from a chat platform."""

    async def send_text(
        self, channel_id: int, text: str, controls: Controls = None, *, role: str = ViewRole.LIKE_BAR
    ) -> MessageRef:
        """Send a message.  Raises ``ViewStale`` if it could not be delivered."""
        raise NotImplementedError

    async def edit(self, ref: MessageRef, text: str, controls: Controls = None) -> None:
        """Replace a message's text and controls.  Raises ``ViewStale``."""
        raise NotImplementedError

    async def delete(self, ref: MessageRef) -> bool:
        """Delete a message.  Returns ``False`` if it was already gone."""
        raise NotImplementedError

    async def copy_media(self, origin: MessageRef, channel_id: int, caption: str) -> MessageRef:
        """Re-send the media of ``origin``.

        Raises ``MediaUnresolvable`` if the origin media is gone and
        ``ViewStale`` if the target channel refused the copy.
        """
        raise NotImplementedError

    async def notify(self, channel_id: int, text: str, delay: float) -> None:
        """Send a short notice that removes itself after ``delay`` seconds."""
        raise NotImplementedError

    async def delete_later(self, ref: MessageRef, delay: float) -> None:
        await asyncio.sleep(delay)
        await self.delete(ref)


_CONNECTIVITY_ERRORS = (
    aiohttp.ClientConnectionError,
    asyncio.TimeoutError,
    discord.ConnectionClosed,
    discord.GatewayNotFound,
)


class DiscordTransport(Transport):
    def __init__(self, client: discord.Client, *, on_fatal: Optional[Callable[[BaseException], None]] = None) -> None:
        self.client = client
        self._on_fatal = on_fatal

    def _fatal(self, exc: BaseException) -> TransportFatal:
        print(f"[transport] Lost connection to Discord: {exc!r}", file=sys.stderr)
        if self._on_fatal is not None:
            self._on_fatal(exc)
        return TransportFatal(str(exc))

    async def _channel(self, channel_id: int) -> discord.abc.Messageable:
        channel = self.client.get_channel(channel_id)
        if channel is None:
            channel = await self.client.fetch_channel(channel_id)
        return channel  # type: ignore[return-value]

    async def send_text(
        self, channel_id: int, text: str, controls: Controls = None, *, role: str = ViewRole.LIKE_BAR
    ) -> MessageRef:
        try:
            channel = await self._channel(channel_id)
            msg = await channel.send(text, view=build_view(controls))
        except _CONNECTIVITY_ERRORS as exc:
            raise self._fatal(exc) from exc
        except discord.HTTPException as exc:
            raise ViewStale(f"could not send to {channel_id}: {exc}") from exc
        return MessageRef(msg.channel.id, msg.id, role)

    async def edit(self, ref: MessageRef, text: str, controls: Controls = None) -> None:
        try:
            channel = await self._channel(ref.chat_id)
            partial = channel.get_partial_message(ref.message_id)  # type: ignore[attr-defined]
            await partial.edit(content=text, view=build_view(controls))
        except _CONNECTIVITY_ERRORS as exc:
            raise self._fatal(exc) from exc
        except discord.HTTPException as exc:
            raise ViewStale(f"{ref.chat_id}/{ref.message_id}: {exc}") from exc

    async def delete(self, ref: MessageRef) -> bool:
        try:
            channel = await self._channel(ref.chat_id)
            await channel.get_partial_message(ref.message_id).delete()  # type: ignore[attr-defined]
        except _CONNECTIVITY_ERRORS as exc:
            raise self._fatal(exc) from exc
        except discord.NotFound:
            return False
        except discord.HTTPException as exc:
            # Missing permissions on a user's message and similar; nothing to retry.
            print(f"[transport] Could not delete {ref.chat_id}/{ref.message_id}: {exc}", file=sys.stderr)
            return False
        return True

    async def copy_media(self, origin: MessageRef, channel_id: int, caption: str) -> MessageRef:
        try:
            source = await self._channel(origin.chat_id)
            msg = await source.fetch_message(origin.message_id)  # type: ignore[attr-defined]
            attachment = helpers.first_audio_attachment(msg)
            if attachment is None:
                raise MediaUnresolvable(f"{origin.chat_id}/{origin.message_id} has no audio")
            file = await attachment.to_file()
        except _CONNECTIVITY_ERRORS as exc:
            raise self._fatal(exc) from exc
        except discord.HTTPException as exc:
            raise MediaUnresolvable(f"{origin.chat_id}/{origin.message_id}: {exc}") from exc

        # Past this point the origin is intact; failures belong to the target channel.
        try:
            target = await self._channel(channel_id)
            sent = await target.send(caption, file=file)
        except _CONNECTIVITY_ERRORS as exc:
            raise self._fatal(exc) from exc
        except discord.HTTPException as exc:
            raise ViewStale(f"could not send media to {channel_id}: {exc}") from exc
        return MessageRef(sent.channel.id, sent.id, ViewRole.PREVIEW)

    async def notify(self, channel_id: int, text: str, delay: float) -> None:
        try:
            channel = await self._channel(channel_id)
            msg = await channel.send(text)
        except _CONNECTIVITY_ERRORS as exc:
            raise self._fatal(exc) from exc
        except discord.HTTPException as exc:
            print(f"[transport] Notice failed in {channel_id}: {exc}", file=sys.stderr)
            return
        helpers.spawn(helpers.delete_later(msg, delay))
