"""Persistent playlist buttons.

Every playlist button carries its action in the ``custom_id``
(``mp:<kind>:<target>[:<arg>]``).  ``ActionButton`` is registered as a
dynamic item, so presses keep working on messages sent before a restart.
"""

from typing import List, Optional

import discord

from models import Action
from render import Control

_STYLES = {
    "primary": discord.ButtonStyle.primary,
    "secondary": discord.ButtonStyle.secondary,
    "success": discord.ButtonStyle.success,
    "danger": discord.ButtonStyle.danger,
}


class ActionButton(
    discord.ui.DynamicItem[discord.ui.Button],
    template=r"mp:(?P<kind>like|type|del|play|page|menu):(?P<target>[^:]+)(?::(?P<arg>[^:]+))?",
):
    def __init__(
        self,
        action: Action,
        *,
        label: Optional[str] = None,
        style: discord.ButtonStyle = discord.ButtonStyle.secondary,
        row: Optional[int] = None,
    ) -> None:
        super().__init__(
            discord.ui.Button(label=label, style=style, custom_id=action.encode(), row=row)
        )
        self.action = action

    @classmethod
    async def from_custom_id(
        cls,
        interaction: discord.Interaction,
        item: discord.ui.Button,
        match,
    ) -> "ActionButton":
        action = Action(kind=match["kind"], target=match["target"], arg=match["arg"])
        return cls(action, label=item.label, style=item.style, row=item.row)

    async def callback(self, interaction: discord.Interaction) -> None:
        cog = interaction.client.get_cog("TracksCog")  # type: ignore[attr-defined]
        if cog is None:
            await interaction.response.send_message("The playlist is restarting, try again shortly.", ephemeral=True)
            return
        await cog.handle_action(interaction, self.action)


def build_view(controls: Optional[List[List[Control]]]) -> Optional[discord.ui.View]:
    """Turn rendered control rows into a timeout-less view.

    ``None`` means no buttons; passed to ``Message.edit`` it also clears them.
    """
    if not controls:
        return None
    view = discord.ui.View(timeout=None)
    for row_idx, row in enumerate(controls[:5]):
        for control in row[:5]:
            view.add_item(
                ActionButton(
                    Action.parse(control.action),
                    label=control.label[:80],
                    style=_STYLES.get(control.style, discord.ButtonStyle.secondary),
                    row=row_idx,
                )
            )
    return view
