"""Interactive setup wizard shown by ``/schedule``.

One :class:`SetupWizardView` follows an actor through every step. It rebuilds
its components from the :class:`~schedcord.setup.setup_flow.SetupOutcome`
returned by the flow, so the view itself keeps no wizard state.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import discord

from schedcord.datatypes.categories import CATEGORIES, get_category
from schedcord.datatypes.discord_datatypes import ChannelID, GuildID, UserID
from schedcord.ratelimit.admission_controller import AdmissionController
from schedcord.setup.setup_flow import ChannelOptions, SetupFlow, SetupOutcome
from schedcord.setup.state_machine import CategorySelection, ChannelSelection, Confirmation, HostSelection
from schedcord.util.logger import get_logger

logger = get_logger("setup_ui")


class SetupWizardView(discord.ui.View):
    """Components for the current setup step of one actor."""

    def __init__(
        self,
        flow: SetupFlow,
        admission: AdmissionController,
        actor_id: UserID,
        guild_id: GuildID,
        guild_name: str = "",
        *,
        timeout_seconds: int = 900,
    ):
        super().__init__(timeout=timeout_seconds)
        self.flow = flow
        self.admission = admission
        self.actor_id = actor_id
        self.guild_id = guild_id
        self.guild_name = guild_name
        self.outcome: Optional[SetupOutcome] = None
        self.channel_options: Optional[ChannelOptions] = None

    async def refresh_items(self, outcome: SetupOutcome) -> None:
        """Rebuild the components for the step ``outcome`` leaves the session in."""
        self.outcome = outcome
        self.clear_items()

        session = outcome.session
        if session is None or session.is_terminal:
            self.stop()
            return

        state = session.state
        if isinstance(state, CategorySelection):
            self.add_item(CategorySelect())
        elif isinstance(state, ChannelSelection):
            self.channel_options = await self.flow.channel_options(self.guild_id, state.category)
            self.add_item(ExistingChannelSelect(state.category))
            self.add_item(CreateChannelButton(state.category, self.channel_options))
            if outcome.retry and session.pending_channel is not None:
                self.add_item(RetryPermissionsButton(state.category))
        elif isinstance(state, HostSelection):
            self.add_item(HostSelect(state.category, self.flow.host_options(state.category)))
        elif isinstance(state, Confirmation):
            self.add_item(ConfirmButton())
        self.add_item(CancelButton())

    async def admit(self, interaction: discord.Interaction, kind: str) -> bool:
        """Reject other users and throttled clicks before any work happens."""
        if interaction.user is None or interaction.user.id != self.actor_id:
            await interaction.response.send_message("This setup belongs to someone else.", ephemeral=True)
            return False

        result = self.admission.check_interaction(self.actor_id, kind)
        if not result:
            await interaction.response.send_message(
                f"⏳ Slow down! Try again in {result.seconds_remaining}s.", ephemeral=True
            )
            return False
        return True

    async def apply(self, interaction: discord.Interaction, outcome: SetupOutcome) -> None:  # pragma: no cover - requires Discord runtime
        """Show ``outcome``, pausing on the status line when the flow asks for it."""
        await self.refresh_items(outcome)
        view = None if self.is_finished() else self

        if outcome.advance_delay > 0 and view is not None:
            status, _, _ = outcome.message.partition("\n")
            await interaction.response.edit_message(content=status, view=None)
            await asyncio.sleep(outcome.advance_delay)
            await interaction.edit_original_response(content=outcome.message, view=view)
            return

        await interaction.response.edit_message(content=outcome.message, view=view)

    async def on_timeout(self) -> None:  # pragma: no cover - relies on Discord timers
        await self.flow.cancel(self.actor_id)
        if self.message is not None:
            try:
                await self.message.edit(content="Setup timed out. Run `/schedule` to start again.", view=None)
            except discord.HTTPException:
                logger.debug("[SETUP UI] Could not edit timed out setup message")


class CategorySelect(discord.ui.Select):
    def __init__(self):
        options = [
            discord.SelectOption(label=category.name, value=key, emoji=category.emoji or None)
            for key, category in CATEGORIES.items()
        ]
        super().__init__(
            placeholder="Select schedule categories",
            min_values=1,
            max_values=len(options),
            options=options,
            row=0,
        )

    async def callback(self, interaction: discord.Interaction) -> None:  # pragma: no cover - requires Discord runtime
        view: SetupWizardView = self.view  # type: ignore[assignment]
        if not await view.admit(interaction, "setup_categories"):
            return
        await view.apply(interaction, await view.flow.select_categories(view.actor_id, self.values))


class ExistingChannelSelect(discord.ui.Select):
    def __init__(self, category: str):
        self.category = category
        super().__init__(
            select_type=discord.ComponentType.channel_select,
            channel_types=[discord.ChannelType.text],
            placeholder=f"Use an existing channel for {get_category(category).name}",
            min_values=1,
            max_values=1,
            row=0,
        )

    async def callback(self, interaction: discord.Interaction) -> None:  # pragma: no cover - requires Discord runtime
        view: SetupWizardView = self.view  # type: ignore[assignment]
        if not await view.admit(interaction, "setup_channel"):
            return
        channel_id = ChannelID(self.values[0].id)
        outcome = await view.flow.choose_existing_channel(view.actor_id, self.category, channel_id)
        await view.apply(interaction, outcome)


class CreateChannelButton(discord.ui.Button):
    def __init__(self, category: str, options: ChannelOptions):
        self.category = category
        super().__init__(
            label=f"Create #{options.default_name}",
            style=discord.ButtonStyle.success,
            emoji="➕",
            disabled=not options.can_create,
            row=1,
        )

    async def callback(self, interaction: discord.Interaction) -> None:  # pragma: no cover - requires Discord runtime
        view: SetupWizardView = self.view  # type: ignore[assignment]
        if not await view.admit(interaction, "setup_create_channel"):
            return
        await view.apply(interaction, await view.flow.create_channel(view.actor_id, self.category))


class RetryPermissionsButton(discord.ui.Button):
    def __init__(self, category: str):
        self.category = category
        super().__init__(label="Retry", style=discord.ButtonStyle.primary, emoji="🔄", row=1)

    async def callback(self, interaction: discord.Interaction) -> None:  # pragma: no cover - requires Discord runtime
        view: SetupWizardView = self.view  # type: ignore[assignment]
        if not await view.admit(interaction, "setup_retry"):
            return
        await view.apply(interaction, await view.flow.retry_permissions(view.actor_id, self.category))


class HostSelect(discord.ui.Select):
    def __init__(self, category: str, hosts: list[str]):
        self.category = category
        super().__init__(
            placeholder=f"Select hosts for {get_category(category).name}",
            min_values=1,
            max_values=len(hosts),
            options=[discord.SelectOption(label=name, value=name) for name in hosts],
            row=0,
        )

    async def callback(self, interaction: discord.Interaction) -> None:  # pragma: no cover - requires Discord runtime
        view: SetupWizardView = self.view  # type: ignore[assignment]
        if not await view.admit(interaction, "setup_hosts"):
            return
        await view.apply(interaction, await view.flow.select_hosts(view.actor_id, self.category, self.values))


class ConfirmButton(discord.ui.Button):
    def __init__(self):
        super().__init__(label="Confirm", style=discord.ButtonStyle.success, emoji="✅", row=1)

    async def callback(self, interaction: discord.Interaction) -> None:  # pragma: no cover - requires Discord runtime
        view: SetupWizardView = self.view  # type: ignore[assignment]
        if not await view.admit(interaction, "setup_confirm"):
            return
        await view.apply(interaction, await view.flow.confirm(view.actor_id, view.guild_name))


class CancelButton(discord.ui.Button):
    def __init__(self):
        super().__init__(label="Cancel", style=discord.ButtonStyle.secondary, emoji="❌", row=4)

    async def callback(self, interaction: discord.Interaction) -> None:  # pragma: no cover - requires Discord runtime
        view: SetupWizardView = self.view  # type: ignore[assignment]
        if not await view.admit(interaction, "setup_cancel"):
            return
        await view.apply(interaction, await view.flow.cancel(view.actor_id))
