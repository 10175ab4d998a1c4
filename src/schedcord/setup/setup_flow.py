"""
Controller that drives the setup wizard.

The UI calls one method per user action. Each method takes the actor's lock,
performs whatever Discord or store I/O the step needs, feeds the result into
:func:`~schedcord.setup.state_machine.transition` and returns a
:class:`SetupOutcome` describing what to show next. Validation problems come
back as retryable outcomes; an expired session is deleted and reported.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import FrozenSet, Iterable, List, Optional

from schedcord.datatypes.categories import ALL_CATEGORY_KEYS, get_category
from schedcord.datatypes.discord_datatypes import ChannelID, GuildID, UserID
from schedcord.datatypes.host_servers import hosts_for_category
from schedcord.errors import (
    MissingCapabilityError,
    NotFoundError,
    SessionExpiredError,
    TransientInfraError,
    ValidationError,
)
from schedcord.schedule.ports import (
    CAPABILITY_LABELS,
    REQUIRED_CAPABILITIES,
    ChannelPolicy,
    ConfigStore,
    Transport,
)
from schedcord.schedule.sync_scheduler import SyncScheduler
from schedcord.setup.session_store import SetupSessionStore
from schedcord.setup.state_machine import (
    Cancelled,
    CategoriesSelected,
    ChannelChosen,
    ChannelSelection,
    CommitFailed,
    CommitSucceeded,
    Confirmation,
    Confirmed,
    HostSelection,
    HostsSelected,
    SetupEvent,
    SetupSession,
    merge_tenant,
    transition,
)
from schedcord.util.logger import get_logger

logger = get_logger("setup_flow")

EXPIRED_MESSAGE = "❌ Your setup session has expired. Please run `/schedule` again."


@dataclass(frozen=True, slots=True)
class SetupOutcome:
    """What the UI should show after a setup action.

    Attributes:
        session: Session after the action, ``None`` once it is gone.
        message: Status text for the actor.
        retry: The same step should be offered again.
        advance_delay: Seconds to wait before showing the next step.
        expired: The session was missing or invalid and has been deleted.
    """

    session: Optional[SetupSession]
    message: str
    retry: bool = False
    advance_delay: float = 0.0
    expired: bool = False


@dataclass(frozen=True, slots=True)
class ChannelOptions:
    """Whether the bot can create the schedule channel itself."""

    can_create: bool
    reason: str = ""
    default_name: str = ""


def missing_capability_labels(missing: Iterable[str]) -> str:
    return ", ".join(CAPABILITY_LABELS.get(name, name) for name in sorted(missing))


def manual_instructions(channel_id: ChannelID, missing: FrozenSet[str]) -> str:
    return (
        f"⚠️ I am missing permissions in <#{channel_id}>: **{missing_capability_labels(missing)}**.\n"
        "Open the channel settings, add my role under *Permissions* and allow them, "
        "then press **Retry**."
    )


def prompt_for(session: SetupSession) -> str:
    """Instruction text for the session's current step."""
    state = session.state
    if isinstance(state, ChannelSelection):
        category = get_category(state.category)
        return f"{category.emoji} **{category.name}**: choose the channel the schedule will be posted in."
    if isinstance(state, HostSelection):
        category = get_category(state.category)
        return f"{category.emoji} **{category.name}**: choose the host servers whose runs should be listed."
    if isinstance(state, Confirmation):
        lines = ["**Please confirm your schedule setup:**"]
        for key, channel_id, hosts in session.summary():
            lines.append(f"• **{get_category(key).name}** → <#{channel_id}> ({', '.join(hosts)})")
        return "\n".join(lines)
    return "Select the categories you want schedules for."


class SetupFlow:
    """
    Runs the setup wizard for every actor.

    Args:
        sessions: Store owning the live sessions.
        store: Tenant configuration store written on commit.
        transport: Discord operations (channel creation, permission checks).
        scheduler: Holds its pair locks over the commit and receives a forced
            update after every successful one.
        advance_delay: Pause before moving on after the bot fixed something.
    """

    def __init__(
        self,
        sessions: SetupSessionStore,
        store: ConfigStore,
        transport: Transport,
        scheduler: SyncScheduler,
        advance_delay: float = 2.0,
    ) -> None:
        self.sessions = sessions
        self._store = store
        self._transport = transport
        self._scheduler = scheduler
        self.advance_delay = advance_delay

    # ------------------------------------------------------------------
    # Entry and category selection
    # ------------------------------------------------------------------

    async def start(self, actor_id: UserID, guild_id: GuildID, amending: Optional[bool] = None) -> SetupOutcome:
        """Open a new session; amending defaults to whether the guild is already set up."""
        if amending is None:
            existing = await self._store.get(guild_id)
            amending = existing is not None and existing.setup_complete

        async with self.sessions.lock(actor_id):
            session = self.sessions.create(actor_id, guild_id, amending=amending)
        logger.debug("[SETUP FLOW] User %s started setup in guild %s (amending=%s)", actor_id, guild_id, amending)
        return SetupOutcome(session, prompt_for(session))

    async def select_categories(self, actor_id: UserID, categories: Iterable[str]) -> SetupOutcome:
        """
        Record which categories the actor wants to configure.

        Args:
            actor_id: User running the wizard.
            categories: Category keys in any case; unknown keys are rejected.

        Returns:
            The channel step for the first category, or a retry outcome.
        """
        async with self.sessions.lock(actor_id):
            return self._step(actor_id, CategoriesSelected(tuple(categories)))

    # ------------------------------------------------------------------
    # Channel selection
    # ------------------------------------------------------------------

    async def channel_options(self, guild_id: GuildID, category: str) -> ChannelOptions:
        """
        Decide whether the bot can create the category's channel itself.

        Args:
            guild_id: Guild the channel would be created in.
            category: Category key, used for the default channel name.

        Returns:
            Options with a reason when creation is not possible. A guild the
            bot cannot inspect right now yields ``can_create=False``.
        """
        default_name = get_category(category).default_channel_name
        try:
            standing = await self._transport.bot_standing(guild_id)
        except (NotFoundError, TransientInfraError) as exc:
            logger.warning("[SETUP FLOW] Could not read bot standing in guild %s: %s", guild_id, exc)
            return ChannelOptions(False, f"I could not check my permissions in this server: {exc}", default_name)
        if not standing.manage_channels:
            return ChannelOptions(False, "I need the **Manage Channels** permission to create channels.", default_name)
        if not standing.role_high_enough:
            return ChannelOptions(
                False, "My role must be moved above the lowest role to create channels.", default_name
            )
        return ChannelOptions(True, "", default_name)

    async def create_channel(self, actor_id: UserID, category: str) -> SetupOutcome:
        """Create the category's default read-only channel and use it."""
        async with self.sessions.lock(actor_id):
            session = self._current(actor_id, ChannelSelection(category))
            if session is None:
                return self._expire(actor_id)

            options = await self.channel_options(session.guild_id, category)
            if not options.can_create:
                return SetupOutcome(session, f"❌ {options.reason}", retry=True)

            policy = ChannelPolicy(
                read_only=True,
                topic=f"Upcoming {get_category(category).name} runs, kept up to date automatically.",
            )
            try:
                channel_id = await self._transport.create_channel(session.guild_id, options.default_name, policy)
            except (MissingCapabilityError, NotFoundError, TransientInfraError) as exc:
                logger.warning("[SETUP FLOW] Channel creation failed in guild %s: %s", session.guild_id, exc)
                return SetupOutcome(session, f"❌ Could not create the channel: {exc}", retry=True)

            logger.info("[SETUP FLOW] Created #%s (%s) in guild %s", options.default_name, channel_id, session.guild_id)
            outcome = self._step(actor_id, ChannelChosen(category, channel_id))
            return replace(
                outcome,
                message=f"✅ Created <#{channel_id}>.\n{outcome.message}",
                advance_delay=self.advance_delay,
            )

    async def choose_existing_channel(
        self, actor_id: UserID, category: str, channel_id: ChannelID
    ) -> SetupOutcome:
        """Use an existing channel, fixing the bot's permissions there when possible."""
        async with self.sessions.lock(actor_id):
            return await self._use_existing_channel(actor_id, category, channel_id)

    async def retry_permissions(self, actor_id: UserID, category: str) -> SetupOutcome:
        """Check the remembered channel again after the actor fixed its permissions."""
        async with self.sessions.lock(actor_id):
            session = self._current(actor_id, ChannelSelection(category))
            if session is None or session.pending_channel is None:
                return self._expire(actor_id)
            return await self._use_existing_channel(actor_id, category, session.pending_channel)

    async def _use_existing_channel(
        self, actor_id: UserID, category: str, channel_id: ChannelID
    ) -> SetupOutcome:
        session = self._current(actor_id, ChannelSelection(category))
        if session is None:
            return self._expire(actor_id)

        try:
            held = await self._transport.check_capabilities(channel_id)
        except NotFoundError:
            return SetupOutcome(session, "❌ That channel no longer exists. Please pick another one.", retry=True)
        except TransientInfraError as exc:
            return SetupOutcome(session, f"❌ Could not check the channel: {exc}", retry=True)

        missing = REQUIRED_CAPABILITIES - held
        if not missing:
            return self._step(actor_id, ChannelChosen(category, channel_id))

        session = replace(session, pending_channel=channel_id)
        self.sessions.put(session)

        try:
            standing = await self._transport.bot_standing(session.guild_id)
            can_manage = await self._transport.can_manage_permissions(channel_id)
        except NotFoundError:
            return SetupOutcome(session, "❌ I can no longer see that channel. Please pick another one.", retry=True)
        except TransientInfraError as exc:
            logger.warning("[SETUP FLOW] Could not inspect channel %s: %s", channel_id, exc)
            return SetupOutcome(session, f"❌ Could not check the channel: {exc}", retry=True)

        if not (can_manage and standing.role_high_enough and standing.role_id is not None):
            return SetupOutcome(session, manual_instructions(channel_id, missing), retry=True)

        try:
            await self._transport.grant_capabilities(channel_id, standing.role_id, REQUIRED_CAPABILITIES)
        except (MissingCapabilityError, NotFoundError, TransientInfraError) as exc:
            logger.warning("[SETUP FLOW] Could not grant permissions in channel %s: %s", channel_id, exc)
            return SetupOutcome(
                session,
                f"❌ I could not update the channel permissions.\n{manual_instructions(channel_id, missing)}",
                retry=True,
            )

        logger.info("[SETUP FLOW] Granted %s in channel %s", missing_capability_labels(missing), channel_id)
        outcome = self._step(actor_id, ChannelChosen(category, channel_id))
        return replace(
            outcome,
            message=f"✅ Permissions fixed in <#{channel_id}>.\n{outcome.message}",
            advance_delay=self.advance_delay,
        )

    # ------------------------------------------------------------------
    # Hosts, confirmation, cancel
    # ------------------------------------------------------------------

    def host_options(self, category: str) -> List[str]:
        """Host servers that run ``category``, in display order."""
        return hosts_for_category(category)

    async def select_hosts(self, actor_id: UserID, category: str, hosts: Iterable[str]) -> SetupOutcome:
        """
        Record the host servers for the category being configured.

        Args:
            actor_id: User running the wizard.
            category: Category the hosts belong to; must be the current step.
            hosts: Host names, at least one, each running ``category``.

        Returns:
            The next category's channel step or the confirmation step, or a
            retry outcome when the selection is invalid.
        """
        async with self.sessions.lock(actor_id):
            return self._step(actor_id, HostsSelected(category, tuple(hosts)))

    async def confirm(self, actor_id: UserID, guild_name: str = "") -> SetupOutcome:
        """Commit the session to the store and trigger an immediate sync."""
        async with self.sessions.lock(actor_id):
            session = self.sessions.get(actor_id)
            if session is None:
                return self._expire(actor_id)
            try:
                session = transition(session, Confirmed())
            except SessionExpiredError:
                return self._expire(actor_id)

            try:
                # every pair of the guild: save rewrites the whole record
                async with self._scheduler.hold_pairs(session.guild_id, ALL_CATEGORY_KEYS):
                    existing = await self._store.get(session.guild_id)
                    tenant = merge_tenant(existing, session, guild_name)
                    await self._store.save(tenant)
            except SessionExpiredError:
                return self._expire(actor_id)
            except (TransientInfraError, ValidationError) as exc:
                logger.error("[SETUP FLOW] Failed to save setup for guild %s: %s", session.guild_id, exc)
                session = transition(session, CommitFailed(str(exc)))
                self.sessions.put(session)
                return SetupOutcome(session, "❌ Saving your configuration failed. Please try again.", retry=True)

            session = transition(session, CommitSucceeded())
            self._scheduler.force_update_in_background(session.guild_id)
            self.sessions.delete(actor_id)

        logger.info(
            "[SETUP FLOW] Setup %s for guild %s: %s",
            "amended" if session.amending else "completed", session.guild_id, ", ".join(session.categories),
        )
        channels = ", ".join(f"<#{channel_id}>" for _, channel_id, _ in session.summary())
        return SetupOutcome(session, f"✅ Setup complete! Schedules will appear in {channels} shortly.")

    async def cancel(self, actor_id: UserID) -> SetupOutcome:
        """
        Abandon the actor's session without touching the store.

        Returns:
            A terminal outcome; an expired outcome when there was no session.
        """
        async with self.sessions.lock(actor_id):
            session = self.sessions.get(actor_id)
            if session is None:
                return self._expire(actor_id)
            session = transition(session, Cancelled())
            self.sessions.delete(actor_id)
        return SetupOutcome(session, "Setup cancelled. Nothing was changed.")

    # ------------------------------------------------------------------
    # Helpers (callers hold the actor lock)
    # ------------------------------------------------------------------

    def _current(self, actor_id: UserID, expected_state: object) -> Optional[SetupSession]:
        session = self.sessions.get(actor_id)
        if session is None or session.state != expected_state:
            return None
        return session

    def _expire(self, actor_id: UserID) -> SetupOutcome:
        self.sessions.delete(actor_id)
        return SetupOutcome(None, EXPIRED_MESSAGE, expired=True)

    def _step(self, actor_id: UserID, event: SetupEvent) -> SetupOutcome:
        session = self.sessions.get(actor_id)
        if session is None:
            return self._expire(actor_id)
        try:
            updated = transition(session, event)
        except SessionExpiredError as exc:
            logger.debug("[SETUP FLOW] Session for user %s invalidated: %s", actor_id, exc)
            return self._expire(actor_id)
        except ValidationError as exc:
            return SetupOutcome(session, f"❌ {exc}", retry=True)

        self.sessions.put(updated)
        return SetupOutcome(updated, prompt_for(updated))
