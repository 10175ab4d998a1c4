"""
Setup wizard states, events and the pure transition function.

A session walks CategorySelection -> (ChannelSelection(c) -> HostSelection(c))
for every selected category in order -> Confirmation -> Committed. Cancelling
from any state aborts. :func:`transition` never performs I/O; the
:class:`~schedcord.setup.setup_flow.SetupFlow` controller does that and feeds
the results back in as events.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, Optional, Sequence, Tuple, Union

from schedcord.datatypes.categories import normalize_categories
from schedcord.datatypes.discord_datatypes import ChannelID, GuildID, UserID
from schedcord.datatypes.host_servers import validate_hosts
from schedcord.datatypes.schedule_datatypes import CategoryConfig, TenantConfig
from schedcord.errors import SessionExpiredError, ValidationError


# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class CategorySelection:
    pass


@dataclass(frozen=True, slots=True)
class ChannelSelection:
    category: str


@dataclass(frozen=True, slots=True)
class HostSelection:
    category: str


@dataclass(frozen=True, slots=True)
class Confirmation:
    pass


@dataclass(frozen=True, slots=True)
class Committed:
    pass


@dataclass(frozen=True, slots=True)
class Aborted:
    pass


SetupState = Union[CategorySelection, ChannelSelection, HostSelection, Confirmation, Committed, Aborted]
TERMINAL_STATES = (Committed, Aborted)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class CategoriesSelected:
    categories: Tuple[str, ...]


@dataclass(frozen=True, slots=True)
class ChannelChosen:
    category: str
    channel_id: ChannelID


@dataclass(frozen=True, slots=True)
class HostsSelected:
    category: str
    hosts: Tuple[str, ...]


@dataclass(frozen=True, slots=True)
class Confirmed:
    pass


@dataclass(frozen=True, slots=True)
class CommitSucceeded:
    pass


@dataclass(frozen=True, slots=True)
class CommitFailed:
    reason: str = ""


@dataclass(frozen=True, slots=True)
class Cancelled:
    pass


SetupEvent = Union[
    CategoriesSelected, ChannelChosen, HostsSelected, Confirmed, CommitSucceeded, CommitFailed, Cancelled
]


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class SetupSession:
    """One actor's in-progress configuration flow.

    ``channels`` and ``hosts`` are keyed by category; ``pending_channel``
    remembers a channel whose permissions still need fixing so a retry can
    re-check it.
    """

    actor_id: UserID
    guild_id: GuildID
    amending: bool = False
    state: SetupState = field(default_factory=CategorySelection)
    categories: Tuple[str, ...] = ()
    channels: Dict[str, ChannelID] = field(default_factory=dict)
    hosts: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    pending_channel: Optional[ChannelID] = None
    last_error: str = ""
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def is_terminal(self) -> bool:
        return isinstance(self.state, TERMINAL_STATES)

    def next_category(self, category: str) -> Optional[str]:
        """Category following ``category`` in the selected order, if any."""
        index = self.categories.index(category)
        if index + 1 < len(self.categories):
            return self.categories[index + 1]
        return None

    def summary(self) -> Sequence[Tuple[str, Optional[ChannelID], Tuple[str, ...]]]:
        """(category, channel, hosts) triples collected so far."""
        return [(key, self.channels.get(key), self.hosts.get(key, ())) for key in self.categories]


def _expired(session: SetupSession, event: SetupEvent) -> SessionExpiredError:
    return SessionExpiredError(
        f"{type(event).__name__} is not valid in {type(session.state).__name__}; "
        "this setup session has expired, please run /schedule again."
    )


def transition(session: SetupSession, event: SetupEvent, now: Optional[datetime] = None) -> SetupSession:
    """Return the session that results from applying ``event``.

    Raises:
        ValidationError: The event carries an invalid choice. The session is
            unchanged and the same step can be retried.
        SessionExpiredError: The event does not fit the current state, e.g.
            hosts arriving before any category was selected.
    """
    now = now or _utcnow()
    state = session.state

    if isinstance(event, Cancelled):
        if session.is_terminal:
            raise _expired(session, event)
        return replace(session, state=Aborted(), pending_channel=None, updated_at=now)

    if isinstance(state, CategorySelection) and isinstance(event, CategoriesSelected):
        categories = tuple(normalize_categories(event.categories))
        if not categories:
            raise ValidationError("Select at least one category.")
        return replace(
            session,
            state=ChannelSelection(categories[0]),
            categories=categories,
            channels={},
            hosts={},
            pending_channel=None,
            last_error="",
            updated_at=now,
        )

    if isinstance(state, ChannelSelection) and isinstance(event, ChannelChosen):
        if event.category != state.category:
            raise _expired(session, event)
        if event.channel_id is None:
            raise ValidationError("Please choose a channel.")
        channels = dict(session.channels)
        channels[event.category] = event.channel_id
        return replace(
            session,
            state=HostSelection(event.category),
            channels=channels,
            pending_channel=None,
            last_error="",
            updated_at=now,
        )

    if isinstance(state, HostSelection) and isinstance(event, HostsSelected):
        if event.category != state.category or event.category not in session.channels:
            raise _expired(session, event)
        hosts = dict(session.hosts)
        hosts[event.category] = tuple(validate_hosts(event.category, event.hosts))
        following = session.next_category(event.category)
        next_state: SetupState = ChannelSelection(following) if following else Confirmation()
        return replace(session, state=next_state, hosts=hosts, last_error="", updated_at=now)

    if isinstance(state, Confirmation) and isinstance(event, Confirmed):
        return replace(session, updated_at=now)

    if isinstance(state, Confirmation) and isinstance(event, CommitSucceeded):
        return replace(session, state=Committed(), last_error="", updated_at=now)

    if isinstance(state, Confirmation) and isinstance(event, CommitFailed):
        return replace(session, last_error=event.reason, updated_at=now)

    raise _expired(session, event)


# ---------------------------------------------------------------------------
# Commit merge
# ---------------------------------------------------------------------------

def merge_tenant(
    existing: Optional[TenantConfig],
    session: SetupSession,
    guild_name: str = "",
    now: Optional[datetime] = None,
) -> TenantConfig:
    """Merge a finished session into the tenant record, field by field.

    Categories the session did not touch keep everything. A re-configured
    category keeps its colour, and keeps its publish state only while the
    channel stays the same.
    """
    if not isinstance(session.state, Confirmation):
        raise SessionExpiredError("Setup can only be committed from the confirmation step.")

    tenant = existing.copy() if existing is not None else TenantConfig(guild_id=session.guild_id)
    tenant.guild_name = guild_name or tenant.guild_name
    tenant.setup_complete = True
    tenant.updated_at = now or _utcnow()

    for key in session.categories:
        channel_id = session.channels.get(key)
        hosts = session.hosts.get(key)
        if channel_id is None or not hosts:
            raise SessionExpiredError(f"Category {key} is missing a channel or hosts; please run /schedule again.")

        previous = tenant.categories.get(key) or CategoryConfig()
        same_channel = previous.channel_id == channel_id
        tenant.categories[key] = CategoryConfig(
            channel_id=channel_id,
            hosts=list(hosts),
            color=previous.color,
            last_hash=previous.last_hash if same_channel else None,
            message_id=previous.message_id if same_channel else None,
        )

    return tenant
