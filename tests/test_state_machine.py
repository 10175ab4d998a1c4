from datetime import timedelta

import pytest

from fakes import NOW, make_tenant
from schedcord.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, UserID
from schedcord.errors import SessionExpiredError, ValidationError
from schedcord.setup.state_machine import (
    Aborted,
    Cancelled,
    CategoriesSelected,
    CategorySelection,
    ChannelChosen,
    ChannelSelection,
    CommitFailed,
    CommitSucceeded,
    Committed,
    Confirmation,
    Confirmed,
    HostSelection,
    HostsSelected,
    SetupSession,
    merge_tenant,
    transition,
)


def new_session(**kwargs) -> SetupSession:
    return SetupSession(actor_id=UserID(5), guild_id=GuildID(1), created_at=NOW, updated_at=NOW, **kwargs)


def confirmed_session(choices) -> SetupSession:
    session = transition(new_session(amending=True), CategoriesSelected(tuple(choices)))
    for key, (channel_id, hosts) in choices.items():
        session = transition(session, ChannelChosen(key, ChannelID(channel_id)))
        session = transition(session, HostsSelected(key, tuple(hosts)))
    assert session.state == Confirmation()
    return session


def test_two_categories_are_visited_in_order() -> None:
    session = transition(new_session(), CategoriesSelected(("BA", "FT")))
    visited = [session.state]

    for key, channel, host in (("BA", 10, "CAFE"), ("FT", 11, "CEM")):
        session = transition(session, ChannelChosen(key, ChannelID(channel)))
        visited.append(session.state)
        session = transition(session, HostsSelected(key, (host,)))
        visited.append(session.state)

    assert visited == [
        ChannelSelection("BA"),
        HostSelection("BA"),
        ChannelSelection("FT"),
        HostSelection("FT"),
        Confirmation(),
    ]
    assert session.summary() == [("BA", ChannelID(10), ("CAFE",)), ("FT", ChannelID(11), ("CEM",))]


def test_selected_order_is_kept_and_normalized() -> None:
    session = transition(new_session(), CategoriesSelected(("drs", "BA", "DRS")))

    assert session.categories == ("DRS", "BA")
    assert session.state == ChannelSelection("DRS")
    assert session.next_category("DRS") == "BA"
    assert session.next_category("BA") is None


def test_transition_does_not_mutate_input() -> None:
    session = new_session()

    updated = transition(session, CategoriesSelected(("BA",)), now=NOW + timedelta(seconds=5))

    assert session.state == CategorySelection()
    assert session.categories == ()
    assert updated.updated_at == NOW + timedelta(seconds=5)


@pytest.mark.parametrize("categories", [(), ("XX",)])
def test_invalid_category_selection_raises_validation_error(categories) -> None:
    with pytest.raises(ValidationError) as excinfo:
        transition(new_session(), CategoriesSelected(categories))
    assert not isinstance(excinfo.value, SessionExpiredError)


def test_unknown_host_raises_validation_error() -> None:
    session = transition(new_session(), CategoriesSelected(("BA",)))
    session = transition(session, ChannelChosen("BA", ChannelID(10)))

    with pytest.raises(ValidationError):
        transition(session, HostsSelected("BA", ("Lego Steppers",)))
    with pytest.raises(ValidationError):
        transition(session, HostsSelected("BA", ()))


def test_hosts_are_deduplicated() -> None:
    session = transition(new_session(), CategoriesSelected(("BA",)))
    session = transition(session, ChannelChosen("BA", ChannelID(10)))

    session = transition(session, HostsSelected("BA", ("CAFE", "ABBA+", "CAFE")))

    assert session.hosts["BA"] == ("CAFE", "ABBA+")


def test_hosts_before_categories_expire_session() -> None:
    with pytest.raises(SessionExpiredError):
        transition(new_session(), HostsSelected("BA", ("CAFE",)))


def test_channel_for_other_category_expires_session() -> None:
    session = transition(new_session(), CategoriesSelected(("BA", "FT")))

    with pytest.raises(SessionExpiredError):
        transition(session, ChannelChosen("FT", ChannelID(10)))


def test_commit_events_only_from_confirmation() -> None:
    session = confirmed_session({"BA": (10, ["CAFE"])})

    failed = transition(session, CommitFailed("disk full"))
    assert failed.state == Confirmation()
    assert failed.last_error == "disk full"

    assert transition(failed, Confirmed()).state == Confirmation()
    committed = transition(failed, CommitSucceeded())
    assert committed.state == Committed()
    assert committed.last_error == ""
    assert committed.is_terminal

    with pytest.raises(SessionExpiredError):
        transition(new_session(), CommitSucceeded())


def test_cancel_aborts_from_any_live_state() -> None:
    session = transition(new_session(), CategoriesSelected(("BA",)))

    aborted = transition(session, Cancelled())

    assert aborted.state == Aborted()
    assert aborted.is_terminal
    with pytest.raises(SessionExpiredError):
        transition(aborted, Cancelled())


def test_merge_keeps_categories_not_in_session() -> None:
    existing = make_tenant(1, {"FT": (50, ["CEM"]), "BA": (40, ["CAFE"])})
    existing.categories["FT"].last_hash = "ft-hash"
    session = confirmed_session({"BA": (41, ["ABBA+"])})

    merged = merge_tenant(existing, session, "Guild")

    assert merged.categories["FT"].channel_id == ChannelID(50)
    assert merged.categories["FT"].hosts == ["CEM"]
    assert merged.categories["FT"].last_hash == "ft-hash"
    assert merged.categories["BA"].channel_id == ChannelID(41)
    assert merged.categories["BA"].hosts == ["ABBA+"]
    assert merged.guild_name == "Guild"
    assert merged.setup_complete is True
    assert existing.categories["BA"].channel_id == ChannelID(40)


def test_merge_resets_publish_state_only_when_channel_changes() -> None:
    existing = make_tenant(1, {"BA": (40, ["CAFE"]), "FT": (50, ["CEM"])})
    for key in ("BA", "FT"):
        existing.categories[key].last_hash = f"{key}-hash"
        existing.categories[key].message_id = MessageID(900)
        existing.categories[key].color = 0x123456
    session = confirmed_session({"BA": (40, ["ABBA+"]), "FT": (51, ["CEM"])})

    merged = merge_tenant(existing, session)

    assert merged.categories["BA"].last_hash == "BA-hash"
    assert merged.categories["BA"].message_id == MessageID(900)
    assert merged.categories["FT"].last_hash is None
    assert merged.categories["FT"].message_id is None
    assert merged.categories["FT"].color == 0x123456


def test_merge_creates_tenant_when_missing() -> None:
    session = confirmed_session({"DRS": (60, ["Lego Steppers"])})

    merged = merge_tenant(None, session, "New Guild")

    assert merged.guild_id == GuildID(1)
    assert merged.auto_update is True
    assert merged.configured_categories() == ["DRS"]


def test_merge_requires_confirmation_state() -> None:
    session = transition(new_session(), CategoriesSelected(("BA",)))

    with pytest.raises(SessionExpiredError):
        merge_tenant(None, session)
