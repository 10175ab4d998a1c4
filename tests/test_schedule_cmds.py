from contextlib import asynccontextmanager
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from fakes import FakeStore, make_tenant
from schedcord.cog.commands import schedule_cmds
from schedcord.datatypes.discord_datatypes import GuildID
from schedcord.ratelimit.admission_controller import AdmissionController
from schedcord.schedule.sync_scheduler import CycleReport, UnitOutcome


@asynccontextmanager
async def no_pairs_held(guild_id, categories):
    yield


class Ctx:
    def __init__(self, guild_id=1, manage_guild=True, user_id=5):
        self.guild_id = guild_id
        self.guild = SimpleNamespace(name="Guild") if guild_id else None
        self.user = SimpleNamespace(id=user_id, guild_permissions=SimpleNamespace(manage_guild=manage_guild))
        self.respond = AsyncMock()
        self.defer = AsyncMock()
        self.send_followup = AsyncMock()


def make_cog(*tenants):
    scheduler = MagicMock()
    scheduler.hold_pairs = MagicMock(side_effect=no_pairs_held)
    scheduler.force_update = AsyncMock(return_value=CycleReport(published=1, unchanged=1))
    scheduler.regenerate = AsyncMock(return_value=UnitOutcome.PUBLISHED)
    services = SimpleNamespace(
        store=FakeStore(*tenants),
        scheduler=scheduler,
        admission=AdmissionController(),
        flow=MagicMock(),
    )
    return schedule_cmds.ScheduleCog(SimpleNamespace(), services), services


def test_setup_adds_cog():
    captured = {}

    def fake_add_cog(cog):
        captured["cog"] = cog

    schedule_cmds.setup(SimpleNamespace(add_cog=fake_add_cog), SimpleNamespace())
    assert isinstance(captured["cog"], schedule_cmds.ScheduleCog)


@pytest.mark.asyncio
async def test_refresh_requires_guild_context():
    cog, _ = make_cog()
    ctx = Ctx(guild_id=None)

    await schedule_cmds.ScheduleCog.schedule_refresh.callback(cog, ctx)

    ctx.respond.assert_awaited_once_with("This command can only be used in a server.", ephemeral=True)


@pytest.mark.asyncio
async def test_refresh_requires_manage_permission():
    cog, services = make_cog(make_tenant(1, {"BA": (10, ["CAFE"])}))
    ctx = Ctx(manage_guild=False)

    await schedule_cmds.ScheduleCog.schedule_refresh.callback(cog, ctx)

    ctx.respond.assert_awaited_once_with("You need Manage Server permission.", ephemeral=True)
    services.scheduler.force_update.assert_not_awaited()


@pytest.mark.asyncio
async def test_refresh_runs_forced_update_and_reports():
    cog, services = make_cog(make_tenant(1, {"BA": (10, ["CAFE"])}))
    ctx = Ctx()

    await schedule_cmds.ScheduleCog.schedule_refresh.callback(cog, ctx)

    services.scheduler.force_update.assert_awaited_once_with(GuildID(1))
    message = ctx.send_followup.await_args.args[0]
    assert "1 updated" in message
    assert "1 already current" in message


@pytest.mark.asyncio
async def test_refresh_reports_failures():
    cog, services = make_cog(make_tenant(1, {"BA": (10, ["CAFE"])}))
    services.scheduler.force_update.return_value = CycleReport(failed=1)
    ctx = Ctx()

    await schedule_cmds.ScheduleCog.schedule_refresh.callback(cog, ctx)

    assert "1 failed" in ctx.send_followup.await_args.args[0]


@pytest.mark.asyncio
async def test_refresh_is_rate_limited_per_user():
    cog, services = make_cog(make_tenant(1, {"BA": (10, ["CAFE"])}))
    first, second = Ctx(), Ctx()

    await schedule_cmds.ScheduleCog.schedule_refresh.callback(cog, first)
    await schedule_cmds.ScheduleCog.schedule_refresh.callback(cog, second)

    assert services.scheduler.force_update.await_count == 1
    assert "on cooldown" in second.respond.await_args.args[0]


@pytest.mark.asyncio
async def test_refresh_without_setup_points_to_schedule():
    cog, services = make_cog()
    ctx = Ctx()

    await schedule_cmds.ScheduleCog.schedule_refresh.callback(cog, ctx)

    assert "/schedule" in ctx.respond.await_args.args[0]
    services.scheduler.force_update.assert_not_awaited()


@pytest.mark.asyncio
async def test_autoupdate_toggles_store_flag():
    cog, services = make_cog(make_tenant(1, {"BA": (10, ["CAFE"])}))
    ctx = Ctx()

    await schedule_cmds.ScheduleCog.schedule_autoupdate.callback(cog, ctx, False)

    assert services.store.tenants[GuildID(1)].auto_update is False
    assert "disabled" in ctx.respond.await_args.args[0]


@pytest.mark.asyncio
async def test_regenerate_unconfigured_category_is_refused():
    cog, services = make_cog(make_tenant(1, {"BA": (10, ["CAFE"])}))
    ctx = Ctx()

    await schedule_cmds.ScheduleCog.schedule_regenerate.callback(cog, ctx, "FT")

    assert "not configured" in ctx.respond.await_args.args[0]
    services.scheduler.regenerate.assert_not_awaited()


@pytest.mark.asyncio
async def test_regenerate_reposts_category():
    cog, services = make_cog(make_tenant(1, {"BA": (10, ["CAFE"])}))
    ctx = Ctx()

    await schedule_cmds.ScheduleCog.schedule_regenerate.callback(cog, ctx, "BA")

    services.scheduler.regenerate.assert_awaited_once_with(GuildID(1), "BA")
    assert "re-posted" in ctx.send_followup.await_args.args[0]


@pytest.mark.parametrize(
    "value, expected",
    [("#5865F2", 0x5865F2), ("5865f2", 0x5865F2), (" #00ff00 ", 0x00FF00), ("default", None), ("Reset", None)],
)
def test_parse_color_accepts_hex_and_reset_words(value, expected):
    assert schedule_cmds.parse_color(value) == expected


@pytest.mark.parametrize("value", ["#12345", "blue", "#GGGGGG", "0x5865F2"])
def test_parse_color_rejects_other_text(value):
    with pytest.raises(ValueError):
        schedule_cmds.parse_color(value)


@pytest.mark.asyncio
async def test_color_sets_override_and_forces_repost():
    tenant = make_tenant(1, {"BA": (10, ["CAFE"])})
    tenant.categories["BA"].last_hash = "published"
    cog, services = make_cog(tenant)
    ctx = Ctx()

    await schedule_cmds.ScheduleCog.schedule_color.callback(cog, ctx, "BA", "#5865F2")

    config = services.store.tenants[GuildID(1)].categories["BA"]
    assert config.color == 0x5865F2
    assert config.last_hash is None
    services.scheduler.hold_pairs.assert_called_once_with(GuildID(1), ["BA"])
    services.scheduler.force_update.assert_awaited_once_with(GuildID(1))
    assert "#5865F2" in ctx.send_followup.await_args.args[0]


@pytest.mark.asyncio
async def test_color_default_clears_override():
    tenant = make_tenant(1, {"BA": (10, ["CAFE"])})
    tenant.categories["BA"].color = 0x123456
    cog, services = make_cog(tenant)
    ctx = Ctx()

    await schedule_cmds.ScheduleCog.schedule_color.callback(cog, ctx, "BA", "default")

    assert services.store.tenants[GuildID(1)].categories["BA"].color is None
    assert "default colour" in ctx.send_followup.await_args.args[0]


@pytest.mark.asyncio
async def test_color_rejects_invalid_value_without_writing():
    cog, services = make_cog(make_tenant(1, {"BA": (10, ["CAFE"])}))
    ctx = Ctx()

    await schedule_cmds.ScheduleCog.schedule_color.callback(cog, ctx, "BA", "blue")

    assert "is not a colour" in ctx.respond.await_args.args[0]
    assert services.store.upserts == []
    services.scheduler.force_update.assert_not_awaited()


@pytest.mark.asyncio
async def test_color_for_unconfigured_category_is_refused():
    cog, services = make_cog(make_tenant(1, {"BA": (10, ["CAFE"])}))
    ctx = Ctx()

    await schedule_cmds.ScheduleCog.schedule_color.callback(cog, ctx, "FT", "#5865F2")

    assert "not configured" in ctx.respond.await_args.args[0]
    assert services.store.upserts == []


@pytest.mark.asyncio
async def test_color_store_failure_is_reported():
    cog, services = make_cog(make_tenant(1, {"BA": (10, ["CAFE"])}))
    services.store.fail_writes = True
    ctx = Ctx()

    await schedule_cmds.ScheduleCog.schedule_color.callback(cog, ctx, "BA", "#5865F2")

    assert "Saving the colour failed" in ctx.send_followup.await_args.args[0]
    services.scheduler.force_update.assert_not_awaited()
