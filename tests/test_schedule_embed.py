from dataclasses import replace
from datetime import timedelta

import discord

from fakes import NOW, make_run, make_tenant
from schedcord.datatypes.categories import get_category
from schedcord.ui.schedule_embed import (
    MAX_EMBEDS_PER_MESSAGE,
    EmbedScheduleRenderer,
    build_empty_embed,
    format_run_group,
    group_by_run_type,
)


def renderer() -> EmbedScheduleRenderer:
    return EmbedScheduleRenderer(clock=lambda: NOW)


def test_groups_follow_category_priority_then_name() -> None:
    runs = [
        make_run("1", run_type="Reclear"),
        make_run("2", run_type="Zany"),
        make_run("3", run_type="Fresh"),
        make_run("4", run_type="Alpha"),
        make_run("5", run_type="Fresh"),
    ]

    groups = group_by_run_type(get_category("BA"), runs)

    assert [run_type for run_type, _ in groups] == ["Fresh", "Reclear", "Alpha", "Zany"]
    assert [run.run_id for run in groups[0][1]] == ["3", "5"]


def test_run_group_lines() -> None:
    fresh = make_run("1", created_hours_ago=2)
    old = make_run("2", created_hours_ago=50)
    fresh = replace(fresh, data_center="Aether", reference_link="https://example.invalid/run")

    text = format_run_group("Fresh", [fresh, old], NOW)

    lines = text.splitlines()
    assert lines[0] == "### Fresh"
    assert lines[1] == f"● 🆕 <t:{int(fresh.start.timestamp())}:F>"
    assert lines[2] == " Data Center: Aether"
    assert lines[3] == "[Run Info](https://example.invalid/run)"
    assert lines[4] == f"● <t:{int(old.start.timestamp())}:F>"


def test_render_one_embed_per_source_with_runs() -> None:
    tenant = make_tenant(1, {"BA": (10, ["CAFE", "ABBA+", "The Help Lines"])})
    runs = {
        "CAFE": [make_run("1")],
        "ABBA+": [],
        "The Help Lines": [make_run("2", source="The Help Lines")],
    }

    rendered = renderer().render(tenant, "BA", runs)

    embeds = rendered.payload
    assert [embed.title for embed in embeds] == ["CAFE", "The Help Lines"]
    assert embeds[0].url == "https://discord.gg/c-a-f-e"
    assert "Announcements: https://discord.com/channels/750103971187654736/956367612659511406" in embeds[0].description
    assert embeds[0].color.value == get_category("BA").color


def test_render_empty_schedule() -> None:
    tenant = make_tenant(1, {"FT": (10, ["CEM"])})

    rendered = renderer().render(tenant, "FT", {"CEM": []})

    assert len(rendered.payload) == 1
    assert "No runs currently scheduled for the next 3 months." in rendered.payload[0].description
    assert rendered.payload[0].title == build_empty_embed(get_category("FT"), 0).title


def test_tenant_colour_overrides_category_colour() -> None:
    tenant = make_tenant(1, {"BA": (10, ["CAFE"])})
    tenant.categories["BA"].color = 0x3498DB

    rendered = renderer().render(tenant, "BA", {"CAFE": [make_run("1")]})

    assert rendered.payload[0].color == discord.Colour(0x3498DB)


def test_render_caps_embed_count() -> None:
    sources = [f"Host {index}" for index in range(12)]
    tenant = make_tenant(1, {"BA": (10, ["CAFE"])})
    runs = {source: [make_run(source, source=source)] for source in sources}

    rendered = renderer().render(tenant, "BA", runs)

    assert len(rendered.payload) == MAX_EMBEDS_PER_MESSAGE


def test_content_key_is_deterministic_and_tracks_content() -> None:
    tenant = make_tenant(1, {"BA": (10, ["CAFE"])})
    runs = {"CAFE": [make_run("1")]}

    first = renderer().render(tenant, "BA", runs)
    second = renderer().render(tenant, "BA", {"CAFE": [make_run("1")]})
    moved = renderer().render(tenant, "BA", {"CAFE": [make_run("1", hours_ahead=26)]})

    assert first.content_key == second.content_key
    assert first.content_key != moved.content_key


def test_long_descriptions_are_truncated() -> None:
    tenant = make_tenant(1, {"BA": (10, ["CAFE"])})
    runs = {"CAFE": [make_run(str(index), hours_ahead=1 + index) for index in range(400)]}

    rendered = renderer().render(tenant, "BA", runs)

    description = rendered.payload[0].description
    assert len(description) <= 4096
    assert description.endswith("…")


def test_new_badge_uses_renderer_clock() -> None:
    tenant = make_tenant(1, {"BA": (10, ["CAFE"])})
    run = make_run("1", created_hours_ago=29)

    early = EmbedScheduleRenderer(clock=lambda: NOW).render(tenant, "BA", {"CAFE": [run]})
    late = EmbedScheduleRenderer(clock=lambda: NOW + timedelta(hours=2)).render(tenant, "BA", {"CAFE": [run]})

    assert "🆕" in early.payload[0].description
    assert "🆕" not in late.payload[0].description


def test_explicit_now_overrides_renderer_clock() -> None:
    tenant = make_tenant(1, {"BA": (10, ["CAFE"])})
    run = make_run("1", created_hours_ago=29)

    rendered = EmbedScheduleRenderer(clock=lambda: NOW).render(
        tenant, "BA", {"CAFE": [run]}, NOW + timedelta(hours=2)
    )

    assert "🆕" not in rendered.payload[0].description


def test_empty_schedule_text_follows_configured_window_and_interval() -> None:
    tenant = make_tenant(1, {"FT": (10, ["CEM"])})

    rendered = EmbedScheduleRenderer(clock=lambda: NOW, window_days=14, interval=300).render(
        tenant, "FT", {"CEM": []}
    )

    description = rendered.payload[0].description
    assert "for the next 14 days." in description
    assert "every 5 minutes." in description
    assert "3 months" not in description
