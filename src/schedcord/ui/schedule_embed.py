"""Renders a category's runs as Discord embeds, one embed per host server."""

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from typing import Callable, Dict, List, Mapping, Optional, Sequence

import discord

from schedcord.datatypes.categories import Category, get_category
from schedcord.datatypes.host_servers import get_host
from schedcord.datatypes.schedule_datatypes import Run, TenantConfig
from schedcord.schedule.ports import RenderedSchedule

MAX_EMBEDS_PER_MESSAGE = 10
MAX_DESCRIPTION_LENGTH = 4096
NEW_BADGE = "🆕 "


def _truncate(text: str, limit: int = MAX_DESCRIPTION_LENGTH) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + "…"


def group_by_run_type(category: Category, runs: Sequence[Run]) -> List[tuple[str, List[Run]]]:
    """Group runs by sub-type; known types in priority order, then the rest alphabetically."""
    groups: Dict[str, List[Run]] = {}
    for run in runs:
        groups.setdefault(run.run_type or "Unknown", []).append(run)
    ordered = sorted(groups, key=lambda run_type: (category.run_type_priority(run_type), run_type))
    return [(run_type, groups[run_type]) for run_type in ordered]


def format_run_group(run_type: str, runs: Sequence[Run], now: datetime) -> str:
    lines = [f"### {run_type}"]
    for run in runs:
        badge = NEW_BADGE if run.is_new(now) else ""
        lines.append(f"● {badge}<t:{int(run.start.timestamp())}:F>")
        if run.data_center:
            lines.append(f" Data Center: {run.data_center}")
        if run.reference_link:
            lines.append(f"[Run Info]({run.reference_link})")
    return "\n".join(lines)


def build_source_embed(category: Category, source: str, runs: Sequence[Run], color: int, now: datetime) -> discord.Embed:
    host = get_host(source)
    header = ""
    if host is not None:
        link = host.channel_link(category.key)
        if link:
            header = f"Announcements: {link}\n"
        if host.description:
            header += f"-# *{host.description}*\n"

    body = "\n".join(format_run_group(run_type, group, now) for run_type, group in group_by_run_type(category, runs))
    embed = discord.Embed(
        title=source,
        url=host.invite_link if host is not None and host.invite_link else None,
        description=_truncate(header + body),
        color=color,
    )
    return embed


def describe_window(days: int) -> str:
    """Human wording for the fetch window, in months when it divides evenly."""
    if days >= 60 and days % 30 == 0:
        return f"{days // 30} months"
    return f"{days} day" if days == 1 else f"{days} days"


def describe_interval(seconds: float) -> str:
    whole = int(seconds)
    if whole >= 120 and whole % 60 == 0:
        return f"{whole // 60} minutes"
    return f"{whole} second" if whole == 1 else f"{whole} seconds"


def build_empty_embed(category: Category, color: int, window_days: int = 90, interval: float = 60.0) -> discord.Embed:
    return discord.Embed(
        title=f"{category.emoji} {category.name} Runs",
        description=(
            f"No runs currently scheduled for the next {describe_window(window_days)}.\n\n"
            f"*This schedule updates automatically every {describe_interval(interval)}.*"
        ),
        color=color,
    )


class EmbedScheduleRenderer:
    """
    Turns runs into a list of :class:`discord.Embed` plus a content key.

    Args:
        clock: Source of the current UTC time when ``render`` gets no ``now``.
        window_days: Fetch window named in the empty-schedule text.
        interval: Sync interval in seconds named in the empty-schedule text.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        window_days: int = 90,
        interval: float = 60.0,
    ) -> None:
        self._clock = clock
        self.window_days = window_days
        self.interval = interval

    def render(
        self,
        tenant: TenantConfig,
        category: str,
        runs_by_source: Mapping[str, Sequence[Run]],
        now: Optional[datetime] = None,
    ) -> RenderedSchedule:
        info = get_category(category)
        config = tenant.categories.get(category)
        color = config.color if config is not None and config.color is not None else info.color
        now = now or self._clock()

        embeds = [
            build_source_embed(info, source, runs, color, now)
            for source, runs in runs_by_source.items()
            if runs
        ][:MAX_EMBEDS_PER_MESSAGE]
        if not embeds:
            embeds = [build_empty_embed(info, color, self.window_days, self.interval)]

        serialized = json.dumps([embed.to_dict() for embed in embeds], sort_keys=True, default=str)
        content_key = hashlib.blake2b(serialized.encode("utf-8"), digest_size=8).hexdigest()
        return RenderedSchedule(payload=embeds, content_key=content_key)
