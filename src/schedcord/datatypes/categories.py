"""
Fixed registry of schedule categories.

Each category is one content class with its own schedule channel per guild.
The registry is built at import time and never mutated.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

from schedcord.errors import ValidationError


@dataclass(frozen=True, slots=True)
class Category:
    """Static description of one schedule category.

    Attributes:
        key: Short identifier used in storage and component ids (e.g. ``"BA"``).
        name: Human readable display name.
        color: Default accent colour as a 24-bit RGB integer.
        run_types: Sub-type labels in display priority order.
        query_filter: SQL predicate over the upstream runs table selecting
            this category's runs.
        default_channel_name: Name used when the bot creates the channel.
        emoji: Emoji shown next to the name in menus.
    """

    key: str
    name: str
    color: int
    run_types: Tuple[str, ...]
    query_filter: str
    default_channel_name: str
    emoji: str = ""

    def run_type_priority(self, run_type: str) -> int:
        """Sort key for a sub-type; unknown labels sort after known ones."""
        try:
            return self.run_types.index(run_type)
        except ValueError:
            return len(self.run_types)


CATEGORIES: Dict[str, Category] = {
    "BA": Category(
        key="BA",
        name="Baldesion Arsenal",
        color=0xED4245,
        run_types=("Fresh", "Learning", "Standard", "Normal", "Reclear", "Non-Standard", "Frag", "Meme"),
        query_filter="DRS = 0 AND FT = 0",
        default_channel_name="ba-schedule",
        emoji="⚔️",
    ),
    "FT": Category(
        key="FT",
        name="Forked Tower",
        color=0xED4245,
        run_types=("Fresh/AnyProg", "Dead Stars", "Bridges", "Marble Dragon", "Magitaur", "Clear", "Reclear"),
        query_filter="FT = 1",
        default_channel_name="ft-schedule",
        emoji="🗼",
    ),
    "DRS": Category(
        key="DRS",
        name="Delubrum Reginae Savage",
        color=0xED4245,
        run_types=("Fresh/AnyProg", "Queen's Guard", "Trinity Avowed", "The Queen", "Reclear"),
        query_filter="DRS = 1",
        default_channel_name="drs-schedule",
        emoji="👑",
    ),
}

ALL_CATEGORY_KEYS: Tuple[str, ...] = tuple(CATEGORIES)


def is_valid_category(key: str) -> bool:
    return key in CATEGORIES


def get_category(key: str) -> Category:
    """Return the category for ``key`` or raise :class:`ValidationError`."""
    try:
        return CATEGORIES[key]
    except KeyError:
        raise ValidationError(f"Unknown category {key!r}") from None


def normalize_categories(keys: Iterable[str]) -> List[str]:
    """Upper-case, validate and de-duplicate ``keys`` while keeping their order."""
    seen: List[str] = []
    for raw in keys:
        key = str(raw).strip().upper()
        get_category(key)
        if key not in seen:
            seen.append(key)
    return seen
