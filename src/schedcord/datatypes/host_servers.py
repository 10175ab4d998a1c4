"""
Registry of upstream host servers (the sources runs are announced in).

A host is offered for a category only if it has an announcement channel for
that category.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from schedcord.datatypes.categories import get_category
from schedcord.errors import ValidationError


@dataclass(frozen=True, slots=True)
class HostServer:
    """One upstream community whose run announcements feed the schedules."""

    name: str
    guild_id: int
    invite_link: Optional[str] = None
    description: Optional[str] = None
    channels: Dict[str, int] = field(default_factory=dict)

    def channel_link(self, category: str) -> Optional[str]:
        channel_id = self.channels.get(category)
        if channel_id is None:
            return None
        return f"https://discord.com/channels/{self.guild_id}/{channel_id}"


HOST_SERVERS: Dict[str, HostServer] = {
    server.name: server
    for server in (
        HostServer(
            name="ABBA+",
            guild_id=544997776992501761,
            invite_link="https://discord.gg/abbaffxiv",
            channels={"BA": 994728673133473812, "FT": 1377521610495361054, "DRS": 994802544662564904},
        ),
        HostServer(
            name="CAFE",
            guild_id=750103971187654736,
            invite_link="https://discord.gg/c-a-f-e",
            description="Join or host a Forays raid in Eureka, Bozja/Zadnor, or The Occult Crescent from FFXIV!",
            channels={"BA": 956367612659511406, "FT": 1377808695102279862, "DRS": 1167469922830536704},
        ),
        HostServer(
            name="CEM",
            guild_id=550702475112480769,
            invite_link="https://discord.gg/cem",
            channels={"FT": 1371469177860395039, "DRS": 803636640941342730},
        ),
        HostServer(
            name="Content Achievers",
            guild_id=642628091205779466,
            invite_link="https://discord.gg/FJFxr2U",
            channels={"BA": 940148143310385182, "DRS": 1002244518743117924},
        ),
        HostServer(
            name="Dynamis Field Operations",
            guild_id=1208039470486519818,
            invite_link="https://discord.gg/vjwYEeubeN",
            channels={"BA": 1351065536041324637, "FT": 1208220062326984755, "DRS": 1208220062326984755},
        ),
        HostServer(
            name="Field Op Enjoyers",
            guild_id=1028110201968132116,
            invite_link="https://discord.gg/foexiv",
            channels={"BA": 1029102392601497682, "FT": 1350184451979743362, "DRS": 1029102476156215307},
        ),
        HostServer(
            name="Lego Steppers",
            guild_id=818478021563908116,
            invite_link="https://discord.gg/YKP76AsMw8",
            channels={"DRS": 819233418579017738},
        ),
        HostServer(
            name="Lost Freelancers' Guild",
            guild_id=1344508249642111047,
            invite_link="https://discord.gg/WjBhPSpKKq",
            channels={"FT": 1344512530411946064},
        ),
        HostServer(
            name="The Help Lines",
            guild_id=578708223092326430,
            invite_link="https://discord.gg/thehelplines",
            channels={"BA": 958829775445721168, "FT": 1378164424254292030, "DRS": 1029196207278538842},
        ),
    )
}


def hosts_for_category(category: str) -> List[str]:
    """Names of the hosts that announce runs for ``category``, registry order."""
    get_category(category)
    return [name for name, server in HOST_SERVERS.items() if category in server.channels]


def get_host(name: str) -> Optional[HostServer]:
    return HOST_SERVERS.get(name)


def validate_hosts(category: str, names: Iterable[str]) -> List[str]:
    """Check that every name is a host for ``category``; keep order, drop repeats."""
    valid = set(hosts_for_category(category))
    result: List[str] = []
    for name in names:
        if name not in valid:
            raise ValidationError(f"{name!r} is not a host for {category}")
        if name not in result:
            result.append(name)
    if not result:
        raise ValidationError(f"Select at least one host for {category}")
    return result
