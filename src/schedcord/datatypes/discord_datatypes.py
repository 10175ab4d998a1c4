"""
Typed aliases for Discord snowflake identifiers.

Snowflakes are plain 64-bit integers on the wire. The aliases below keep the
different kinds apart for the type checker while staying ``int`` at runtime,
so they can be used directly as dictionary keys and SQLite parameters.
"""

from __future__ import annotations

from typing import NewType

GuildID = NewType("GuildID", int)
ChannelID = NewType("ChannelID", int)
MessageID = NewType("MessageID", int)
UserID = NewType("UserID", int)
RoleID = NewType("RoleID", int)
