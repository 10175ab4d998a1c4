"""Schedcord: multi-guild run schedules for Discord."""
