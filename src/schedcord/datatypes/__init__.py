"""
Core data types for Schedcord.

- **discord_datatypes.py**: Typed ids for guilds, channels, messages, users and roles.
- **categories.py**: The fixed registry of schedule categories.
- **host_servers.py**: The registry of host servers runs are announced in.
- **schedule_datatypes.py**: Runs and the per-guild tenant configuration.
"""
