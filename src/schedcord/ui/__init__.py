"""
Discord-facing presentation for Schedcord.

- **schedule_embed.py**: Renders a category's runs as embeds, one per host server.
- **setup_ui.py**: The interactive setup wizard behind ``/schedule``.
"""
