"""
Utility functions and helpers for Schedcord.

- **logger.py**: Centralized logging configuration with colored console output
  printed through prompt_toolkit, rotating per-session log files, and
  suppression of noisy library loggers (Discord internals, aiohttp, aiosqlite).
"""
