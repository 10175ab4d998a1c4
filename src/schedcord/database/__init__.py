"""
Database package for Schedcord.

- **db_connection.py**: One long-lived aiosqlite connection per database file
  with serialised write transactions.
- **db_schema.py**: Tables for tenant configuration and the upstream runs table.
"""
