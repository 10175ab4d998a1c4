"""
Persistent tenant configuration.

- **tenant_config_store.py**: Cached, SQLite-backed store of every guild's setup.
- **repositories/**: Row-level access to the configuration tables.
"""
