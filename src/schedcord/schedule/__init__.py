"""
Schedule synchronization engine.

- **ports.py**: Contracts for the store, feed, renderer and transport.
- **change_detector.py**: Content hashing that skips unchanged schedules.
- **sync_scheduler.py**: The periodic, concurrency-bounded sync loop.
"""
