"""
Setup wizard.

- **state_machine.py**: States, events and the pure transition function.
- **session_store.py**: Owner of the in-memory, per-user sessions.
- **setup_flow.py**: Controller performing the I/O for each wizard step.
"""
