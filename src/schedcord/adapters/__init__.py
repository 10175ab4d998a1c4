"""Adapters binding the engine's ports to Discord."""
