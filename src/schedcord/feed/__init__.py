"""Upstream run feeds."""
