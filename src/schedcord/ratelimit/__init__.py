"""Per-user admission control for commands and component interactions."""
