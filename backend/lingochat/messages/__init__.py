"""Message history and read-state REST endpoints."""
