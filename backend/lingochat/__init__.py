"""Lingo Chat realtime backend."""
