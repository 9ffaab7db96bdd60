"""Persistent key-value store adapters (disk-backed and in-memory)."""
