"""Data models for the daybook server."""
