"""Service layer for the daybook server."""
