"""Transport adapters for the daybook server."""
