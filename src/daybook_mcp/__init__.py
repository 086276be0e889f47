"""
Daybook MCP - a dated journal served over the Model Context Protocol.

Notes are stored one directory per day inside a git work tree, served from an
in-memory cache, and mirrored to the work tree's remote on a debounced and
periodic schedule.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("daybook-mcp")
except PackageNotFoundError:
    __version__ = "0.3.0"
