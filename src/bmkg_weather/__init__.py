"""BMKG Weather API and MCP server package."""

__version__ = "0.1.0"
