"""GitHub OAuth proxy for MCP clients."""

__version__ = "1.0.0"
