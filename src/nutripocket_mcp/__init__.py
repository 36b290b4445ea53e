"""MCP server for meal tracking and WhatsApp messaging."""

__version__ = "0.1.0"
