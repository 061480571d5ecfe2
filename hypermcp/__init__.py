"""An MCP server that serves tools from configurable built-in plugins."""

__version__ = "0.1.0"