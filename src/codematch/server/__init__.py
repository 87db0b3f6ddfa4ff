"""MCP server exposing entity extraction tools."""
