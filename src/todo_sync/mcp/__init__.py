"""MCP server exposing todo lists and their Dropbox sync to AI agents."""
