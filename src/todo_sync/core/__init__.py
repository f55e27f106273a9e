"""Dropbox client and helpers shared between the CLI and MCP server."""

from .async_utils import run_sync
from .client import DropboxClient

__all__ = ["DropboxClient", "run_sync"]
