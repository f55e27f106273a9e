"""MCP tool handlers for todo lists.

Handlers take the application ``Services`` bundle and return structured
``CallToolResult`` responses.
"""

from .errors import build_error_response, translate_pass_error
from .registry import ToolRegistry, ToolSpec, load_permissions_file
from .todo import TODO_SPECS

ALL_SPECS: list[ToolSpec] = list(TODO_SPECS)

__all__ = [
    "build_error_response",
    "translate_pass_error",
    # Registry
    "ToolSpec",
    "ToolRegistry",
    "load_permissions_file",
    # Spec lists
    "ALL_SPECS",
    "TODO_SPECS",
]
