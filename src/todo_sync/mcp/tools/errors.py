"""Error response builders for MCP tool handlers.

Structured errors carry a corrective action so an agent can recover
without human help.
"""

import mcp.types as types

from ...sync.models import SyncPassResult, SyncStatus


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_found, not_connected,
            validation_error, sync_error, server_error)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("not_found", "File /work.txt not found", "Use todo_files to list tracked files.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


def translate_pass_error(result: SyncPassResult) -> types.CallToolResult | None:
    """Turn a failed sync pass into an error response.

    Returns ``None`` for outcomes that are not errors from the agent's
    point of view: a completed pass, an absorbed trigger, or an offline
    pass that left the file pending.
    """
    match result.status:
        case SyncStatus.NOT_CONNECTED:
            return build_error_response(
                "not_connected",
                "Not connected to Dropbox",
                "Ask the user to run 'todo-sync login' in a terminal, then retry.",
            )
        case SyncStatus.ERROR:
            return build_error_response(
                "sync_error",
                result.message or "Unknown error",
                "Check todo_sync_status; retry later if Dropbox is unreachable.",
            )
        case _:
            return None
