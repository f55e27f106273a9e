"""Tool registration and permission gating for the MCP server.

An operator can limit what an agent may do to the todo lists with a
permissions file naming any of:

- ``TODO_VIEW``: read tasks, tracked files and sync status.
- ``TODO_EDIT``: add tasks.
- ``TODO_SYNC``: run sync passes against Dropbox.

Tools the file does not fully grant are never registered, so the agent
does not even see them in ``list_tools``.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import mcp.types as types

from ...exceptions import CredentialError

if TYPE_CHECKING:
    from ...app import Services

logger = logging.getLogger(__name__)

KNOWN_PERMISSIONS = frozenset({"TODO_VIEW", "TODO_EDIT", "TODO_SYNC"})


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """One MCP tool: its definition, what it needs, and who runs it.

    Attributes:
        tool: Name, description and input schema sent to the client.
        permissions: Every permission the tool needs.  Empty means the
            tool is always registered.
        handler: ``async (services, args) -> CallToolResult``.
    """

    tool: types.Tool
    permissions: frozenset[str]
    handler: Callable[[Services, dict], Awaitable[types.CallToolResult]]

    def permitted(self, granted: frozenset[str] | None) -> bool:
        if granted is None or not self.permissions:
            return True
        return self.permissions <= granted


class ToolRegistry:
    """The tools this server instance exposes.

    Args:
        specs: Candidate tools, in listing order.
        allowed_permissions: Granted permissions, or ``None`` for all.
    """

    def __init__(
        self,
        specs: list[ToolSpec],
        allowed_permissions: frozenset[str] | None = None,
    ):
        self._specs: dict[str, ToolSpec] = {
            spec.tool.name: spec
            for spec in specs
            if spec.permitted(allowed_permissions)
        }

    def list_tools(self) -> list[types.Tool]:
        return [spec.tool for spec in self._specs.values()]

    def tool_count(self) -> int:
        return len(self._specs)

    async def call_tool(
        self,
        name: str,
        arguments: dict | None,
        services: Services,
    ) -> types.CallToolResult:
        """Run tool *name* and turn failures into agent-readable errors.

        Unknown names and missing files or task ids map to ``not_found``,
        a missing login to ``not_connected``, bad input to
        ``validation_error`` and anything else to ``server_error``.

        Raises:
            ValueError: If *name* is not registered here.
        """
        from .errors import build_error_response

        spec = self._specs.get(name)
        if spec is None:
            raise ValueError(f"Unknown tool: {name}")
        try:
            return await spec.handler(services, arguments or {})
        except KeyError as e:
            missing = e.args[0] if e.args else ""
            return build_error_response(
                "not_found",
                f"Not found: {missing}",
                "Use todo_files to list tracked files, or todo_list to see task ids.",
            )
        except CredentialError as e:
            return build_error_response(
                "not_connected",
                str(e),
                "Ask the user to run 'todo-sync login' in a terminal, then retry.",
            )
        except ValueError as e:
            return build_error_response(
                "validation_error", str(e), "Fix the arguments and call the tool again."
            )
        except Exception as e:
            logger.exception("Tool %s failed", name)
            return build_error_response(
                "server_error",
                str(e),
                "Retry later; check the server log if the problem persists.",
            )


def load_permissions_file(path: str | Path) -> frozenset[str]:
    """Read granted permissions from *path*.

    One or more names per line, separated by whitespace or commas.
    ``#`` starts a comment, also at the end of a line::

        # agent may look but not touch
        TODO_VIEW   # lists and status

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValueError: On an unknown name, or when nothing is granted.
    """
    path = Path(path)
    granted: set[str] = set()
    lines = path.read_text(encoding="utf-8").splitlines()
    for number, raw in enumerate(lines, 1):
        for name in raw.split("#", 1)[0].replace(",", " ").split():
            if name not in KNOWN_PERMISSIONS:
                raise ValueError(
                    f"Unknown permission {name!r} on line {number} of {path}; "
                    f"expected one of {', '.join(sorted(KNOWN_PERMISSIONS))}"
                )
            granted.add(name)
    if not granted:
        raise ValueError(f"{path} grants no permissions")
    return frozenset(granted)
