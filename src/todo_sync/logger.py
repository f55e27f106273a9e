"""Logging setup for the CLI and the MCP server.

The CLI logs to stderr, optionally mirrored to a file.  The MCP server
must keep stdout free for JSON-RPC, so it logs to a file only.
"""

import json
import logging
import os
import sys

DEFAULT_MCP_LOG_FILE = "/tmp/todo-sync-mcp.log"

_DATEFMT = "%Y-%m-%d %H:%M:%S"
_QUIET_LOGGERS = ("urllib3", "requests", "charset_normalizer")


class JsonFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, msg.

    Records logged with ``extra={"path": ...}`` carry the todo file
    path as a ``path`` field; exception text goes to ``exc``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        path = getattr(record, "path", None)
        if path:
            entry["path"] = path
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _formatter(debug_format: str, with_name: bool) -> logging.Formatter:
    if debug_format == "json":
        return JsonFormatter(datefmt=_DATEFMT)
    name = " %(name)s" if with_name else ""
    return logging.Formatter(
        f"[%(asctime)s] [%(levelname)s]{name} %(message)s", datefmt=_DATEFMT
    )


def resolve_level(mode: str, debug: bool, level: str | None) -> int:
    """Pick the root level: ``debug`` > LOG_LEVEL > config > mode default.

    Unknown level names fall back to INFO.
    """
    if debug:
        return logging.DEBUG
    default = level or ("WARNING" if mode == "mcp" else "INFO")
    name = os.getenv("LOG_LEVEL", default).upper()
    value = logging.getLevelName(name)
    return value if isinstance(value, int) else logging.INFO


def setup_logging(
    mode: str = "cli",
    debug: bool = False,
    log_file: str | None = None,
    debug_format: str = "text",
    level: str | None = None,
    config_log_file: str | None = None,
) -> None:
    """
    Configure the root logger for *mode*.

    Args:
        mode: "mcp" for file-only logging, "cli" for stderr logging.
        debug: Force DEBUG regardless of any other level source.
        log_file: Log file path.  In MCP mode it overrides LOG_FILE; in
            CLI mode it adds a file next to stderr.
        debug_format: "text" or "json".
        level: Level name from the ``logging`` config section.
        config_log_file: File from the ``logging`` config section.  Used when
            *log_file* is not given and, in MCP mode, LOG_FILE is unset.

    Environment variables:
        LOG_LEVEL: DEBUG, INFO, WARNING or ERROR.
        LOG_FILE: MCP log file (default: /tmp/todo-sync-mcp.log).
    """
    log_level = resolve_level(mode, debug, level)

    handlers: list[logging.Handler] = []
    if mode == "mcp":
        path = (
            log_file
            or os.getenv("LOG_FILE")
            or config_log_file
            or DEFAULT_MCP_LOG_FILE
        )
        handler: logging.Handler = logging.FileHandler(path, mode="a")
        handler.setFormatter(_formatter(debug_format, with_name=True))
        handlers.append(handler)
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(_formatter(debug_format, with_name=False))
        handlers.append(handler)
        mirror_path = log_file or config_log_file
        if mirror_path:
            mirror = logging.FileHandler(mirror_path, mode="a")
            mirror.setFormatter(_formatter(debug_format, with_name=True))
            handlers.append(mirror)

    logging.basicConfig(level=log_level, handlers=handlers)

    if log_level != logging.DEBUG:
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
