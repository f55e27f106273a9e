"""File handler module: path validation and encoding-aware reads.

Used by the ``import`` command to load a plain-text todo list from disk
regardless of the encoding it was saved in, and by the Dropbox client to
decode downloaded files.
"""

import logging
from pathlib import Path

from charset_normalizer import from_bytes

from todo_sync.core.async_utils import run_sync

logger = logging.getLogger(__name__)

# Larger files are almost certainly not todo lists.
MAX_IMPORT_BYTES = 5 * 1024 * 1024

# =============================================================================
# Path Validation
# =============================================================================


def validate_file_path(path_str: str) -> Path:
    """Validate and resolve an input file path.

    Relative paths are resolved against the current directory and ``~``
    is expanded.

    Raises:
        ValueError: If the path doesn't exist, is not a file, or is too
            large to be a todo list.
    """
    resolved = Path(path_str).expanduser().resolve()
    if not resolved.exists():
        raise ValueError(f"File not found: {path_str}")
    if not resolved.is_file():
        raise ValueError(f"Path is not a file: {path_str}")
    if resolved.stat().st_size > MAX_IMPORT_BYTES:
        raise ValueError(
            f"File too large to import: {path_str} "
            f"(limit {MAX_IMPORT_BYTES // (1024 * 1024)} MB)"
        )
    return resolved


# =============================================================================
# Decoding
# =============================================================================


def _detect(raw: bytes) -> tuple[str, str]:
    result = from_bytes(raw).best()
    if result is None:
        return (raw.decode("utf-8", errors="replace"), "utf-8")
    encoding = result.encoding
    # ascii is a strict subset of utf-8
    if encoding == "ascii":
        encoding = "utf-8"
    return (str(result), encoding)


def decode_text(raw: bytes) -> tuple[str, str]:
    """Decode bytes of unknown encoding with charset-normalizer.

    Defaults to UTF-8 for empty input or when detection fails.  A UTF-8
    byte order mark is dropped.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    if not raw:
        return ("", "utf-8")
    content, encoding = _detect(raw)
    return (content.lstrip("﻿"), encoding)


def decode_remote_text(raw: bytes) -> str:
    """Decode a downloaded todo file.

    Dropbox copies are written as UTF-8 by every todo.txt client we
    know of, so strict UTF-8 is tried first; anything else goes through
    detection instead of failing the sync pass.
    """
    try:
        return raw.decode("utf-8").lstrip("﻿")
    except UnicodeDecodeError:
        content, encoding = decode_text(raw)
        logger.warning("Remote file is not UTF-8; decoded as %s", encoding)
        return content


# =============================================================================
# File Read
# =============================================================================


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file with automatic encoding detection.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    return decode_text(path.read_bytes())


async def read_file_async(path_str: str) -> tuple[str, str, Path]:
    """Async wrapper: validate path, read file with encoding detection.

    Returns:
        Tuple of (content_string, detected_encoding, resolved_path).

    Raises:
        ValueError: If path validation fails.
    """
    resolved = await run_sync(validate_file_path, path_str)
    content, encoding = await run_sync(read_file_with_encoding, resolved)
    return (content, encoding, resolved)
