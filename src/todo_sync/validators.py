"""
Input validation for todo file names and task text.

Validators return ``(is_valid, error_message)`` tuples; callers decide
whether to raise.  ``normalize_file_name`` turns what a user types into
the Dropbox path used as the file's identity.
"""

_FORBIDDEN_NAME_CHARS = set('/\\<>:"|?*')


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "File name")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def validate_file_name(name: str) -> tuple[bool, str]:
    """
    Validate a user-supplied todo file name.

    Accepts names with or without the ``.txt`` suffix and with or
    without a single leading slash.

    Returns:
        Tuple of (is_valid, error_message).
    """
    if not name or not name.strip():
        return (False, format_validation_error("File name", "cannot be empty"))

    cleaned = name.strip().removeprefix("/")
    if not cleaned or cleaned.lower() == ".txt":
        return (False, format_validation_error("File name", "cannot be empty"))

    bad = sorted(_FORBIDDEN_NAME_CHARS.intersection(cleaned))
    if bad:
        return (
            False,
            format_validation_error(
                "File name", f"cannot contain {' '.join(bad)}"
            ),
        )

    if cleaned.startswith(".") or ".." in cleaned:
        return (
            False,
            format_validation_error(
                "File name", "cannot start with '.' or contain '..'"
            ),
        )

    if len(cleaned) > 255:
        return (
            False,
            format_validation_error("File name", "is longer than 255 characters"),
        )

    return (True, "")


def normalize_file_name(name: str) -> str:
    """Return the Dropbox path for a file name.

    Trims whitespace, appends ``.txt`` when missing (case-insensitive),
    and prefixes a single ``/``.

    Raises:
        ValueError: If the name fails ``validate_file_name``.
    """
    is_valid, error = validate_file_name(name)
    if not is_valid:
        raise ValueError(error)
    cleaned = name.strip().removeprefix("/")
    if not cleaned.lower().endswith(".txt"):
        cleaned += ".txt"
    return f"/{cleaned}"


def validate_task_text(text: str) -> tuple[bool, str]:
    """
    Validate the text of a single task.

    A task is one line of the file, so embedded newlines are rejected.
    """
    if not text or not text.strip():
        return (False, format_validation_error("Task text", "cannot be empty"))
    if "\n" in text or "\r" in text:
        return (
            False,
            format_validation_error("Task text", "cannot contain line breaks"),
        )
    return (True, "")
