"""Validation for user-supplied names that end up as path components."""

from __future__ import annotations

import re

_SAFE_NAME_RE: re.Pattern[str] = re.compile(r"^[a-zA-Z0-9_-]+$")


class UnsafeNameError(ValueError):
    """Raised when a name could escape its directory or create a hidden file."""


def validate_safe_name(name: str, kind: str = "name") -> str:
    """Check that *name* is safe to use as a single file or directory name.

    Only letters, digits, hyphens and underscores are accepted. The name is
    never sanitized: anything else is rejected.

    Args:
        name: Candidate name (network, module, fork...).
        kind: Word used in the error message, e.g. ``"network"``.

    Returns:
        *name*, unchanged.

    Raises:
        UnsafeNameError: If the name is empty, contains ``..``, ``/`` or ``\\``,
            starts with ``.``, or has any other disallowed character.
    """
    if not name or not isinstance(name, str):
        raise UnsafeNameError(f"Invalid {kind} name: must be a non-empty string")

    if ".." in name or "/" in name or "\\" in name:
        raise UnsafeNameError(
            f"Invalid {kind} name: '{name}'\n"
            "  Path traversal sequences are not allowed.\n"
            "  Use only alphanumeric characters, hyphens, and underscores."
        )

    if name.startswith("."):
        raise UnsafeNameError(
            f"Invalid {kind} name: '{name}'\n"
            "  Names cannot start with a dot (.)."
        )

    if not _SAFE_NAME_RE.match(name):
        raise UnsafeNameError(
            f"Invalid {kind} name: '{name}'\n"
            "  Only alphanumeric characters, hyphens (-), and underscores (_) are allowed."
        )

    return name
