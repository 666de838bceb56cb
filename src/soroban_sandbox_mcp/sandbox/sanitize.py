"""Directory name sanitization for caller-supplied project names.

The result is always safe to use as a single path segment:
- Non-empty (falls back to ``"project"``)
- No path separators, traversal sequences or control characters
- Not a Windows reserved device name (CON, PRN, AUX, NUL, COM1-9, LPT1-9)
- At most 50 characters, leaving room for the uniqueness suffix
"""

from __future__ import annotations

import re
import unicodedata
from typing import Final

DEFAULT_NAME: Final[str] = "project"
MAX_NAME_LENGTH: Final[int] = 50

WINDOWS_RESERVED_NAMES: Final[frozenset[str]] = frozenset(
    {"CON", "PRN", "AUX", "NUL"}
    | {f"COM{i}" for i in range(1, 10)}
    | {f"LPT{i}" for i in range(1, 10)}
)

# Separators and characters Windows forbids in file names
_SEPARATOR_PATTERN: Final[re.Pattern[str]] = re.compile(r'[/\\<>:"|?*]+')
_CONTROL_PATTERN: Final[re.Pattern[str]] = re.compile(r"[\x00-\x1f\x7f]")
_DISALLOWED_PATTERN: Final[re.Pattern[str]] = re.compile(r"[^A-Za-z0-9._-]")
_DOT_RUN_PATTERN: Final[re.Pattern[str]] = re.compile(r"\.{2,}")
_UNDERSCORE_RUN_PATTERN: Final[re.Pattern[str]] = re.compile(r"_{2,}")
_EDGE_CHARS: Final[str] = "._- \t\r\n"


def is_reserved_name(name: str) -> bool:
    """Check whether a name collides with a Windows reserved device name.

    Windows treats ``CON.txt`` like ``CON``, so the stem before the first
    dot is checked as well.
    """
    upper = name.upper()
    return upper in WINDOWS_RESERVED_NAMES or upper.split(".", 1)[0] in WINDOWS_RESERVED_NAMES


def sanitize_name(raw: str | None, fallback: str = DEFAULT_NAME) -> str:
    """Turn an arbitrary string into a filesystem-safe directory name.

    Never raises. Unicode is reduced to its ASCII approximation; anything
    that cannot be represented is dropped.

    Args:
        raw: Caller-supplied name (may be None or not a string)
        fallback: Name to use when nothing safe remains

    Returns:
        Safe, non-empty name of at most ``MAX_NAME_LENGTH`` characters
    """
    if not isinstance(raw, str):
        return fallback

    name = unicodedata.normalize("NFKD", raw).encode("ascii", "ignore").decode("ascii")
    name = _CONTROL_PATTERN.sub("", name)
    name = _DOT_RUN_PATTERN.sub("", name)
    name = name.strip(_EDGE_CHARS + "/\\")
    name = _SEPARATOR_PATTERN.sub("_", name)
    name = _DISALLOWED_PATTERN.sub("", name)
    name = _DOT_RUN_PATTERN.sub("", name)
    name = _UNDERSCORE_RUN_PATTERN.sub("_", name)
    name = name.strip(_EDGE_CHARS)

    if not name or is_reserved_name(name):
        return fallback

    name = name[:MAX_NAME_LENGTH].rstrip(_EDGE_CHARS)
    if not name or is_reserved_name(name):
        return fallback
    return name
