"""Key sanitization for branch names and user search text."""

import re

# Characters that break document paths or dotted-key lookups.
_UNSAFE_KEY_CHARS = re.compile(r"[.\/$#\[\]\x00-\x1f\x7f]")


def branch_key(name: str | None) -> str:
    """Return the map key used for a branch name.

    Applied identically on write (reconciliation) and read (dashboards), so
    "Gangnam.2" and "Gangnam_2" share a key. The original name is kept in
    the stored value.
    """
    if not name:
        return "_unknown"
    return _UNSAFE_KEY_CHARS.sub("_", name.strip())


LIKE_ESCAPE = "\\"


def contains_pattern(text: str) -> str:
    """Case-folded ``LIKE`` pattern matching ``text`` literally anywhere.

    ``%`` and ``_`` typed by a user are escaped with ``LIKE_ESCAPE``.
    """
    escaped = (
        text.strip().lower()
        .replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )
    return f"%{escaped}%"
