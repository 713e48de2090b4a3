"""Helpers that fold native upstream records into the canonical model."""

from __future__ import annotations

from typing import Any

from claude_action.models.canonical import UNKNOWN_AUTHOR, Author

_STATE_MAP = {
    "opened": "open",
    "open": "open",
    "reopened": "open",
    "closed": "closed",
    "merged": "merged",
    "locked": "closed",
}


def author_from(record: Any, login_key: str = "username", name_key: str = "name") -> Author:
    """Canonical author for an upstream user object, never None."""

    if not isinstance(record, dict):
        return UNKNOWN_AUTHOR
    username = str(record.get(login_key) or "").strip()
    if not username:
        return UNKNOWN_AUTHOR
    display_name = record.get(name_key)
    return Author(username=username, display_name=str(display_name) if display_name else None)


def normalize_state(state: Any) -> str:
    value = str(state or "").strip().lower()
    return _STATE_MAP.get(value, value)


def count_diff_lines(diff: str | None) -> tuple[int, int]:
    """Count added/removed lines of a unified diff, skipping file header lines."""

    if not diff:
        return 0, 0
    additions = 0
    deletions = 0
    in_hunk = False
    for line in diff.split("\n"):
        if line.startswith("@@"):
            in_hunk = True
            continue
        if line.startswith("diff "):
            in_hunk = False
            continue
        if not in_hunk and (line.startswith("+++") or line.startswith("---")):
            continue
        if line.startswith("+"):
            additions += 1
        elif line.startswith("-"):
            deletions += 1
    return additions, deletions


def as_list(payload: Any) -> list[dict[str, Any]]:
    if not isinstance(payload, list):
        return []
    return [row for row in payload if isinstance(row, dict)]
