"""
Status transition rule and identifier checks.
"""

from __future__ import annotations

import re
from typing import Any, Optional

from bugtracker.types import BugStatus

# Allowed status changes. Same-status updates are handled separately.
ALLOWED_TRANSITIONS: dict[BugStatus, frozenset[BugStatus]] = {
    BugStatus.OPEN: frozenset(
        {BugStatus.IN_PROGRESS, BugStatus.RESOLVED, BugStatus.CLOSED}
    ),
    BugStatus.IN_PROGRESS: frozenset(
        {BugStatus.OPEN, BugStatus.RESOLVED, BugStatus.CLOSED}
    ),
    BugStatus.RESOLVED: frozenset(
        {BugStatus.IN_PROGRESS, BugStatus.CLOSED, BugStatus.OPEN}
    ),
    # Reopening is the only way out of closed.
    BugStatus.CLOSED: frozenset({BugStatus.OPEN}),
}

BUG_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")


def _coerce_status(value: Any) -> Optional[BugStatus]:
    try:
        return BugStatus(value)
    except (ValueError, TypeError):
        return None


def is_valid_status_transition(current: Any, new: Any) -> bool:
    """
    Return True if a bug may move from ``current`` to ``new``.

    Unknown statuses (including None) on either side are never valid.
    """
    current_status = _coerce_status(current)
    new_status = _coerce_status(new)
    if current_status is None or new_status is None:
        return False
    if current_status == new_status:
        return True
    return new_status in ALLOWED_TRANSITIONS[current_status]


def is_valid_bug_id(value: Any) -> bool:
    return isinstance(value, str) and bool(BUG_ID_PATTERN.match(value))
