"""
Enumerations shared by the store, schemas and routes.
"""

from __future__ import annotations

from enum import Enum


class BugStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class BugPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


DEFAULT_STATUS = BugStatus.OPEN
DEFAULT_PRIORITY = BugPriority.MEDIUM
DEFAULT_ASSIGNEE = "Unassigned"
