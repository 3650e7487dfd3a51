"""
Query shaping shared by the bug stores: filters, sort specs and paging.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_SORT = "-createdAt"

# Wire name -> record attribute for fields a listing may be sorted on.
SORTABLE_FIELDS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "title": "title",
    "status": "status",
    "priority": "priority",
    "project": "project",
    "assignedTo": "assigned_to",
    "reportedBy": "reported_by",
}


@dataclass(frozen=True)
class SortKey:
    attribute: str
    descending: bool = False


@dataclass(frozen=True)
class BugFilter:
    """Exact-match criteria; None means the field is not constrained."""

    status: Optional[str] = None
    priority: Optional[str] = None
    project: Optional[str] = None

    def criteria(self) -> dict[str, str]:
        values = {
            "status": self.status,
            "priority": self.priority,
            "project": self.project,
        }
        return {key: value for key, value in values.items() if value}


@dataclass(frozen=True)
class ListQuery:
    filters: BugFilter = field(default_factory=BugFilter)
    sort: tuple[SortKey, ...] = ()
    page: int = 1
    limit: int = 10

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class BugPage:
    items: list
    total: int
    page: int
    limit: int

    @property
    def count(self) -> int:
        return len(self.items)

    @property
    def total_pages(self) -> int:
        return total_pages(self.total, self.limit)


def parse_sort(spec: Optional[str]) -> tuple[SortKey, ...]:
    """
    Parse ``"-createdAt title"`` style sort specs.

    Fields may be separated by whitespace or commas; a leading ``-`` means
    descending. Unknown fields are skipped. An empty spec yields the
    default (newest first).
    """
    if spec is None or not spec.strip():
        spec = DEFAULT_SORT
    keys: list[SortKey] = []
    seen: set[str] = set()
    for token in re.split(r"[\s,]+", spec.strip()):
        if not token:
            continue
        descending = token.startswith("-")
        name = token.lstrip("+-")
        attribute = SORTABLE_FIELDS.get(name)
        if attribute is None:
            logger.debug("Ignoring unknown sort field %r", name)
            continue
        if attribute in seen:
            continue
        seen.add(attribute)
        keys.append(SortKey(attribute=attribute, descending=descending))
    return tuple(keys)


def total_pages(total: int, limit: int) -> int:
    if limit <= 0:
        return 0
    return math.ceil(total / limit)
