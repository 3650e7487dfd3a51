"""
Bug record stores: an in-memory implementation for development and tests,
and a SQLAlchemy-backed one for Postgres (or SQLite in tests).
"""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

from sqlalchemy import Column, Float, String, Text, create_engine, func, select
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from bugtracker.query import BugPage, ListQuery, SortKey
from bugtracker.types import (
    DEFAULT_ASSIGNEE,
    DEFAULT_PRIORITY,
    DEFAULT_STATUS,
    BugPriority,
    BugStatus,
)

TOP_PROJECTS_LIMIT = 5

# Attributes an update may touch. id and timestamps are system-managed.
MUTABLE_FIELDS = (
    "title",
    "description",
    "status",
    "priority",
    "assigned_to",
    "reported_by",
    "steps_to_reproduce",
    "project",
)


class BugStore(Protocol):
    """Interface for bug persistence."""

    def create_bug(self, fields: dict) -> "BugRecord":
        ...

    def get_bug(self, bug_id: str) -> Optional["BugRecord"]:
        ...

    def update_bug(self, bug_id: str, changes: dict) -> Optional["BugRecord"]:
        ...

    def delete_bug(self, bug_id: str) -> bool:
        ...

    def list_bugs(self, query: ListQuery) -> BugPage:
        ...

    def bug_stats(self) -> "BugStats":
        ...


def _next_timestamp(previous: Optional[float] = None) -> float:
    """Current time, nudged forward so it always exceeds ``previous``."""
    now = time.time()
    if previous is not None and now <= previous:
        return previous + 1e-6
    return now


def _new_bug_id() -> str:
    return uuid.uuid4().hex


class _Clock:
    """Per-store timestamp source; never hands out the same value twice."""

    def __init__(self):
        self.last: Optional[float] = None
        self._lock = threading.Lock()

    def tick(self, previous: Optional[float] = None) -> float:
        with self._lock:
            floors = [value for value in (self.last, previous) if value is not None]
            self.last = _next_timestamp(max(floors) if floors else None)
            return self.last


@dataclass
class BugRecord:
    bug_id: str
    title: str
    description: str
    reported_by: str
    project: str
    status: BugStatus = DEFAULT_STATUS
    priority: BugPriority = DEFAULT_PRIORITY
    assigned_to: str = DEFAULT_ASSIGNEE
    steps_to_reproduce: Optional[str] = None
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())


@dataclass
class GroupCount:
    key: str
    count: int

    def as_dict(self) -> dict:
        return {"_id": self.key, "count": self.count}


@dataclass
class BugStats:
    status: list[GroupCount] = field(default_factory=list)
    priority: list[GroupCount] = field(default_factory=list)
    projects: list[GroupCount] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "status": [group.as_dict() for group in self.status],
            "priority": [group.as_dict() for group in self.priority],
            "projects": [group.as_dict() for group in self.projects],
        }


def _normalize_fields(fields: dict) -> dict:
    """Coerce enum-valued fields and fill creation defaults."""
    values = {key: fields[key] for key in MUTABLE_FIELDS if key in fields}
    values["status"] = BugStatus(values.get("status") or DEFAULT_STATUS)
    values["priority"] = BugPriority(values.get("priority") or DEFAULT_PRIORITY)
    values["assigned_to"] = values.get("assigned_to") or DEFAULT_ASSIGNEE
    return values


def _normalize_changes(changes: dict) -> dict:
    values = {key: changes[key] for key in MUTABLE_FIELDS if key in changes}
    if "status" in values:
        values["status"] = BugStatus(values["status"])
    if "priority" in values:
        values["priority"] = BugPriority(values["priority"])
    if "assigned_to" in values and not values["assigned_to"]:
        values["assigned_to"] = DEFAULT_ASSIGNEE
    return values


def _ordered_groups(counts: Dict[str, int], order: list[str]) -> list[GroupCount]:
    """Groups in ``order`` first, then any unexpected keys alphabetically."""
    known = [GroupCount(key, counts[key]) for key in order if key in counts]
    extra = [
        GroupCount(key, counts[key]) for key in sorted(counts) if key not in order
    ]
    return known + extra


def _top_projects(counts: Dict[str, int]) -> list[GroupCount]:
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [GroupCount(key, count) for key, count in ranked[:TOP_PROJECTS_LIMIT]]


def _sort_value(record: BugRecord, attribute: str) -> Any:
    value = getattr(record, attribute)
    if isinstance(value, (BugStatus, BugPriority)):
        return value.value
    if value is None:
        return ""
    return value


class InMemoryBugStore:
    """
    Simple in-memory bug store for development and tests.

    Route handlers run in a threadpool, so every access to ``bugs`` goes
    through one lock.
    """

    def __init__(self):
        self.bugs: Dict[str, BugRecord] = {}
        self._clock = _Clock()
        self._lock = threading.Lock()

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.bugs.clear()

    def create_bug(self, fields: dict) -> BugRecord:
        values = _normalize_fields(fields)
        with self._lock:
            now = self._clock.tick()
            record = BugRecord(
                bug_id=_new_bug_id(),
                created_at=now,
                updated_at=now,
                **values,
            )
            self.bugs[record.bug_id] = record
        return record

    def get_bug(self, bug_id: str) -> Optional[BugRecord]:
        with self._lock:
            return self.bugs.get(bug_id)

    def update_bug(self, bug_id: str, changes: dict) -> Optional[BugRecord]:
        values = _normalize_changes(changes)
        with self._lock:
            record = self.bugs.get(bug_id)
            if not record:
                return None
            for key, value in values.items():
                setattr(record, key, value)
            record.updated_at = self._clock.tick()
            return record

    def delete_bug(self, bug_id: str) -> bool:
        with self._lock:
            return self.bugs.pop(bug_id, None) is not None

    def list_bugs(self, query: ListQuery) -> BugPage:
        criteria = query.filters.criteria()
        with self._lock:
            matches = [
                record
                for record in self.bugs.values()
                if all(
                    _sort_value(record, key) == value
                    for key, value in criteria.items()
                )
            ]
            # Stable sorts applied from the least significant key keep
            # insertion order as the final tie-breaker.
            for key in reversed(query.sort):
                matches.sort(
                    key=lambda record: _sort_value(record, key.attribute),
                    reverse=key.descending,
                )
        items = matches[query.offset : query.offset + query.limit]
        return BugPage(items=items, total=len(matches), page=query.page, limit=query.limit)

    def bug_stats(self) -> BugStats:
        status_counts: Dict[str, int] = {}
        priority_counts: Dict[str, int] = {}
        project_counts: Dict[str, int] = {}
        with self._lock:
            for record in self.bugs.values():
                status_counts[record.status.value] = (
                    status_counts.get(record.status.value, 0) + 1
                )
                priority_counts[record.priority.value] = (
                    priority_counts.get(record.priority.value, 0) + 1
                )
                project_counts[record.project] = project_counts.get(record.project, 0) + 1
        return BugStats(
            status=_ordered_groups(status_counts, [s.value for s in BugStatus]),
            priority=_ordered_groups(priority_counts, [p.value for p in BugPriority]),
            projects=_top_projects(project_counts),
        )


class SqlBugStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlBugStore")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)
        self._clock = _Clock()

    def _to_bug_record(self, row: "BugRow") -> BugRecord:
        return BugRecord(
            bug_id=row.id,
            title=row.title,
            description=row.description,
            status=BugStatus(row.status),
            priority=BugPriority(row.priority),
            assigned_to=row.assigned_to,
            reported_by=row.reported_by,
            steps_to_reproduce=row.steps_to_reproduce,
            project=row.project,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def create_bug(self, fields: dict) -> BugRecord:
        values = _normalize_fields(fields)
        now = self._clock.tick()
        with self.Session() as session:
            row = BugRow(
                id=_new_bug_id(),
                title=values["title"],
                description=values["description"],
                status=values["status"].value,
                priority=values["priority"].value,
                assigned_to=values["assigned_to"],
                reported_by=values["reported_by"],
                steps_to_reproduce=values.get("steps_to_reproduce"),
                project=values["project"],
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_bug_record(row)

    def get_bug(self, bug_id: str) -> Optional[BugRecord]:
        with self.Session() as session:
            row = session.get(BugRow, bug_id)
            if not row:
                return None
            return self._to_bug_record(row)

    def update_bug(self, bug_id: str, changes: dict) -> Optional[BugRecord]:
        with self.Session() as session:
            row = session.get(BugRow, bug_id)
            if not row:
                return None
            for key, value in _normalize_changes(changes).items():
                if isinstance(value, (BugStatus, BugPriority)):
                    value = value.value
                setattr(row, key, value)
            row.updated_at = self._clock.tick(row.updated_at)
            session.commit()
            session.refresh(row)
            return self._to_bug_record(row)

    def delete_bug(self, bug_id: str) -> bool:
        with self.Session() as session:
            row = session.get(BugRow, bug_id)
            if not row:
                return False
            session.delete(row)
            session.commit()
            return True

    def list_bugs(self, query: ListQuery) -> BugPage:
        conditions = [
            getattr(BugRow, key) == value
            for key, value in query.filters.criteria().items()
        ]
        with self.Session() as session:
            total = session.execute(
                select(func.count()).select_from(BugRow).where(*conditions)
            ).scalar_one()
            if query.offset >= total:
                # Past the last page; also keeps oversized offsets away from
                # the driver.
                return BugPage(
                    items=[], total=total, page=query.page, limit=query.limit
                )
            stmt = (
                select(BugRow)
                .where(*conditions)
                .order_by(*_order_by(query.sort))
                .offset(query.offset)
                .limit(query.limit)
            )
            rows = session.execute(stmt).scalars().all()
            items = [self._to_bug_record(row) for row in rows]
        return BugPage(items=items, total=total, page=query.page, limit=query.limit)

    def bug_stats(self) -> BugStats:
        with self.Session() as session:
            status_counts = dict(
                session.execute(
                    select(BugRow.status, func.count()).group_by(BugRow.status)
                ).all()
            )
            priority_counts = dict(
                session.execute(
                    select(BugRow.priority, func.count()).group_by(BugRow.priority)
                ).all()
            )
            count = func.count().label("count")
            project_rows = session.execute(
                select(BugRow.project, count)
                .group_by(BugRow.project)
                .order_by(count.desc(), BugRow.project.asc())
                .limit(TOP_PROJECTS_LIMIT)
            ).all()
        return BugStats(
            status=_ordered_groups(status_counts, [s.value for s in BugStatus]),
            priority=_ordered_groups(priority_counts, [p.value for p in BugPriority]),
            projects=[GroupCount(project, total) for project, total in project_rows],
        )


def _order_by(sort: tuple[SortKey, ...]) -> list:
    clauses = []
    for key in sort:
        column = getattr(BugRow, key.attribute)
        clauses.append(column.desc() if key.descending else column.asc())
    # Creation order, then id, keeps paging deterministic on ties.
    clauses.append(BugRow.created_at.asc())
    clauses.append(BugRow.id.asc())
    return clauses


Base = declarative_base()


class BugRow(Base):
    __tablename__ = "bugs"

    id = Column(String(32), primary_key=True)
    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    status = Column(String, nullable=False, index=True)
    priority = Column(String, nullable=False, index=True)
    assigned_to = Column(String, nullable=False, default="Unassigned")
    reported_by = Column(String, nullable=False)
    steps_to_reproduce = Column(Text, nullable=True)
    project = Column(String, nullable=False, index=True)
    created_at = Column(Float, nullable=False, index=True)
    updated_at = Column(Float, nullable=False)
