"""
Pydantic schemas for the bug tracker API.

Wire names are camelCase (``reportedBy``, ``createdAt``); Python attributes
stay snake_case through an alias generator.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from bugtracker.db import BugRecord, BugStats, GroupCount
from bugtracker.types import BugPriority, BugStatus

TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 1000

_STATUS_MESSAGE = "Status must be one of: " + ", ".join(s.value for s in BugStatus)
_PRIORITY_MESSAGE = "Priority must be one of: " + ", ".join(
    p.value for p in BugPriority
)

# Error messages per wire field, keyed by pydantic error type. "*" is the
# fallback for a field; unlisted fields keep pydantic's own message.
FIELD_MESSAGES: dict[str, dict[str, str]] = {
    "title": {
        "*": "Bug title is required",
        "string_too_long": f"Title cannot be more than {TITLE_MAX_LENGTH} characters",
    },
    "description": {
        "*": "Bug description is required",
        "string_too_long": (
            f"Description cannot be more than {DESCRIPTION_MAX_LENGTH} characters"
        ),
    },
    "status": {"*": _STATUS_MESSAGE},
    "priority": {"*": _PRIORITY_MESSAGE},
    "reportedBy": {"*": "Reporter name is required"},
    "project": {"*": "Project name is required"},
}

# Error types that mean "value absent or blank" for required text fields.
_REQUIRED_ERROR_TYPES = {"missing", "string_too_short", "null_not_allowed"}


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class BugCreate(_WireModel):
    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH)
    description: str = Field(..., min_length=1, max_length=DESCRIPTION_MAX_LENGTH)
    status: Optional[BugStatus] = None
    priority: Optional[BugPriority] = None
    assigned_to: Optional[str] = None
    reported_by: str = Field(..., min_length=1)
    steps_to_reproduce: Optional[str] = None
    project: str = Field(..., min_length=1)


class BugUpdate(_WireModel):
    """Partial update; only fields present in the request are applied."""

    title: Optional[str] = Field(None, min_length=1, max_length=TITLE_MAX_LENGTH)
    description: Optional[str] = Field(
        None, min_length=1, max_length=DESCRIPTION_MAX_LENGTH
    )
    status: Optional[BugStatus] = None
    priority: Optional[BugPriority] = None
    assigned_to: Optional[str] = None
    reported_by: Optional[str] = Field(None, min_length=1)
    steps_to_reproduce: Optional[str] = None
    project: Optional[str] = Field(None, min_length=1)

    @field_validator(
        "title", "description", "status", "priority", "reported_by", "project",
        mode="before",
    )
    @classmethod
    def _reject_null(cls, value: Any) -> Any:
        # Defaults are not validated, so this only fires on an explicit null.
        if value is None:
            raise PydanticCustomError("null_not_allowed", "Field may not be null")
        return value


def _to_datetime(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


class BugOut(_WireModel):
    id: str
    legacy_id: str = Field(..., alias="_id")
    title: str
    description: str
    status: BugStatus
    priority: BugPriority
    assigned_to: str
    reported_by: str
    steps_to_reproduce: Optional[str] = None
    project: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: BugRecord) -> "BugOut":
        return cls(
            id=record.bug_id,
            legacy_id=record.bug_id,
            title=record.title,
            description=record.description,
            status=record.status,
            priority=record.priority,
            assigned_to=record.assigned_to,
            reported_by=record.reported_by,
            steps_to_reproduce=record.steps_to_reproduce,
            project=record.project,
            created_at=_to_datetime(record.created_at),
            updated_at=_to_datetime(record.updated_at),
        )


class BugResponse(_WireModel):
    success: bool = True
    data: BugOut


class BugListResponse(_WireModel):
    success: bool = True
    count: int
    total: int
    total_pages: int
    current_page: int
    data: list[BugOut]


class DeleteResponse(_WireModel):
    success: bool = True
    data: dict = Field(default_factory=dict)
    message: str


class GroupCountOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str = Field(..., alias="_id")
    count: int

    @classmethod
    def from_group(cls, group: GroupCount) -> "GroupCountOut":
        return cls(key=group.key, count=group.count)


class StatsData(BaseModel):
    status: list[GroupCountOut]
    priority: list[GroupCountOut]
    projects: list[GroupCountOut]

    @classmethod
    def from_stats(cls, stats: BugStats) -> "StatsData":
        return cls(
            status=[GroupCountOut.from_group(g) for g in stats.status],
            priority=[GroupCountOut.from_group(g) for g in stats.priority],
            projects=[GroupCountOut.from_group(g) for g in stats.projects],
        )


class StatsResponse(BaseModel):
    success: bool = True
    data: StatsData


class FieldError(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    success: bool = False
    message: str
    errors: Optional[list[FieldError]] = None


def _error_field(loc: Iterable[Any]) -> str:
    parts = [part for part in loc if isinstance(part, str)]
    if len(parts) > 1:
        # Drop the "body"/"query"/"path" source prefix.
        return parts[-1]
    return parts[0] if parts else "request"


def _error_message(field: str, error: dict) -> str:
    messages = FIELD_MESSAGES.get(field)
    if not messages:
        return error.get("msg", "Invalid value")
    error_type = error.get("type", "")
    if error_type in messages:
        return messages[error_type]
    if field in ("status", "priority") or error_type in _REQUIRED_ERROR_TYPES:
        return messages["*"]
    return error.get("msg", messages["*"])


def field_errors(errors: Iterable[dict]) -> list[FieldError]:
    """Flatten pydantic/FastAPI validation errors into ``{field, message}``."""
    result: list[FieldError] = []
    for error in errors:
        field = _error_field(error.get("loc", ()))
        result.append(FieldError(field=field, message=_error_message(field, error)))
    return result
