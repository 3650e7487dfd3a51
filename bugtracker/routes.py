"""
HTTP routes for the bug tracker API.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from bugtracker.config import Settings, get_settings
from bugtracker.db import BugRecord, BugStore
from bugtracker.dependencies import get_bug_store, valid_bug_id
from bugtracker.errors import BugNotFound, InvalidStatusTransition
from bugtracker.query import BugFilter, ListQuery, parse_sort
from bugtracker.schemas import (
    BugCreate,
    BugListResponse,
    BugOut,
    BugResponse,
    BugUpdate,
    DeleteResponse,
    StatsData,
    StatsResponse,
)
from bugtracker.types import BugStatus
from bugtracker.validation import is_valid_status_transition

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bugs", tags=["bugs"])


def _get_or_404(store: BugStore, bug_id: str) -> BugRecord:
    bug = store.get_bug(bug_id)
    if not bug:
        raise BugNotFound(bug_id)
    return bug


@router.get("", response_model=BugListResponse)
def list_bugs(
    status: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    project: Optional[str] = Query(None),
    sort: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    store: BugStore = Depends(get_bug_store),
    settings: Settings = Depends(get_settings),
):
    page_size = min(limit or settings.default_page_size, settings.max_page_size)
    query = ListQuery(
        filters=BugFilter(status=status, priority=priority, project=project),
        sort=parse_sort(sort),
        page=page,
        limit=page_size,
    )
    result = store.list_bugs(query)
    return BugListResponse(
        count=result.count,
        total=result.total,
        total_pages=result.total_pages,
        current_page=result.page,
        data=[BugOut.from_record(bug) for bug in result.items],
    )


@router.get("/stats", response_model=StatsResponse)
def bug_stats(store: BugStore = Depends(get_bug_store)):
    return StatsResponse(data=StatsData.from_stats(store.bug_stats()))


@router.get("/{bug_id}", response_model=BugResponse)
def get_bug(
    bug_id: str = Depends(valid_bug_id),
    store: BugStore = Depends(get_bug_store),
):
    return BugResponse(data=BugOut.from_record(_get_or_404(store, bug_id)))


@router.post("", response_model=BugResponse, status_code=201)
def create_bug(payload: BugCreate, store: BugStore = Depends(get_bug_store)):
    bug = store.create_bug(payload.model_dump(exclude_none=True))
    logger.info("Bug created: %s - %s", bug.bug_id, bug.title)
    return BugResponse(data=BugOut.from_record(bug))


@router.put("/{bug_id}", response_model=BugResponse)
def update_bug(
    payload: BugUpdate,
    bug_id: str = Depends(valid_bug_id),
    store: BugStore = Depends(get_bug_store),
):
    """
    Apply a partial update. A status change must pass the transition rule
    before anything is written.
    """
    bug = _get_or_404(store, bug_id)
    changes = payload.model_dump(exclude_unset=True)

    new_status = changes.get("status")
    if new_status is not None and BugStatus(new_status) != bug.status:
        if not is_valid_status_transition(bug.status, new_status):
            raise InvalidStatusTransition(bug.status.value, BugStatus(new_status).value)

    updated = store.update_bug(bug_id, changes)
    if not updated:
        # Deleted between the lookup and the write.
        raise BugNotFound(bug_id)
    logger.info("Bug updated: %s - %s", updated.bug_id, updated.title)
    return BugResponse(data=BugOut.from_record(updated))


@router.delete("/{bug_id}", response_model=DeleteResponse)
def delete_bug(
    bug_id: str = Depends(valid_bug_id),
    store: BugStore = Depends(get_bug_store),
):
    if not store.delete_bug(bug_id):
        raise BugNotFound(bug_id)
    logger.info("Bug deleted: %s", bug_id)
    return DeleteResponse(message="Bug successfully deleted")
