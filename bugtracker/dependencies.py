"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging

from bugtracker.config import get_settings
from bugtracker.db import BugStore, InMemoryBugStore, SqlBugStore
from bugtracker.errors import InvalidIdentifier
from bugtracker.validation import is_valid_bug_id

logger = logging.getLogger(__name__)

_bug_store: BugStore | None = None


def get_bug_store() -> BugStore:
    """
    Return a singleton store so bug records persist across requests.
    """
    global _bug_store
    if _bug_store:
        return _bug_store

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        logger.info("Using in-memory bug store")
        _bug_store = InMemoryBugStore()
    else:
        _bug_store = SqlBugStore(settings.database_url)
    return _bug_store


def valid_bug_id(bug_id: str) -> str:
    """Path dependency rejecting malformed identifiers before any lookup."""
    if not is_valid_bug_id(bug_id):
        raise InvalidIdentifier("id")
    return bug_id
