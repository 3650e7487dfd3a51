"""
Domain errors raised by routes and translated into the response envelope
by the handlers registered in ``bugtracker.app``.
"""

from __future__ import annotations


class ApiError(Exception):
    """An error that maps directly onto an HTTP status and message."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BugNotFound(ApiError):
    status_code = 404

    def __init__(self, bug_id: str):
        super().__init__(f"Bug not found with id {bug_id}")
        self.bug_id = bug_id


class InvalidIdentifier(ApiError):
    status_code = 400

    def __init__(self, name: str = "id"):
        super().__init__(f"Invalid {name}")


class InvalidStatusTransition(ApiError):
    status_code = 400

    def __init__(self, current: str, new: str):
        super().__init__(f"Invalid status transition from '{current}' to '{new}'")
        self.current = current
        self.new = new
