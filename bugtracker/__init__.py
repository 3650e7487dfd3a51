"""
Bug tracker service package.

Provides a FastAPI application exposing CRUD, filtering and statistics
endpoints over a pluggable bug record store (in-memory or SQLAlchemy).
"""
