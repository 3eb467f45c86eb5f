"""
Database package for AZEBot.

Exports database initialization, models, and session management.
"""
from .init_db import (
    create_engine_for,
    create_session_factory,
    initialize_database,
    get_db,
    get_async_session,
)
from .models import (
    Base,
    ArticleModel,
    TransactionModel,
)

__all__ = [
    "create_engine_for",
    "create_session_factory",
    "initialize_database",
    "get_db",
    "get_async_session",
    "Base",
    "ArticleModel",
    "TransactionModel",
]
