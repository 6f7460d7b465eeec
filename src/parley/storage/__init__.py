"""Storage plumbing for parley.

This module provides the SQLAlchemy declarative base and the async database
manager used by the SQL-backed conversation event log.
"""

from parley.storage.base_model import Base
from parley.storage.database import Database, DatabaseConfig

__all__ = [
    "Base",
    "Database",
    "DatabaseConfig",
]
