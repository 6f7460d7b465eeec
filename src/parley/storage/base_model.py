"""Declarative base shared by every parley ORM model.

All tables register with the same metadata so that ``create_all`` builds
the complete schema in one call.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all ORM models in parley."""

    pass
