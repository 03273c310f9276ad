# backend/sunrise/db/base.py

"""
Single source of truth for the SQLAlchemy Declarative Base.

IMPORTANT:
- This file must NOT import sunrise.models.
  Doing so creates circular imports when sunrise.main -> sunrise.models -> sunrise.db.base.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass
