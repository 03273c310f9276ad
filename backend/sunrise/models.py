# backend/sunrise/models.py
import uuid

import sqlalchemy as sa
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
)
from sqlalchemy.sql import text
from sunrise.db.base import Base

# Cross-DB timestamp default (SQLite + Postgres)
DB_NOW = text("CURRENT_TIMESTAMP")


def _new_user_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """
    Account record. Invited users only get a row once they accept.
    """
    __tablename__ = "user"

    id = Column(String(36), primary_key=True, default=_new_user_id)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=True)
    hashed_password = Column(String, nullable=True)

    # Stored as "USER" | "ADMIN". Default is "USER".
    role = Column(String(16), nullable=False, default="USER", server_default=text("'USER'"))
    email_verified = Column(Boolean, nullable=False, default=False, server_default=sa.false())

    created_at = Column(DateTime(timezone=True), server_default=DB_NOW, nullable=False)


class Verification(Base):
    """
    Generic verification record: an opaque identifier, a hashed value,
    an expiry and a free-form metadata blob.

    Invitations are stored with identifier "invitation:<email>". The same
    identifier may appear on several rows; readers pick the newest.
    """
    __tablename__ = "verification"

    id = Column(Integer, primary_key=True, autoincrement=True)
    identifier = Column(String(320), nullable=False, index=True)
    value = Column(String(128), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)

    # "metadata" is reserved on declarative classes; keep the column name.
    meta = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=DB_NOW, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=DB_NOW, nullable=False)

    __table_args__ = (
        Index("ix_verification_identifier_created", "identifier", "created_at"),
    )
