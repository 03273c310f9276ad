# backend/sunrise/services/verification_store.py
"""
Record store contract used by the invitation core, plus the SQLAlchemy
implementation backed by the `verification` table.

The core only ever talks to VerificationStore / UserDirectory, so tests and
alternative backends can supply their own implementations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sunrise.core.errors import PersistenceError
from sunrise.models import User, Verification

logger = logging.getLogger("sunrise.store")


@dataclass(frozen=True)
class VerificationRecord:
    identifier: str
    hashed_value: str
    expires_at: datetime
    metadata: Any
    created_at: datetime


class VerificationStore(Protocol):
    """Keyed store of verification records."""

    def create(
        self,
        identifier: str,
        hashed_value: str,
        expires_at: datetime,
        metadata: Optional[dict[str, Any]],
        *,
        created_at: Optional[datetime] = None,
    ) -> VerificationRecord:
        ...

    def find_latest_by_identifier(
        self,
        identifier: str,
        *,
        expires_after: Optional[datetime] = None,
    ) -> Optional[VerificationRecord]:
        """Newest record for the identifier (optionally only those expiring after a moment)."""
        ...

    def find_all_by_identifier_prefix(
        self,
        prefix: str,
        *,
        expires_after: Optional[datetime] = None,
    ) -> list[VerificationRecord]:
        """All matching records, newest first."""
        ...

    def delete_by_identifier(self, identifier: str) -> int:
        """Remove every record for the identifier. Returns the deleted count."""
        ...

    def replace_all_for_identifier(
        self,
        identifier: str,
        hashed_value: str,
        expires_at: datetime,
        metadata: Optional[dict[str, Any]],
        *,
        created_at: Optional[datetime] = None,
    ) -> int:
        """Delete every record for the identifier and create one new record, atomically."""
        ...


class UserDirectory(Protocol):
    def find_name_by_id(self, user_id: str) -> Optional[str]:
        ...


def _as_utc_aware(dt: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything we store is UTC.
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _to_record(row: Verification) -> VerificationRecord:
    return VerificationRecord(
        identifier=row.identifier,
        hashed_value=row.value,
        expires_at=_as_utc_aware(row.expires_at),
        metadata=row.meta,
        created_at=_as_utc_aware(row.created_at),
    )


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlAlchemyVerificationStore:
    """VerificationStore over a request-scoped SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def _new_row(
        self,
        identifier: str,
        hashed_value: str,
        expires_at: datetime,
        metadata: Optional[dict[str, Any]],
        created_at: Optional[datetime],
    ) -> Verification:
        now = created_at or datetime.now(timezone.utc)
        return Verification(
            identifier=identifier,
            value=hashed_value,
            expires_at=expires_at,
            meta=metadata,
            created_at=now,
            updated_at=now,
        )

    def _fail(self, operation: str, exc: SQLAlchemyError) -> PersistenceError:
        self.db.rollback()
        logger.error("store_failure operation=%s error=%s", operation, exc.__class__.__name__)
        return PersistenceError(operation)

    def create(self, identifier, hashed_value, expires_at, metadata, *, created_at=None):
        row = self._new_row(identifier, hashed_value, expires_at, metadata, created_at)
        try:
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        except SQLAlchemyError as exc:
            raise self._fail("create", exc) from exc
        return _to_record(row)

    def find_latest_by_identifier(self, identifier, *, expires_after=None):
        try:
            q = self.db.query(Verification).filter(Verification.identifier == identifier)
            if expires_after is not None:
                q = q.filter(Verification.expires_at > expires_after)
            row = q.order_by(Verification.created_at.desc(), Verification.id.desc()).first()
        except SQLAlchemyError as exc:
            raise self._fail("find_latest_by_identifier", exc) from exc
        return _to_record(row) if row is not None else None

    def find_all_by_identifier_prefix(self, prefix, *, expires_after=None):
        try:
            q = self.db.query(Verification).filter(
                Verification.identifier.like(_escape_like(prefix) + "%", escape="\\")
            )
            if expires_after is not None:
                q = q.filter(Verification.expires_at > expires_after)
            rows = q.order_by(Verification.created_at.desc(), Verification.id.desc()).all()
        except SQLAlchemyError as exc:
            raise self._fail("find_all_by_identifier_prefix", exc) from exc
        return [_to_record(r) for r in rows]

    def delete_by_identifier(self, identifier):
        try:
            count = (
                self.db.query(Verification)
                .filter(Verification.identifier == identifier)
                .delete(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._fail("delete_by_identifier", exc) from exc
        return int(count or 0)

    def replace_all_for_identifier(self, identifier, hashed_value, expires_at, metadata, *, created_at=None):
        # One transaction: readers never observe "no record" between the two halves.
        try:
            count = (
                self.db.query(Verification)
                .filter(Verification.identifier == identifier)
                .delete(synchronize_session=False)
            )
            self.db.add(self._new_row(identifier, hashed_value, expires_at, metadata, created_at))
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._fail("replace_all_for_identifier", exc) from exc
        return int(count or 0)


class SqlAlchemyUserDirectory:
    def __init__(self, db: Session):
        self.db = db

    def find_name_by_id(self, user_id: str) -> Optional[str]:
        try:
            user = self.db.query(User).filter(User.id == user_id).first()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError("find_name_by_id") from exc
        if user is None:
            return None
        return user.name
