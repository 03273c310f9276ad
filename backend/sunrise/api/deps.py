# backend/sunrise/api/deps.py
"""
Request-scoped wiring for the invitation core.

Every dependency below is built from the same per-request session (FastAPI
caches get_db within a request), so a handler that uses both the service and
the query engine works against one unit of work.
"""

from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import Session

from sunrise.db.session import get_db
from sunrise.services.invitation_query import InvitationQueryEngine
from sunrise.services.invitations import InvitationService
from sunrise.services.verification_store import (
    SqlAlchemyUserDirectory,
    SqlAlchemyVerificationStore,
)


def get_verification_store(db: Session = Depends(get_db)) -> SqlAlchemyVerificationStore:
    return SqlAlchemyVerificationStore(db)


def get_invitation_service(
    store: SqlAlchemyVerificationStore = Depends(get_verification_store),
) -> InvitationService:
    return InvitationService(store)


def get_invitation_query_engine(
    db: Session = Depends(get_db),
    store: SqlAlchemyVerificationStore = Depends(get_verification_store),
) -> InvitationQueryEngine:
    return InvitationQueryEngine(store, SqlAlchemyUserDirectory(db))
