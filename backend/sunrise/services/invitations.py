# backend/sunrise/services/invitations.py
"""
Invitation issuance and consumption.

Per email the lifecycle is NONE -> PENDING -> CONSUMED | EXPIRED | REVOKED,
with PENDING -> PENDING on resend (old token invalidated, expiry restarted).

Read paths (validate, get_metadata, get_valid_invitation) never raise: a
missing, expired, corrupt or mismatched invitation comes back as a value,
and a store failure is logged and reported as "no invitation". Mutations
(issue, delete, resend) raise PersistenceError.

The raw secret only ever leaves this module as the return value of issue()
and resend(). It is never persisted or logged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sunrise.core.config import settings
from sunrise.core.errors import InvitationFailureReason, PersistenceError
from sunrise.services.invitation_metadata import InvitationMetadata, parse_metadata
from sunrise.services.invitation_tokens import (
    generate_secret,
    hash_token,
    invitation_identifier,
    normalize_email,
    tokens_match,
)
from sunrise.services.verification_store import VerificationRecord, VerificationStore

logger = logging.getLogger("sunrise.invitations")

Clock = Callable[[], datetime]


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class InvitationRecord:
    email: str
    metadata: InvitationMetadata
    expires_at: datetime
    created_at: datetime


@dataclass(frozen=True)
class InvitationMetadataResult:
    valid: bool
    metadata: Optional[InvitationMetadata] = None
    expires_at: Optional[datetime] = None
    reason: Optional[InvitationFailureReason] = None

    @classmethod
    def ok(cls, metadata: InvitationMetadata, expires_at: datetime) -> "InvitationMetadataResult":
        return cls(valid=True, metadata=metadata, expires_at=expires_at)

    @classmethod
    def fail(cls, reason: InvitationFailureReason) -> "InvitationMetadataResult":
        return cls(valid=False, reason=reason)


class InvitationService:
    def __init__(
        self,
        store: VerificationStore,
        *,
        expiry_days: Optional[int] = None,
        clock: Clock = _now_utc,
    ):
        self.store = store
        self.expiry = timedelta(days=expiry_days if expiry_days is not None else settings.invitation_expiry_days)
        self.clock = clock

    def expires_at_for(self, issued_at: datetime) -> datetime:
        return issued_at + self.expiry

    # ---------- Mutations ----------

    def issue(self, email: str, metadata: InvitationMetadata, *, now: Optional[datetime] = None) -> str:
        """
        Store a new invitation for `email` and return the unhashed secret.

        `now` pins the creation time (defaults to the service clock); the
        record expires at expires_at_for(now).
        """
        email_norm = normalize_email(email)
        secret = generate_secret()
        now = now or self.clock()
        expires_at = self.expires_at_for(now)

        try:
            self.store.create(
                invitation_identifier(email_norm),
                hash_token(secret),
                expires_at,
                metadata.to_json(),
                created_at=now,
            )
        except PersistenceError:
            logger.error("invitation_issue_failed email=%s", email_norm)
            raise

        logger.info(
            "invitation_issued email=%s role=%s invited_by=%s expires_at=%s",
            email_norm,
            metadata.role,
            metadata.invited_by,
            expires_at.isoformat(),
        )
        return secret

    def delete(self, email: str) -> int:
        """Remove every invitation record for `email`. Deleting nothing is fine."""
        email_norm = normalize_email(email)
        try:
            count = self.store.delete_by_identifier(invitation_identifier(email_norm))
        except PersistenceError:
            logger.error("invitation_delete_failed email=%s", email_norm)
            raise

        logger.info("invitation_deleted email=%s count=%s", email_norm, count)
        return count

    def resend(self, email: str, metadata: InvitationMetadata, *, now: Optional[datetime] = None) -> str:
        """
        Invalidate every outstanding token for `email` and issue a fresh one.

        Metadata is replaced, not merged. The store swaps the records in a
        single transaction, so a concurrent validate sees either the old
        token or the new one.
        """
        email_norm = normalize_email(email)
        secret = generate_secret()
        now = now or self.clock()
        expires_at = self.expires_at_for(now)

        try:
            replaced = self.store.replace_all_for_identifier(
                invitation_identifier(email_norm),
                hash_token(secret),
                expires_at,
                metadata.to_json(),
                created_at=now,
            )
        except PersistenceError:
            logger.error("invitation_resend_failed email=%s", email_norm)
            raise

        logger.info(
            "invitation_regenerated email=%s replaced=%s role=%s expires_at=%s",
            email_norm,
            replaced,
            metadata.role,
            expires_at.isoformat(),
        )
        return secret

    # ---------- Reads ----------

    def validate(self, email: str, token: str) -> bool:
        # Same record selection as get_valid_invitation and the listing:
        # newest among the not-yet-expired.
        email_norm = normalize_email(email)
        try:
            record = self.store.find_latest_by_identifier(
                invitation_identifier(email_norm),
                expires_after=self.clock(),
            )
        except PersistenceError:
            logger.error("invitation_validate_failed email=%s", email_norm)
            return False

        result = self._check(email_norm, record, token)
        if result.valid:
            logger.info("invitation_token_validated email=%s", email_norm)
        else:
            logger.warning("invitation_token_rejected email=%s reason=%s", email_norm, result.reason.value)
        return result.valid

    def get_metadata(self, email: str, token: str) -> InvitationMetadataResult:
        """
        Validate a token and return the invitation's metadata in one call.

        Looks at the newest record of any age so an expired invitation is
        reported as EXPIRED rather than NOT_FOUND. The failure reason is meant
        for internal use and admin tooling; public callers should collapse it
        to a single generic message.
        """
        email_norm = normalize_email(email)
        try:
            record = self.store.find_latest_by_identifier(invitation_identifier(email_norm))
        except PersistenceError:
            logger.error("invitation_metadata_lookup_failed email=%s", email_norm)
            return InvitationMetadataResult.fail(InvitationFailureReason.NOT_FOUND)

        result = self._check(email_norm, record, token)
        if not result.valid:
            logger.warning("invitation_metadata_rejected email=%s reason=%s", email_norm, result.reason.value)
        return result

    def get_valid_invitation(self, email: str) -> Optional[InvitationRecord]:
        """Newest non-expired invitation for `email`, without checking any token."""
        email_norm = normalize_email(email)
        try:
            record = self.store.find_latest_by_identifier(
                invitation_identifier(email_norm),
                expires_after=self.clock(),
            )
        except PersistenceError:
            logger.error("invitation_lookup_failed email=%s", email_norm)
            return None

        if record is None:
            return None

        metadata = self._parse(email_norm, record)
        if metadata is None:
            return None

        return InvitationRecord(
            email=email_norm,
            metadata=metadata,
            expires_at=record.expires_at,
            created_at=record.created_at,
        )

    # ---------- Helpers ----------

    def _parse(self, email_norm: str, record: VerificationRecord) -> Optional[InvitationMetadata]:
        metadata = parse_metadata(record.metadata)
        if metadata is None:
            logger.warning("invitation_metadata_corrupt email=%s", email_norm)
        return metadata

    def _check(
        self,
        email_norm: str,
        record: Optional[VerificationRecord],
        token: str,
    ) -> InvitationMetadataResult:
        if record is None:
            return InvitationMetadataResult.fail(InvitationFailureReason.NOT_FOUND)

        metadata = self._parse(email_norm, record)
        if metadata is None:
            return InvitationMetadataResult.fail(InvitationFailureReason.NOT_FOUND)

        # A token expiring exactly now is already expired.
        if record.expires_at <= self.clock():
            return InvitationMetadataResult.fail(InvitationFailureReason.EXPIRED)

        if not tokens_match(token, record.hashed_value):
            return InvitationMetadataResult.fail(InvitationFailureReason.INVALID_TOKEN)

        return InvitationMetadataResult.ok(metadata, record.expires_at)
