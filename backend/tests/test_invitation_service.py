# backend/tests/test_invitation_service.py
from __future__ import annotations

import logging
from datetime import timezone

import pytest

from sunrise.core.errors import InvitationFailureReason, PersistenceError
from sunrise.models import Verification
from sunrise.services.invitation_metadata import InvitationMetadata
from sunrise.services.invitation_tokens import hash_token
from sunrise.services.invitations import InvitationService
from sunrise.services.verification_store import SqlAlchemyVerificationStore


# --- Helpers ---------------------------------------------------------------

def _metadata(clock, name="Alice Smith", role="USER", invited_by="admin-1") -> InvitationMetadata:
    return InvitationMetadata(
        name=name,
        role=role,
        invited_by=invited_by,
        invited_at=clock().isoformat(),
    )


class BrokenStore:
    """Every call fails the way an unreachable database does."""

    def create(self, *args, **kwargs):
        raise PersistenceError("create")

    def find_latest_by_identifier(self, *args, **kwargs):
        raise PersistenceError("find_latest_by_identifier")

    def find_all_by_identifier_prefix(self, *args, **kwargs):
        raise PersistenceError("find_all_by_identifier_prefix")

    def delete_by_identifier(self, *args, **kwargs):
        raise PersistenceError("delete_by_identifier")

    def replace_all_for_identifier(self, *args, **kwargs):
        raise PersistenceError("replace_all_for_identifier")


# --- Fixtures --------------------------------------------------------------

@pytest.fixture()
def service(db, clock):
    return InvitationService(SqlAlchemyVerificationStore(db), expiry_days=7, clock=clock)


# --- Issue / validate ------------------------------------------------------

def test_issue_then_validate_round_trip(service, clock):
    token = service.issue("alice@example.com", _metadata(clock))

    assert service.validate("alice@example.com", token) is True

    result = service.get_metadata("alice@example.com", token)
    assert result.valid is True
    assert result.reason is None
    assert result.metadata.name == "Alice Smith"
    assert result.metadata.role == "USER"
    assert result.expires_at == clock() + service.expiry


def test_only_the_hash_is_persisted(service, db, clock):
    token = service.issue("alice@example.com", _metadata(clock))

    row = db.query(Verification).one()
    assert row.identifier == "invitation:alice@example.com"
    assert row.value == hash_token(token)
    assert row.value != token
    assert token not in str(row.meta)
    assert row.meta["invitedBy"] == "admin-1"


def test_email_is_case_insensitive(service, clock):
    token = service.issue("  Alice@Example.COM ", _metadata(clock))
    assert service.validate("alice@example.com", token) is True
    assert service.validate("ALICE@EXAMPLE.COM", token) is True


def test_unknown_email_is_not_found(service, clock):
    token = service.issue("alice@example.com", _metadata(clock))

    result = service.get_metadata("mallory@example.com", token)
    assert result.valid is False
    assert result.reason == InvitationFailureReason.NOT_FOUND
    assert result.metadata is None


def test_wrong_token_is_rejected(service, clock):
    service.issue("alice@example.com", _metadata(clock))

    result = service.get_metadata("alice@example.com", "0" * 64)
    assert result.valid is False
    assert result.reason == InvitationFailureReason.INVALID_TOKEN
    assert service.validate("alice@example.com", "") is False


# --- Expiry ----------------------------------------------------------------

def test_token_is_valid_until_just_before_expiry(service, clock):
    token = service.issue("alice@example.com", _metadata(clock))

    clock.advance(days=7, seconds=-1)
    assert service.validate("alice@example.com", token) is True


def test_token_expiring_exactly_now_is_expired(service, clock):
    token = service.issue("alice@example.com", _metadata(clock))

    clock.advance(days=7)
    result = service.get_metadata("alice@example.com", token)
    assert result.valid is False
    assert result.reason == InvitationFailureReason.EXPIRED


def test_expired_invitation_is_not_pending(service, clock):
    service.issue("alice@example.com", _metadata(clock))
    assert service.get_valid_invitation("alice@example.com") is not None

    clock.advance(days=8)
    assert service.get_valid_invitation("alice@example.com") is None


# --- Newest wins / resend ---------------------------------------------------

def test_validate_uses_newest_unexpired_record(db, clock):
    store = SqlAlchemyVerificationStore(db)
    long_lived = InvitationService(store, expiry_days=30, clock=clock)
    short_lived = InvitationService(store, expiry_days=1, clock=clock)

    older = long_lived.issue("alice@example.com", _metadata(clock, name="Alice Long"))
    clock.advance(minutes=1)
    short_lived.issue("alice@example.com", _metadata(clock, name="Alice Short"))

    # The newer record has expired; the older one is still pending.
    clock.advance(days=2)

    pending = long_lived.get_valid_invitation("alice@example.com")
    assert pending is not None
    assert pending.metadata.name == "Alice Long"
    assert long_lived.validate("alice@example.com", older) is True

    # get_metadata reads the newest record of any age and reports its expiry.
    assert long_lived.get_metadata("alice@example.com", older).reason == InvitationFailureReason.EXPIRED


def test_issue_and_resend_honor_pinned_time(service, db, clock):
    pinned = clock.advance(hours=1)
    clock.advance(seconds=30)

    service.issue("alice@example.com", _metadata(clock), now=pinned)
    row = db.query(Verification).one()
    assert row.created_at.replace(tzinfo=timezone.utc) == pinned
    assert row.expires_at.replace(tzinfo=timezone.utc) == service.expires_at_for(pinned)

    again = clock.advance(minutes=5)
    service.resend("alice@example.com", _metadata(clock), now=again)
    row = db.query(Verification).one()
    assert row.expires_at.replace(tzinfo=timezone.utc) == again + service.expiry



def test_newest_invitation_wins(service, db, clock):
    first = service.issue("alice@example.com", _metadata(clock, name="Alice One"))
    clock.advance(minutes=5)
    second = service.issue("alice@example.com", _metadata(clock, name="Alice Two"))

    # Both rows exist; only the newest one is consulted.
    assert db.query(Verification).count() == 2
    assert service.get_metadata("alice@example.com", first).reason == InvitationFailureReason.INVALID_TOKEN
    assert service.get_metadata("alice@example.com", second).metadata.name == "Alice Two"
    assert service.get_valid_invitation("alice@example.com").metadata.name == "Alice Two"


def test_resend_invalidates_previous_token_and_restarts_expiry(service, db, clock):
    old = service.issue("alice@example.com", _metadata(clock))

    clock.advance(days=3)
    new = service.resend("alice@example.com", _metadata(clock, role="ADMIN"))

    assert new != old
    assert service.validate("alice@example.com", old) is False
    assert service.validate("alice@example.com", new) is True
    assert db.query(Verification).count() == 1

    result = service.get_metadata("alice@example.com", new)
    assert result.metadata.role == "ADMIN"
    assert result.expires_at == clock() + service.expiry

    # Old expiry would have passed by now; the new one has not.
    clock.advance(days=5)
    assert service.validate("alice@example.com", new) is True


def test_resend_without_existing_invitation_issues_one(service, clock):
    token = service.resend("new@example.com", _metadata(clock))
    assert service.validate("new@example.com", token) is True


# --- Delete ----------------------------------------------------------------

def test_delete_removes_every_record_and_is_idempotent(service, clock):
    token = service.issue("alice@example.com", _metadata(clock))
    clock.advance(minutes=1)
    service.issue("alice@example.com", _metadata(clock))

    assert service.delete("alice@example.com") == 2
    assert service.delete("alice@example.com") == 0
    assert service.validate("alice@example.com", token) is False
    assert service.get_valid_invitation("alice@example.com") is None


def test_delete_leaves_other_emails_alone(service, clock):
    bob = service.issue("bob@example.com", _metadata(clock, name="Bob"))
    service.issue("alice@example.com", _metadata(clock))

    service.delete("alice@example.com")
    assert service.validate("bob@example.com", bob) is True


# --- Corrupt metadata -------------------------------------------------------

@pytest.mark.parametrize(
    "meta",
    [
        None,
        "garbage",
        {"name": "", "role": "USER", "invitedBy": "admin-1", "invitedAt": "2026-03-01T12:00:00Z"},
        {"name": "Eve", "role": "ROOT", "invitedBy": "admin-1", "invitedAt": "2026-03-01T12:00:00Z"},
    ],
)
def test_corrupt_metadata_makes_invitation_invisible(service, db, clock, meta):
    raw_token = "f" * 64
    db.add(
        Verification(
            identifier="invitation:eve@example.com",
            value=hash_token(raw_token),
            expires_at=clock.now.replace(year=2027),
            meta=meta,
            created_at=clock(),
            updated_at=clock(),
        )
    )
    db.commit()

    result = service.get_metadata("eve@example.com", raw_token)
    assert result.valid is False
    assert result.reason == InvitationFailureReason.NOT_FOUND
    assert service.validate("eve@example.com", raw_token) is False
    assert service.get_valid_invitation("eve@example.com") is None


# --- Store failures ---------------------------------------------------------

def test_mutations_propagate_persistence_errors(clock):
    service = InvitationService(BrokenStore(), expiry_days=7, clock=clock)

    with pytest.raises(PersistenceError):
        service.issue("alice@example.com", _metadata(clock))
    with pytest.raises(PersistenceError):
        service.resend("alice@example.com", _metadata(clock))
    with pytest.raises(PersistenceError):
        service.delete("alice@example.com")


def test_reads_fail_safe_on_persistence_errors(clock):
    service = InvitationService(BrokenStore(), expiry_days=7, clock=clock)

    assert service.validate("alice@example.com", "a" * 64) is False
    assert service.get_metadata("alice@example.com", "a" * 64).reason == InvitationFailureReason.NOT_FOUND
    assert service.get_valid_invitation("alice@example.com") is None


# --- Logging ----------------------------------------------------------------

def test_secret_never_appears_in_logs(service, clock, caplog):
    caplog.set_level(logging.DEBUG, logger="sunrise")

    token = service.issue("alice@example.com", _metadata(clock))
    service.validate("alice@example.com", token)
    service.validate("alice@example.com", "wrong")
    new = service.resend("alice@example.com", _metadata(clock))

    assert "invitation_issued email=alice@example.com" in caplog.text
    assert token not in caplog.text
    assert new not in caplog.text


# --- Full lifecycle --------------------------------------------------------

def test_full_lifecycle(service, clock):
    token = service.issue("carol@example.com", _metadata(clock, name="Carol"))

    clock.advance(days=2)
    assert service.get_metadata("carol@example.com", token).metadata.name == "Carol"

    # Accepting consumes every token for the email.
    service.delete("carol@example.com")
    assert service.get_metadata("carol@example.com", token).reason == InvitationFailureReason.NOT_FOUND

    # A later invitation starts a fresh lifecycle.
    again = service.issue("carol@example.com", _metadata(clock, name="Carol"))
    assert service.validate("carol@example.com", token) is False
    assert service.validate("carol@example.com", again) is True
