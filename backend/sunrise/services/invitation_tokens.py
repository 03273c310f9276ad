# backend/sunrise/services/invitation_tokens.py
import hashlib
import hmac
import secrets

TOKEN_BYTE_LENGTH = 32  # 32 bytes = 64 hex chars
IDENTIFIER_PREFIX = "invitation:"


def generate_secret() -> str:
    # Opaque one-time secret, delivered out-of-band and never stored
    return secrets.token_hex(TOKEN_BYTE_LENGTH)


def hash_token(raw_token: str) -> str:
    # SHA-256 hex digest (64 chars)
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def tokens_match(raw_token: str, hashed_token: str) -> bool:
    return hmac.compare_digest(hash_token(raw_token or ""), hashed_token or "")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def invitation_identifier(email: str) -> str:
    return IDENTIFIER_PREFIX + normalize_email(email)


def email_from_identifier(identifier: str) -> str:
    return identifier[len(IDENTIFIER_PREFIX):] if identifier.startswith(IDENTIFIER_PREFIX) else identifier
