# backend/sunrise/services/invitation_metadata.py
"""
Schema for the metadata blob stored on every invitation record.

The blob is written by us but read back from a generic JSON column, so it is
never trusted: every read goes through parse_metadata(), which returns None
for anything that does not match the schema. Callers treat None as
"this invitation does not exist".
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

Role = Literal["USER", "ADMIN"]


def parse_timestamp(value: str) -> datetime:
    """ISO-8601 string -> timezone-aware UTC datetime. Raises ValueError."""
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    dt = datetime.fromisoformat(raw)
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class InvitationMetadata(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
        frozen=True,
    )

    name: str = Field(min_length=1)
    role: Role
    invited_by: str = Field(alias="invitedBy", min_length=1)
    invited_at: str = Field(alias="invitedAt", min_length=1)

    @field_validator("invited_at")
    @classmethod
    def _invited_at_is_timestamp(cls, v: str) -> str:
        try:
            parse_timestamp(v)
        except ValueError:
            raise ValueError("invitedAt must be an ISO-8601 timestamp")
        return v

    @property
    def invited_at_dt(self) -> datetime:
        return parse_timestamp(self.invited_at)

    def to_json(self) -> dict[str, str]:
        """camelCase dict as persisted in the record's metadata column."""
        return self.model_dump(by_alias=True)


def parse_metadata(raw: Any) -> Optional[InvitationMetadata]:
    if not isinstance(raw, Mapping):
        return None
    try:
        return InvitationMetadata.model_validate(dict(raw))
    except ValidationError:
        return None
