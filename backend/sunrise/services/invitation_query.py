# backend/sunrise/services/invitation_query.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sunrise.services.invitation_metadata import parse_metadata
from sunrise.services.invitation_tokens import IDENTIFIER_PREFIX, email_from_identifier
from sunrise.services.verification_store import UserDirectory, VerificationStore

logger = logging.getLogger("sunrise.invitations")

MAX_PAGE_SIZE = 100


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class InvitationSortField(str, Enum):
    NAME = "name"
    EMAIL = "email"
    INVITED_AT = "invitedAt"
    EXPIRES_AT = "expiresAt"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class ListInvitationsQuery(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    search: Optional[str] = Field(default=None, max_length=200)
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=MAX_PAGE_SIZE)
    sort_by: InvitationSortField = Field(default=InvitationSortField.INVITED_AT, alias="sortBy")
    sort_order: SortOrder = Field(default=SortOrder.DESC, alias="sortOrder")

    @field_validator("search")
    @classmethod
    def _blank_search_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


@dataclass(frozen=True)
class InvitationListItem:
    email: str
    name: str
    role: str
    invited_by: str
    invited_by_name: Optional[str]
    invited_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class PendingInvitationPage:
    items: list[InvitationListItem]
    total: int


_SORT_KEYS: dict[InvitationSortField, Callable[[InvitationListItem], Any]] = {
    InvitationSortField.NAME: lambda item: item.name.casefold(),
    InvitationSortField.EMAIL: lambda item: item.email.casefold(),
    InvitationSortField.INVITED_AT: lambda item: item.invited_at,
    InvitationSortField.EXPIRES_AT: lambda item: item.expires_at,
}


class InvitationQueryEngine:
    """
    Read-only view over pending invitations.

    Everything is computed from one store read, so the result is a consistent
    snapshot of that read even while invitations are being issued or deleted.
    """

    def __init__(
        self,
        store: VerificationStore,
        users: UserDirectory,
        *,
        clock: Callable[[], datetime] = _now_utc,
    ):
        self.store = store
        self.users = users
        self.clock = clock

    def list_pending(self, query: Optional[ListInvitationsQuery] = None) -> PendingInvitationPage:
        query = query or ListInvitationsQuery()

        records = self.store.find_all_by_identifier_prefix(IDENTIFIER_PREFIX, expires_after=self.clock())

        names: dict[str, Optional[str]] = {}
        seen: set[str] = set()
        items: list[InvitationListItem] = []

        # Records arrive newest first; the first one per email wins.
        for record in records:
            email = email_from_identifier(record.identifier)
            if email in seen:
                continue
            seen.add(email)

            metadata = parse_metadata(record.metadata)
            if metadata is None:
                logger.warning("invitation_metadata_corrupt email=%s skipped=listing", email)
                continue

            if metadata.invited_by not in names:
                names[metadata.invited_by] = self._inviter_name(metadata.invited_by)

            items.append(
                InvitationListItem(
                    email=email,
                    name=metadata.name,
                    role=metadata.role,
                    invited_by=metadata.invited_by,
                    invited_by_name=names[metadata.invited_by],
                    invited_at=metadata.invited_at_dt,
                    expires_at=record.expires_at,
                )
            )

        if query.search:
            needle = query.search.casefold()
            items = [i for i in items if needle in i.email.casefold() or needle in i.name.casefold()]

        items.sort(
            key=_SORT_KEYS[query.sort_by],
            reverse=query.sort_order == SortOrder.DESC,
        )

        total = len(items)
        start = (query.page - 1) * query.limit
        page_items = items[start:start + query.limit]

        logger.info(
            "invitations_listed total=%s returned=%s page=%s limit=%s sort_by=%s sort_order=%s",
            total,
            len(page_items),
            query.page,
            query.limit,
            query.sort_by.value,
            query.sort_order.value,
        )
        return PendingInvitationPage(items=page_items, total=total)

    def _inviter_name(self, user_id: str) -> Optional[str]:
        # Inviter lookups are best-effort: a deleted admin or a directory hiccup
        # must never break the listing.
        try:
            return self.users.find_name_by_id(user_id)
        except Exception:
            logger.warning("inviter_lookup_failed invited_by=%s", user_id, exc_info=True)
            return None
