# backend/sunrise/api/v1/admin_invitations.py
"""
Admin invitation endpoints.

- POST   /users/invite[?resend=true]  -> invite a new user (or regenerate the token)
- GET    /admin/invitations           -> paginated list of pending invitations
- DELETE /admin/invitations/{email}   -> delete a pending invitation

The user row is NOT created here; it is created once, when the invitation is
accepted (see invitations.accept_invite).
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Literal, Optional
from urllib.parse import unquote

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from sqlalchemy.orm import Session

from sunrise.api.deps import get_invitation_query_engine, get_invitation_service
from sunrise.core.email import EmailStatus
from sunrise.core.security import require_admin
from sunrise.db.session import get_db
from sunrise.models import User
from sunrise.services.invitation_email import build_invitation_url, send_invitation_email
from sunrise.services.invitation_metadata import InvitationMetadata, Role
from sunrise.services.invitation_query import (
    MAX_PAGE_SIZE,
    InvitationQueryEngine,
    InvitationSortField,
    ListInvitationsQuery,
    SortOrder,
)
from sunrise.services.invitation_tokens import normalize_email
from sunrise.services.invitations import InvitationService

logger = logging.getLogger("sunrise.api.invitations")

router = APIRouter(tags=["admin-invitations"])


# ---------- Schemas ----------

class InviteUserRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    role: Role = "USER"


class InvitationOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str
    name: str
    role: str
    invited_at: str = Field(alias="invitedAt")
    expires_at: datetime = Field(alias="expiresAt")
    link: Optional[str] = None  # only when a fresh token was just issued


class InviteUserResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    invitation: InvitationOut
    email_status: Literal["sent", "failed", "disabled", "pending"] = Field(alias="emailStatus")


class InvitationListItemOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str
    name: str
    role: str
    invited_by: str = Field(alias="invitedBy")
    invited_by_name: Optional[str] = Field(default=None, alias="invitedByName")
    invited_at: datetime = Field(alias="invitedAt")
    expires_at: datetime = Field(alias="expiresAt")


class PaginationMeta(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    page: int
    limit: int
    total: int
    total_pages: int = Field(alias="totalPages")


class InvitationListResponse(BaseModel):
    success: bool = True
    data: list[InvitationListItemOut]
    meta: PaginationMeta


class MessageResponse(BaseModel):
    success: bool = True
    message: str


# ---------- Helpers ----------

def _invite_message(email_status: EmailStatus, *, resent: bool) -> str:
    if email_status == EmailStatus.SENT:
        return f"Invitation {'resent' if resent else 'sent'} successfully"
    action = "regenerated" if resent else "created"
    if email_status == EmailStatus.FAILED:
        return f"Invitation {action} but email failed to send"
    return f"Invitation {action} (email service not configured)"


# ---------- Routes ----------

@router.post("/users/invite", response_model=InviteUserResponse, status_code=status.HTTP_201_CREATED)
def invite_user(
    payload: InviteUserRequest,
    response: Response,
    resend: bool = Query(False, description="Regenerate the token and resend the email for a pending invitation."),
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    service: InvitationService = Depends(get_invitation_service),
):
    email = normalize_email(payload.email)

    existing_user = db.query(User).filter(User.email == email).first()
    if existing_user:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "EMAIL_TAKEN", "message": "User already exists with this email"},
        )

    existing = service.get_valid_invitation(email)

    if existing and not resend:
        # No link: the stored token is hashed, a usable one needs ?resend=true
        logger.info("invitation_already_pending email=%s expires_at=%s", email, existing.expires_at.isoformat())
        response.status_code = status.HTTP_200_OK
        return InviteUserResponse(
            message="Invitation already pending. Use ?resend=true to send a new invitation email.",
            invitation=InvitationOut(
                email=email,
                name=existing.metadata.name,
                role=existing.metadata.role,
                invited_at=existing.metadata.invited_at,
                expires_at=existing.expires_at,
            ),
            email_status="pending",
        )

    invited_at = service.clock()
    metadata = InvitationMetadata(
        name=payload.name,
        role=payload.role,
        invited_by=current_admin.id,
        invited_at=invited_at.isoformat(),
    )

    if existing:
        token = service.resend(email, metadata, now=invited_at)
    else:
        token = service.issue(email, metadata, now=invited_at)
    expires_at = service.expires_at_for(invited_at)
    link = build_invitation_url(email, token)

    email_status = send_invitation_email(
        to_email=email,
        invitee_name=payload.name,
        inviter_name=current_admin.name or "Administrator",
        invitation_url=link,
        expires_at=expires_at,
    )
    if email_status != EmailStatus.SENT:
        logger.warning("invitation_email_not_sent email=%s email_status=%s", email, email_status.value)

    logger.info(
        "invitation_%s email=%s role=%s invited_by=%s",
        "resent" if existing else "created",
        email,
        payload.role,
        current_admin.id,
    )

    return InviteUserResponse(
        message=_invite_message(email_status, resent=existing is not None),
        invitation=InvitationOut(
            email=email,
            name=metadata.name,
            role=metadata.role,
            invited_at=metadata.invited_at,
            expires_at=expires_at,
            link=link,
        ),
        email_status=email_status.value,
    )


@router.get("/admin/invitations", response_model=InvitationListResponse)
def list_invitations(
    search: Optional[str] = Query(None, max_length=200),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    sort_by: InvitationSortField = Query(InvitationSortField.INVITED_AT, alias="sortBy"),
    sort_order: SortOrder = Query(SortOrder.DESC, alias="sortOrder"),
    current_admin: User = Depends(require_admin),
    engine: InvitationQueryEngine = Depends(get_invitation_query_engine),
):
    query = ListInvitationsQuery(
        search=search,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    result = engine.list_pending(query)

    return InvitationListResponse(
        data=[
            InvitationListItemOut(
                email=item.email,
                name=item.name,
                role=item.role,
                invited_by=item.invited_by,
                invited_by_name=item.invited_by_name,
                invited_at=item.invited_at,
                expires_at=item.expires_at,
            )
            for item in result.items
        ],
        meta=PaginationMeta(
            page=query.page,
            limit=query.limit,
            total=result.total,
            total_pages=math.ceil(result.total / query.limit),
        ),
    )


@router.delete("/admin/invitations/{email}", response_model=MessageResponse)
def delete_invitation(
    email: str,
    current_admin: User = Depends(require_admin),
    service: InvitationService = Depends(get_invitation_service),
):
    decoded = normalize_email(unquote(email))

    if service.get_valid_invitation(decoded) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "INVITATION_NOT_FOUND", "message": "Invitation not found or already expired"},
        )

    count = service.delete(decoded)
    logger.info("invitation_deleted_by_admin email=%s deleted_by=%s count=%s", decoded, current_admin.id, count)

    return MessageResponse(message=f"Invitation for {decoded} has been deleted")
