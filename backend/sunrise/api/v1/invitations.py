# backend/sunrise/api/v1/invitations.py
"""
Public invitation endpoints, authenticated by the invitation token itself.

Every token failure (unknown email, expired, wrong token, corrupt record)
maps to the same 400 response so callers cannot probe which emails have
been invited.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sunrise.api.deps import get_invitation_service
from sunrise.core.security import pwd_context
from sunrise.db.session import get_db
from sunrise.models import User
from sunrise.services.invitation_tokens import normalize_email
from sunrise.services.invitations import InvitationService

logger = logging.getLogger("sunrise.api.invitations")

router = APIRouter(tags=["invitations"])

INVALID_TOKEN_DETAIL = {"code": "INVALID_INVITATION", "message": "Invalid or expired invitation token"}


class InvitationMetadataOut(BaseModel):
    name: str
    role: str


class AcceptInviteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=256)
    confirm_password: str = Field(..., alias="confirmPassword")

    @model_validator(mode="after")
    def _passwords_match(self) -> "AcceptInviteRequest":
        if self.password != self.confirm_password:
            raise ValueError("Passwords don't match")
        return self


class AcceptInviteResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    user_id: str = Field(alias="userId")


@router.get("/invitations/metadata", response_model=InvitationMetadataOut)
def get_invitation_metadata(
    token: str = Query(..., min_length=1),
    email: EmailStr = Query(...),
    service: InvitationService = Depends(get_invitation_service),
):
    result = service.get_metadata(email, token)
    if not result.valid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_TOKEN_DETAIL)

    return InvitationMetadataOut(name=result.metadata.name, role=result.metadata.role)


@router.post("/auth/accept-invite", response_model=AcceptInviteResponse)
def accept_invite(
    payload: AcceptInviteRequest,
    db: Session = Depends(get_db),
    service: InvitationService = Depends(get_invitation_service),
):
    email = normalize_email(payload.email)
    logger.info("invitation_acceptance_requested email=%s", email)

    result = service.get_metadata(email, payload.token)
    if not result.valid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_TOKEN_DETAIL)

    if db.query(User).filter(User.email == email).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "EMAIL_ALREADY_REGISTERED", "message": "Email already registered. Please log in."},
        )

    # Accepting an invitation proves ownership of the address.
    user = User(
        email=email,
        name=result.metadata.name,
        role=result.metadata.role,
        hashed_password=pwd_context.hash(payload.password),
        email_verified=True,
    )
    db.add(user)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "EMAIL_ALREADY_REGISTERED", "message": "Email already registered. Please log in."},
        )

    db.refresh(user)

    # Single use: the account exists now, every token for this email goes.
    service.delete(email)

    logger.info("invitation_accepted email=%s user_id=%s role=%s", email, user.id, user.role)

    return AcceptInviteResponse(message="Invitation accepted successfully.", user_id=user.id)
