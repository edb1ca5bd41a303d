# /app/tempo/api/v1/auth.py

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tempo.api.v1.errors import to_http_exception
from tempo.config import settings
from tempo.core.auth.schemas import ProfileUpdateRequest, SignInRequest, UserOut
from tempo.core.auth.security import IdentityVerifier, create_id_token, get_current_user, get_identity_verifier
from tempo.core.errors import TempoError
from tempo.core.timeutils import as_utc
from tempo.core.users.models import User
from tempo.core.users.service import UsersService
from tempo.db.base import get_async_db_session

router = APIRouter(prefix="/v1/auth", tags=["Authentication"])
log = logging.getLogger(__name__)


def user_to_out(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        external_id=user.external_id,
        email=user.email,
        display_name=user.display_name,
        photo_url=user.photo_url,
        email_verified=user.email_verified,
        created_at=as_utc(user.created_at),
        updated_at=as_utc(user.updated_at),
    )


@router.post("/signin", response_model=UserOut, summary="Sign in with an identity-provider ID token")
async def sign_in(
    payload: SignInRequest = Body(...),
    db: AsyncSession = Depends(get_async_db_session),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
) -> UserOut:
    try:
        profile = verifier.verify(payload.id_token)
        user = await UsersService(db).find_or_create(profile)
    except TempoError as e:
        raise to_http_exception(e) from e
    log.info("[API /auth/signin] User '%s' signed in", user.external_id)
    return user_to_out(user)


@router.get("/me", response_model=UserOut, summary="Profile of the authenticated user")
async def read_me(current_user: User = Depends(get_current_user)) -> UserOut:
    return user_to_out(current_user)


@router.patch("/me", response_model=UserOut, summary="Update display name and/or photo")
async def update_me(
    payload: ProfileUpdateRequest = Body(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db_session),
) -> UserOut:
    try:
        user = await UsersService(db).update_profile(
            current_user.external_id, display_name=payload.display_name, photo_url=payload.photo_url
        )
    except TempoError as e:
        raise to_http_exception(e) from e
    return user_to_out(user)


# --- Development helper ---
class TestTokenRequest(BaseModel):
    subject: str = Field(..., min_length=1, description="Identity subject to mint a token for")
    email: Optional[str] = None
    name: Optional[str] = None


class TestTokenResponse(BaseModel):
    id_token: str = Field(..., serialization_alias="idToken")
    token_type: str = Field("bearer", serialization_alias="tokenType")


@router.post(
    "/login/test",
    response_model=TestTokenResponse,
    summary="[Development Only] Mint an ID token for a subject",
    description="**WARNING:** disabled when ENVIRONMENT=prod.",
)
async def test_login(payload: TestTokenRequest = Body(...)) -> TestTokenResponse:
    if settings.ENVIRONMENT == "prod":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
    log.warning("Minting TEST token for subject %s. Ensure this is NOT production!", payload.subject)
    return TestTokenResponse(id_token=create_id_token(payload.subject, email=payload.email, name=payload.name))
