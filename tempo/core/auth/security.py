# tempo/core/auth/security.py

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from tempo.config import settings
from tempo.core.errors import ExpiredTokenError, IdentityError, InvalidTokenError
from tempo.core.users.models import User
from tempo.core.users.service import ExternalProfile, UsersService
from tempo.db.base import get_async_db_session

from .schemas import IdentityClaims

log = logging.getLogger(__name__)

# 'tokenUrl' is a formality: tokens are issued by the identity provider.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/v1/auth/signin")


# --- JWT helpers ---

def create_id_token(
    subject: str,
    email: Optional[str] = None,
    name: Optional[str] = None,
    picture: Optional[str] = None,
    email_verified: bool = False,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Mints an ID token the way the identity provider would (local dev and tests).

    Args:
        subject (str): Identity subject, stored as 'sub'.
        email, name, picture (str | None, optional): Profile claims.
        email_verified (bool, optional): 'email_verified' claim.
        expires_delta (timedelta | None, optional): Lifetime. Defaults to JWT_DEV_TOKEN_EXPIRE_MINUTES.

    Returns:
        str: Encoded JWT.
    """
    expire = datetime.now(timezone.utc) + (
        expires_delta if expires_delta is not None else timedelta(minutes=settings.JWT_DEV_TOKEN_EXPIRE_MINUTES)
    )
    claims: Dict[str, Any] = {"sub": subject, "exp": expire, "email_verified": email_verified}
    if email is not None:
        claims["email"] = email
    if name is not None:
        claims["name"] = name
    if picture is not None:
        claims["picture"] = picture
    if settings.JWT_AUDIENCE:
        claims["aud"] = settings.JWT_AUDIENCE
    if settings.JWT_ISSUER:
        claims["iss"] = settings.JWT_ISSUER
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


class IdentityVerifier:
    """Verifies identity-provider ID tokens and extracts the profile."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        algorithm: Optional[str] = None,
        audience: Optional[str] = None,
        issuer: Optional[str] = None,
    ):
        self.secret_key = secret_key or settings.JWT_SECRET_KEY
        self.algorithm = algorithm or settings.JWT_ALGORITHM
        self.audience = audience if audience is not None else settings.JWT_AUDIENCE
        self.issuer = issuer if issuer is not None else settings.JWT_ISSUER

    def verify(self, token: str) -> ExternalProfile:
        """
        Decodes and verifies the token.

        Raises:
            ExpiredTokenError: The token has expired.
            InvalidTokenError: Bad signature, claims or structure.
        """
        try:
            payload: Dict[str, Any] = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options={"verify_aud": self.audience is not None},
            )
            claims = IdentityClaims.model_validate(payload)
        except ExpiredSignatureError as e:
            log.info("Token verification failed: token expired")
            raise ExpiredTokenError("Token has expired") from e
        except JWTError as e:
            log.warning("Token verification failed: JWTError - %s", e)
            raise InvalidTokenError("Invalid token") from e
        except PydanticValidationError as e:
            log.warning("Token verification failed: bad claims - %s", e)
            raise InvalidTokenError("Token is missing required claims") from e

        return ExternalProfile(
            subject=claims.sub,
            email=claims.email,
            display_name=claims.name,
            photo_url=claims.picture,
            email_verified=claims.email_verified,
        )


def get_identity_verifier() -> IdentityVerifier:
    return IdentityVerifier()


# --- FastAPI dependency for the current user ---

async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_async_db_session),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
) -> User:
    """
    FastAPI dependency returning the authenticated user.

    Verifies the bearer token and returns the matching user, creating it
    when absent. The stored profile is only refreshed at sign-in.

    Raises:
        HTTPException: status_code 401 when the token cannot be verified.
    """
    try:
        profile = verifier.verify(token)
    except IdentityError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    user = await UsersService(db).find_or_create(profile, refresh_profile=False)
    log.debug("Authenticated user retrieved: %r", user)
    return user
