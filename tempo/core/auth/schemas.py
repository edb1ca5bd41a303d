# tempo/core/auth/schemas.py

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Camel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class IdentityClaims(BaseModel):
    """Claims read from an identity-provider ID token."""
    sub: str = Field(..., min_length=1)
    email: Optional[str] = None
    name: Optional[str] = None
    picture: Optional[str] = None
    email_verified: bool = False


class SignInRequest(_Camel):
    id_token: str = Field(..., min_length=1)


class ProfileUpdateRequest(_Camel):
    display_name: Optional[str] = Field(None, max_length=255)
    photo_url: Optional[str] = Field(None, max_length=1024)


class UserOut(_Camel):
    """Public profile of the authenticated user."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    external_id: str = Field(..., serialization_alias="uid")
    email: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    email_verified: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
