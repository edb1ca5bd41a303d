# tests/test_auth.py
from datetime import timedelta

import pytest
from jose import jwt

from tempo.config import settings
from tempo.core.auth.security import IdentityVerifier, create_id_token
from tempo.core.errors import ExpiredTokenError, InvalidTokenError


# ---- Token verification ----

def test_verify_round_trip_profile():
    token = create_id_token("sub-1", email="a@example.com", name="Ann", picture="https://p", email_verified=True)
    profile = IdentityVerifier().verify(token)
    assert profile.subject == "sub-1"
    assert profile.email == "a@example.com"
    assert profile.display_name == "Ann"
    assert profile.photo_url == "https://p"
    assert profile.email_verified is True


def test_verify_expired_token():
    token = create_id_token("sub-1", expires_delta=timedelta(seconds=-5))
    with pytest.raises(ExpiredTokenError):
        IdentityVerifier().verify(token)


def test_verify_wrong_signature():
    token = create_id_token("sub-1")
    with pytest.raises(InvalidTokenError):
        IdentityVerifier(secret_key="another-secret").verify(token)


def test_verify_garbage():
    with pytest.raises(InvalidTokenError):
        IdentityVerifier().verify("not-a-jwt")


def test_verify_missing_subject():
    token = jwt.encode({"email": "a@example.com"}, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    with pytest.raises(InvalidTokenError):
        IdentityVerifier().verify(token)


def test_verify_audience_mismatch():
    token = jwt.encode(
        {"sub": "sub-1", "aud": "someone-else"}, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM
    )
    with pytest.raises(InvalidTokenError):
        IdentityVerifier(audience="tempo").verify(token)


# ---- Endpoints ----

@pytest.mark.asyncio
async def test_signin_creates_user(client):
    token = create_id_token("new-sub", email="new@example.com", name="Newbie", email_verified=True)
    resp = await client.post("/v1/auth/signin", json={"idToken": token})

    assert resp.status_code == 200
    body = resp.json()
    assert body["uid"] == "new-sub"
    assert body["displayName"] == "Newbie"
    assert body["emailVerified"] is True

    again = await client.post("/v1/auth/signin", json={"idToken": token})
    assert again.json()["id"] == body["id"]


@pytest.mark.asyncio
async def test_signin_invalid_token(client):
    resp = await client.post("/v1/auth/signin", json={"idToken": "broken"})
    assert resp.status_code == 401
    assert resp.json()["detail"]["error"] == "InvalidTokenError"
    assert resp.headers["www-authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_me_requires_token(client):
    resp = await client.get("/v1/auth/me")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_me_with_expired_token(client):
    token = create_id_token("sub-1", expires_delta=timedelta(minutes=-1))
    resp = await client.get("/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_me_and_patch_me(client, auth_headers):
    headers = auth_headers("me-sub", "me@example.com", "Me")
    me = await client.get("/v1/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["uid"] == "me-sub"

    patched = await client.patch("/v1/auth/me", json={"displayName": "Renamed"}, headers=headers)
    assert patched.status_code == 200
    assert patched.json()["displayName"] == "Renamed"

    empty = await client.patch("/v1/auth/me", json={}, headers=headers)
    assert empty.status_code == 400


@pytest.mark.asyncio
async def test_profile_edit_survives_later_requests(client, auth_headers):
    headers = auth_headers("keeps-sub", "keeps@example.com", "Token Name")
    await client.patch("/v1/auth/me", json={"displayName": "Local Name"}, headers=headers)

    me = await client.get("/v1/auth/me", headers=headers)
    assert me.json()["displayName"] == "Local Name"
    # Other authenticated routes do not touch the profile either
    await client.get("/v1/calendar/events", headers=headers)
    assert (await client.get("/v1/auth/me", headers=headers)).json()["displayName"] == "Local Name"


@pytest.mark.asyncio
async def test_signin_refreshes_profile_from_token(client, auth_headers):
    headers = auth_headers("fresh-sub", "fresh@example.com", "Token Name")
    await client.patch("/v1/auth/me", json={"displayName": "Local Name"}, headers=headers)

    token = create_id_token("fresh-sub", email="fresh@example.com", name="Token Name")
    signed_in = await client.post("/v1/auth/signin", json={"idToken": token})

    assert signed_in.json()["displayName"] == "Token Name"


@pytest.mark.asyncio
async def test_dev_token_endpoint(client, monkeypatch):
    resp = await client.post("/v1/auth/login/test", json={"subject": "dev-user", "email": "dev@example.com"})
    assert resp.status_code == 200
    token = resp.json()["idToken"]
    assert IdentityVerifier().verify(token).subject == "dev-user"

    monkeypatch.setattr(settings, "ENVIRONMENT", "prod")
    resp = await client.post("/v1/auth/login/test", json={"subject": "dev-user"})
    assert resp.status_code == 404
