"""
Security Test Suite: JWT Authentication

Tests that the centralized JWT verification in dependencies.py correctly:
- Rejects missing Authorization headers
- Rejects malformed tokens
- Rejects expired tokens
- Rejects tokens with invalid signatures or audiences
- Accepts properly signed tokens
"""

import time

import jwt
from fastapi import FastAPI, Depends
from fastapi.testclient import TestClient

from directory_billing.api.dependencies import get_current_user_id
from directory_billing.config.settings import settings


# ---------------------------------------------------------------------------
# Minimal app that uses the real dependency
# ---------------------------------------------------------------------------

test_app = FastAPI()


@test_app.get("/protected")
async def protected_endpoint(user_id: str = Depends(get_current_user_id)):
    return {"user_id": user_id}


client = TestClient(test_app, raise_server_exceptions=False)


def _token(claims: dict, secret: str = None) -> str:
    return jwt.encode(claims, secret or settings.auth_jwt_secret, algorithm="HS256")


def _claims(**overrides) -> dict:
    now = int(time.time())
    claims = {"sub": "acct_123", "aud": "authenticated", "iat": now, "exp": now + 600}
    claims.update(overrides)
    return claims


# ---------------------------------------------------------------------------
# Tests: rejection scenarios
# ---------------------------------------------------------------------------


class TestJWTRejection:
    """Verify that invalid/missing JWTs are rejected with 401."""

    def test_no_auth_header(self):
        resp = client.get("/protected")
        assert resp.status_code == 401

    def test_empty_bearer(self):
        resp = client.get("/protected", headers={"Authorization": "Bearer "})
        assert resp.status_code == 401

    def test_malformed_scheme(self):
        resp = client.get("/protected", headers={"Authorization": "Basic abc123"})
        assert resp.status_code == 401

    def test_garbage_token(self):
        resp = client.get("/protected", headers={"Authorization": "Bearer not.a.jwt"})
        assert resp.status_code == 401

    def test_expired_token(self):
        token = _token(_claims(exp=int(time.time()) - 60))
        resp = client.get("/protected", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Token has expired"

    def test_wrong_secret(self):
        token = _token(_claims(), secret="another-secret-that-is-long-enough-to-sign")
        resp = client.get("/protected", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_wrong_audience(self):
        token = _token(_claims(aud="someone-else"))
        resp = client.get("/protected", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_missing_subject(self):
        claims = _claims()
        del claims["sub"]
        resp = client.get("/protected", headers={"Authorization": f"Bearer {_token(claims)}"})
        assert resp.status_code == 401

    def test_unsigned_token(self):
        token = jwt.encode(_claims(), key=None, algorithm="none")
        resp = client.get("/protected", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401


class TestJWTAcceptance:

    def test_valid_token_returns_subject(self):
        resp = client.get(
            "/protected", headers={"Authorization": f"Bearer {_token(_claims())}"}
        )
        assert resp.status_code == 200
        assert resp.json() == {"user_id": "acct_123"}
