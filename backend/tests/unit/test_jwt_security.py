"""
Security Test Suite - JWT Authentication

Tests that the bearer-token verification in dependencies.py correctly:
- Rejects missing Authorization headers
- Rejects malformed tokens
- Rejects expired tokens
- Rejects tokens with invalid signatures
- Accepts properly signed tokens
"""

import time

import jwt
from fastapi import FastAPI, Depends
from fastapi.testclient import TestClient

from app.api.dependencies import get_current_user_id
from app.config.settings import get_settings
from app.infrastructure.exceptions import MembershipError
from app.infrastructure.security import TokenIssuer
from app.main import membership_error_handler


USER_ID = "aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee"


# ---------------------------------------------------------------------------
# Minimal app that uses the real dependency
# ---------------------------------------------------------------------------

test_app = FastAPI()
test_app.add_exception_handler(MembershipError, membership_error_handler)


@test_app.get("/protected")
async def protected_endpoint(user_id: str = Depends(get_current_user_id)):
    return {"user_id": user_id}


client = TestClient(test_app, raise_server_exceptions=False)


def signed(payload, secret=None):
    return jwt.encode(payload, secret or get_settings().jwt_secret, algorithm="HS256")


# ---------------------------------------------------------------------------
# Tests: rejection scenarios
# ---------------------------------------------------------------------------


class TestJWTRejection:
    """Verify that invalid/missing JWTs are rejected with 401."""

    def test_no_auth_header(self):
        resp = client.get("/protected")
        assert resp.status_code == 401
        assert resp.json() == {"error": {"message": "Missing authorization token"}}

    def test_empty_bearer(self):
        resp = client.get("/protected", headers={"Authorization": "Bearer "})
        assert resp.status_code == 401

    def test_malformed_scheme(self):
        resp = client.get("/protected", headers={"Authorization": "Basic abc123"})
        assert resp.status_code == 401

    def test_garbage_token(self):
        resp = client.get("/protected", headers={"Authorization": "Bearer not.a.jwt"})
        assert resp.status_code == 401

    def test_wrong_signing_key(self):
        token = signed({"sub": USER_ID, "exp": int(time.time()) + 3600}, secret="another-secret-entirely")
        resp = client.get("/protected", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_expired_token(self):
        """An expired token (even with correct secret) must be rejected."""
        token = signed({"sub": USER_ID, "exp": int(time.time()) - 60})
        resp = client.get("/protected", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.json()["error"]["message"] == "Token has expired"

    def test_missing_subject(self):
        token = signed({"email": "sam@uni.ac.uk", "exp": int(time.time()) + 3600})
        resp = client.get("/protected", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_raw_uuid_rejected(self):
        """A bare user id is not a credential."""
        resp = client.get(
            "/protected",
            headers={"Authorization": f"Bearer {USER_ID}"},
        )
        assert resp.status_code == 401


# ---------------------------------------------------------------------------
# Tests: acceptance scenarios
# ---------------------------------------------------------------------------


class TestJWTAcceptance:
    """Verify that valid JWTs are accepted."""

    def test_valid_hs256_token(self):
        """A correctly signed HS256 token with valid claims should succeed."""
        token = signed({"sub": USER_ID, "exp": int(time.time()) + 3600})
        resp = client.get("/protected", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert resp.json()["user_id"] == USER_ID

    def test_issued_token_round_trips(self):
        token = TokenIssuer(get_settings()).issue(USER_ID, "sam@uni.ac.uk")
        resp = client.get("/protected", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert resp.json()["user_id"] == USER_ID
