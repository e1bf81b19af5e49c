"""Unit tests for bearer-token authentication and role gates."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import jwt
import pytest
from fastapi import Depends, FastAPI, HTTPException
from fastapi.testclient import TestClient

from challengehub.auth import (
    Caller,
    create_access_token,
    decode_jwt,
    get_caller,
    require_admin,
    require_reviewer,
)
from challengehub.config import get_settings


def _sign(claims: dict) -> str:
    settings = get_settings()
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


@pytest.fixture
def client():
    app = FastAPI()

    @app.get("/me")
    async def me(caller: Caller = Depends(get_caller)):
        return {"user_id": str(caller.user_id), "role": caller.role}

    @app.get("/admin")
    async def admin(caller: Caller = Depends(require_admin)):
        return {"ok": True}

    @app.get("/review")
    async def review(caller: Caller = Depends(require_reviewer)):
        return {"ok": True}

    return TestClient(app)


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class TestDecodeJwt:
    def test_round_trip_claims(self):
        user_id = str(uuid4())
        claims = decode_jwt(create_access_token(user_id, role="reviewer"))

        assert claims["sub"] == user_id
        assert claims["role"] == "reviewer"

    def test_expired_token(self):
        token = _sign({"sub": str(uuid4()), "exp": datetime.now(timezone.utc) - timedelta(minutes=1)})

        with pytest.raises(HTTPException) as exc_info:
            decode_jwt(token)
        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Token expired"

    def test_wrong_signature(self):
        token = jwt.encode({"sub": str(uuid4())}, "some-other-secret-value", algorithm="HS256")

        with pytest.raises(HTTPException) as exc_info:
            decode_jwt(token)
        assert exc_info.value.detail == "Invalid token"


class TestGetCaller:
    def test_valid_token(self, client):
        user_id = str(uuid4())

        response = client.get("/me", headers=_bearer(create_access_token(user_id)))

        assert response.status_code == 200
        assert response.json() == {"user_id": user_id, "role": "user"}

    @pytest.mark.parametrize(
        "headers",
        [{}, {"Authorization": "Basic abc"}, {"Authorization": "Bearer "}, _bearer("garbage")],
    )
    def test_rejected_headers(self, client, headers):
        assert client.get("/me", headers=headers).status_code == 401

    def test_subject_must_be_uuid(self, client):
        token = _sign({"sub": "alice", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)})

        assert client.get("/me", headers=_bearer(token)).status_code == 401

    def test_unknown_role_downgraded(self, client):
        token = create_access_token(str(uuid4()), role="superuser")

        assert client.get("/me", headers=_bearer(token)).json()["role"] == "user"


class TestRoleGates:
    @pytest.mark.parametrize(
        "role,admin_status,review_status",
        [
            ("user", 403, 403),
            ("reviewer", 403, 200),
            ("admin", 200, 200),
        ],
    )
    def test_role_matrix(self, client, role, admin_status, review_status):
        headers = _bearer(create_access_token(str(uuid4()), role=role))

        assert client.get("/admin", headers=headers).status_code == admin_status
        assert client.get("/review", headers=headers).status_code == review_status
