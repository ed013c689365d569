"""Tests for auth security functions."""

from datetime import timedelta
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from jose import JWTError, jwt

from src.auth.dependencies import authenticate_token
from src.auth.permissions import UserRole
from src.auth.security import create_access_token, decode_access_token
from src.config import get_settings
from src.core.context import get_user_id


class TestAccessToken:
    """Tests for access token creation and decoding."""

    def test_create_access_token(self) -> None:
        """Should create valid access token."""
        token = create_access_token({"sub": str(uuid4()), "role": UserRole.USER.value})
        assert token is not None
        assert len(token) > 0

    def test_decode_access_token(self) -> None:
        """Should decode token and return payload."""
        user_id = str(uuid4())
        token = create_access_token(
            {"sub": user_id, "role": UserRole.ADMIN.value, "name": "Ana"}
        )
        payload = decode_access_token(token)

        assert payload["sub"] == user_id
        assert payload["role"] == UserRole.ADMIN.value
        assert payload["name"] == "Ana"
        assert payload["type"] == "access"
        assert "exp" in payload
        assert "iat" in payload

    def test_decode_access_token_expired(self) -> None:
        """Should raise JWTError for expired token."""
        token = create_access_token(
            {"sub": str(uuid4())}, expires_delta=timedelta(seconds=-1)
        )
        with pytest.raises(JWTError):
            decode_access_token(token)

    def test_decode_access_token_invalid(self) -> None:
        """Should raise JWTError for invalid token."""
        with pytest.raises(JWTError):
            decode_access_token("invalid.token.here")

    def test_decode_access_token_wrong_type(self) -> None:
        settings = get_settings()
        token = jwt.encode(
            {"sub": "u-1", "type": "refresh"},
            settings.auth_secret_key,
            algorithm=settings.auth_algorithm,
        )
        with pytest.raises(JWTError, match="expected 'access'"):
            decode_access_token(token)

    def test_decode_access_token_missing_sub(self) -> None:
        token = create_access_token({"role": "user"})
        with pytest.raises(JWTError, match="sub"):
            decode_access_token(token)

    def test_access_tokens_unique_different_users(self) -> None:
        token1 = create_access_token({"sub": str(uuid4())})
        token2 = create_access_token({"sub": str(uuid4())})
        assert token1 != token2


class TestAuthenticateToken:
    def test_binds_user_to_context(self) -> None:
        actor = authenticate_token(create_access_token({"sub": "u-ctx", "role": "user"}))
        assert actor.id == "u-ctx"
        assert get_user_id() == "u-ctx"


class TestAuthDependencies:
    """Endpoints reject missing, malformed and non-moderator tokens."""

    def test_missing_token(self, client: TestClient) -> None:
        response = client.post("/forum/create", json={"title": "t", "content": "c"})
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_invalid_token(self, client: TestClient) -> None:
        response = client.post(
            "/forum/create",
            json={"title": "t", "content": "c"},
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid or expired token"

    def test_moderator_required(
        self, client: TestClient, alice_headers: dict[str, str]
    ) -> None:
        response = client.put("/forum/pin/some-post", headers=alice_headers)
        assert response.status_code == 403
