"""
Tests for dashboard API routes.

Requests go through the ASGI app with the database and caller overridden.
"""

import time
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import jwt
import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError

from app.config import settings
from app.exceptions import DatabaseError
from app.models.domain import UserIdentity
from conftest import (
    TEST_EMAIL,
    TEST_USER_ID,
    create_mock_job,
    create_mock_profile,
    make_result,
)

VIDEO_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


def auth_header(**claims: object) -> dict[str, str]:
    payload: dict[str, object] = {
        "sub": TEST_USER_ID,
        "email": TEST_EMAIL,
        "aud": settings.auth_jwt_audience,
        "exp": int(time.time()) + 600,
    }
    payload.update(claims)
    token = jwt.encode(payload, settings.auth_jwt_secret, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


class TestAuthentication:
    """Bearer token handling on protected routes."""

    async def test_missing_token(self, async_client: AsyncClient, override_mock_db: AsyncMock) -> None:
        response = await async_client.get("/credits/balance")

        assert response.status_code == 401
        assert response.json() == {"ok": False, "error": "MISSING_BEARER_TOKEN"}
        assert response.headers["WWW-Authenticate"] == "Bearer"

    async def test_invalid_token(self, async_client: AsyncClient, override_mock_db: AsyncMock) -> None:
        response = await async_client.get(
            "/credits/balance", headers={"Authorization": "Bearer nope"}
        )

        assert response.status_code == 401
        assert response.json()["error"] == "INVALID_TOKEN"

    async def test_expired_token(self, async_client: AsyncClient, override_mock_db: AsyncMock) -> None:
        response = await async_client.get(
            "/credits/balance", headers=auth_header(exp=int(time.time()) - 60)
        )

        assert response.status_code == 401

    async def test_valid_token(self, async_client: AsyncClient, override_mock_db: AsyncMock) -> None:
        override_mock_db.get.return_value = create_mock_profile(credits=25)

        response = await async_client.get("/credits/balance", headers=auth_header())

        assert response.status_code == 200
        assert response.json()["credits"] == 25


class TestBalance:
    """GET /credits/balance."""

    async def test_existing_profile(
        self,
        async_client: AsyncClient,
        override_user: UserIdentity,
        override_mock_db: AsyncMock,
    ) -> None:
        override_mock_db.get.return_value = create_mock_profile(credits=10, plan="pro")

        response = await async_client.get("/credits/balance")

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["credits"] == 10
        assert body["profile"]["id"] == TEST_USER_ID
        assert body["profile"]["plan"] == "pro"

    async def test_new_identity_gets_profile(
        self,
        async_client: AsyncClient,
        override_user: UserIdentity,
        override_mock_db: AsyncMock,
    ) -> None:
        response = await async_client.get("/credits/balance")

        assert response.status_code == 200
        assert response.json()["credits"] == 0
        override_mock_db.add.assert_called_once()

    async def test_store_failure(
        self,
        async_client: AsyncClient,
        override_user: UserIdentity,
        override_mock_db: AsyncMock,
    ) -> None:
        override_mock_db.get.side_effect = OperationalError("SELECT", {}, Exception("gone"))

        response = await async_client.get("/credits/balance")

        assert response.status_code == 500
        assert response.json() == {"ok": False, "error": "BALANCE_ERROR"}


class TestSubmitVideo:
    """POST /videos/submit."""

    async def test_accepted(
        self,
        async_client: AsyncClient,
        override_user: UserIdentity,
        override_mock_db: AsyncMock,
    ) -> None:
        override_mock_db.get.return_value = create_mock_profile(credits=10)
        override_mock_db.execute.return_value = make_result(scalar=5)

        response = await async_client.post("/videos/submit", json={"url": VIDEO_URL, "minutes": "5"})

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["credits_left"] == 5
        assert body["video"]["status"] == "pending"
        assert body["video"]["requested_minutes"] == 5
        assert body["message"]

    @pytest.mark.parametrize(
        ("payload", "code"),
        [
            ({"url": VIDEO_URL, "minutes": 0}, "INVALID_MINUTES"),
            ({"url": VIDEO_URL, "minutes": "abc"}, "INVALID_MINUTES"),
            ({"url": VIDEO_URL}, "INVALID_MINUTES"),
            ({"url": VIDEO_URL, "minutes": 10**20}, "INVALID_MINUTES"),
            ({"url": 0, "minutes": 5}, "MISSING_URL"),
            ({"minutes": 5}, "MISSING_URL"),
            ({"url": "  ", "minutes": 5}, "MISSING_URL"),
        ],
    )
    async def test_invalid_input(
        self,
        async_client: AsyncClient,
        override_user: UserIdentity,
        override_mock_db: AsyncMock,
        payload: dict[str, object],
        code: str,
    ) -> None:
        response = await async_client.post("/videos/submit", json=payload)

        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": code}
        override_mock_db.execute.assert_not_called()

    async def test_insufficient_credits(
        self,
        async_client: AsyncClient,
        override_user: UserIdentity,
        override_mock_db: AsyncMock,
    ) -> None:
        override_mock_db.get.return_value = create_mock_profile(credits=3)
        override_mock_db.execute.return_value = make_result(scalar=None)
        override_mock_db.scalar.return_value = 3

        response = await async_client.post("/videos/submit", json={"url": VIDEO_URL, "minutes": 5})

        assert response.status_code == 402
        assert response.json() == {
            "ok": False,
            "error": "INSUFFICIENT_CREDITS",
            "credits": 3,
            "required": 5,
        }

    async def test_store_failure(
        self,
        async_client: AsyncClient,
        override_user: UserIdentity,
        override_mock_db: AsyncMock,
    ) -> None:
        with patch(
            "app.api.routes.VideoSubmissionService.submit",
            new=AsyncMock(side_effect=DatabaseError("refunded")),
        ):
            response = await async_client.post(
                "/videos/submit", json={"url": VIDEO_URL, "minutes": 5}
            )

        assert response.status_code == 500
        assert response.json() == {"ok": False, "error": "SUBMIT_ERROR"}


class TestListVideos:
    """GET /videos/list."""

    async def test_lists_jobs(
        self,
        async_client: AsyncClient,
        override_user: UserIdentity,
        override_mock_db: AsyncMock,
    ) -> None:
        jobs = [create_mock_job(status="done"), create_mock_job(status="error", error_message="x")]
        override_mock_db.execute.return_value = make_result(scalars_list=jobs)

        response = await async_client.get("/videos/list")

        assert response.status_code == 200
        videos = response.json()["videos"]
        assert [v["id"] for v in videos] == [str(j.id) for j in jobs]
        assert videos[1]["error_message"] == "x"


class TestListMoments:
    """GET /videos/moments."""

    async def test_missing_video_id(
        self,
        async_client: AsyncClient,
        override_user: UserIdentity,
        override_mock_db: AsyncMock,
    ) -> None:
        response = await async_client.get("/videos/moments")

        assert response.status_code == 400
        assert response.json()["error"] == "MISSING_VIDEO_ID"

    async def test_malformed_video_id(
        self,
        async_client: AsyncClient,
        override_user: UserIdentity,
        override_mock_db: AsyncMock,
    ) -> None:
        response = await async_client.get("/videos/moments", params={"video_id": "not-a-uuid"})

        assert response.status_code == 404
        assert response.json()["error"] == "VIDEO_NOT_FOUND"

    async def test_other_users_video(
        self,
        async_client: AsyncClient,
        override_user: UserIdentity,
        override_mock_db: AsyncMock,
    ) -> None:
        override_mock_db.get.return_value = create_mock_job(user_id="someone-else")

        response = await async_client.get("/videos/moments", params={"video_id": str(uuid4())})

        assert response.status_code == 404

    async def test_returns_moments(
        self,
        async_client: AsyncClient,
        override_user: UserIdentity,
        override_mock_db: AsyncMock,
    ) -> None:
        job = create_mock_job(status="done")
        override_mock_db.get.return_value = job
        override_mock_db.execute.return_value = make_result(scalars_list=[])

        response = await async_client.get("/videos/moments", params={"video_id": str(job.id)})

        assert response.status_code == 200
        assert response.json() == {"ok": True, "moments": []}


class TestCreateCheckout:
    """POST /payments/create."""

    async def test_configured_pack(self, async_client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "checkout_link_p150", "https://pay.example.com/p150")

        response = await async_client.post("/payments/create", json={"pack_id": "p150"})

        assert response.status_code == 200
        assert response.json() == {
            "ok": True,
            "checkout_url": "https://pay.example.com/p150",
            "pack_id": "p150",
        }

    async def test_pack_alias(self, async_client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "checkout_link_pro", "https://pay.example.com/pro")

        response = await async_client.post("/payments/create", json={"pack": "pro"})

        assert response.status_code == 200
        assert response.json()["checkout_url"] == "https://pay.example.com/pro"

    async def test_missing_pack(self, async_client: AsyncClient) -> None:
        response = await async_client.post("/payments/create", json={})

        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": "MISSING_PACK_ID"}

    async def test_unconfigured_link(
        self, async_client: AsyncClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(settings, "checkout_link_p500", "")

        response = await async_client.post(
            "/payments/create", json={"pack_id": "p500", "payer_email": " a@b.co "}
        )

        assert response.status_code == 400
        assert response.json() == {
            "ok": False,
            "error": "MISSING_DATA",
            "details": {
                "missing": "CHECKOUT_LINK_P500",
                "received": {"pack_id": "p500", "payer_email": "a@b.co"},
            },
        }

    async def test_invalid_token_rejected(self, async_client: AsyncClient) -> None:
        """Authentication is optional, but a bad token is still an error."""
        response = await async_client.post(
            "/payments/create",
            json={"pack_id": "p150"},
            headers={"Authorization": "Bearer nope"},
        )

        assert response.status_code == 401


class TestHealth:
    """GET /health."""

    async def test_healthy(self, async_client: AsyncClient, override_mock_db: AsyncMock) -> None:
        response = await async_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["database"] == "connected"
        assert body["version"] == settings.api_version

    async def test_database_down(self, async_client: AsyncClient, override_mock_db: AsyncMock) -> None:
        override_mock_db.execute.side_effect = OperationalError("SELECT 1", {}, Exception("down"))

        response = await async_client.get("/health")

        assert response.status_code == 503
        assert response.json() == {
            "ok": False,
            "error": "DATABASE_UNAVAILABLE",
            "database": "disconnected",
        }
