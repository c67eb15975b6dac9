"""
Tests for application wiring: root, metrics, validation errors.
"""

from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from httpx import AsyncClient
from prometheus_client import REGISTRY

from app.config import settings

PROCESSING_ROUTE = "/internal/videos/{video_id}/processing"


class TestRoot:
    async def test_root(self, async_client: AsyncClient) -> None:
        response = await async_client.get("/")

        assert response.status_code == 200
        assert response.json() == {
            "service": settings.api_title,
            "version": settings.api_version,
            "status": "running",
        }


class TestMetricsEndpoint:
    """GET /metrics."""

    async def test_exposes_prometheus_text(self, async_client: AsyncClient) -> None:
        await async_client.get("/")

        response = await async_client.get("/metrics")

        assert response.status_code == 200
        assert "highlights_http_requests_total" in response.text
        assert "highlights_debits_total" in response.text

    async def test_disabled(self, async_client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "metrics_enabled", False)

        response = await async_client.get("/metrics")

        assert response.status_code == 404
        assert response.json() == {"ok": False, "error": "METRICS_DISABLED"}


class TestMetricLabels:
    """HTTP metrics are labelled by route template, never by raw path."""

    async def test_path_parameters_share_one_series(
        self, async_client: AsyncClient, override_mock_db: AsyncMock
    ) -> None:
        video_ids = [uuid4() for _ in range(3)]
        for video_id in video_ids:
            await async_client.post(
                f"/internal/videos/{video_id}/processing",
                headers={"X-API-Key": settings.worker_api_key},
            )

        text = (await async_client.get("/metrics")).text

        assert PROCESSING_ROUTE in text
        for video_id in video_ids:
            assert str(video_id) not in text
        in_progress = REGISTRY.get_sample_value(
            "highlights_http_requests_in_progress",
            {"endpoint": PROCESSING_ROUTE, "method": "POST"},
        )
        assert in_progress == 0

    async def test_unknown_path_is_unmatched(self, async_client: AsyncClient) -> None:
        missing = f"/no-such-page/{uuid4()}"

        response = await async_client.get(missing)

        assert response.status_code == 404
        text = (await async_client.get("/metrics")).text
        assert missing not in text
        assert 'endpoint="unmatched"' in text

    async def test_failed_request_uses_route_template(
        self, async_client: AsyncClient, override_mock_db: AsyncMock
    ) -> None:
        labels = {"endpoint": PROCESSING_ROUTE, "method": "POST", "status_code": "500"}
        before = REGISTRY.get_sample_value("highlights_http_requests_total", labels) or 0

        with patch(
            "app.api.worker_routes.VideoJobService.mark_processing",
            new=AsyncMock(side_effect=RuntimeError("worker crashed")),
        ):
            with pytest.raises(RuntimeError):
                await async_client.post(
                    f"/internal/videos/{uuid4()}/processing",
                    headers={"X-API-Key": settings.worker_api_key},
                )

        after = REGISTRY.get_sample_value("highlights_http_requests_total", labels)
        assert after == before + 1


class TestValidationErrors:
    """Malformed bodies share the error envelope."""

    async def test_malformed_json(self, async_client: AsyncClient) -> None:
        response = await async_client.post(
            "/payments/create",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 422
        body = response.json()
        assert body["ok"] is False
        assert body["error"] == "INVALID_REQUEST"
        assert body["detail"]

    async def test_bad_path_parameter(
        self, async_client: AsyncClient, override_mock_db: AsyncMock
    ) -> None:
        response = await async_client.post(
            "/internal/videos/not-a-uuid/processing",
            headers={"X-API-Key": settings.worker_api_key},
        )

        assert response.status_code == 422
        assert response.json()["error"] == "INVALID_REQUEST"
