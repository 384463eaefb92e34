"""Tests for yard and rack API endpoints."""

from collections.abc import AsyncGenerator, Iterator
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import status
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession

from pipevault.database import get_db
from pipevault.main import app
from pipevault.models.yard import Rack
from pipevault.services.errors import ConcurrentModification, NotFound
from pipevault.services.racks import AreaSummary, RackAdjustmentResult, YardSummary, summarize_rack


@pytest.fixture
def client() -> Iterator[TestClient]:
    """Test client with a mock database session."""
    session = AsyncMock(spec=AsyncSession)

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_rack(occupied: int = 150) -> Rack:
    return Rack(
        id="B-N-1",
        name="Rack 1",
        capacity=200,
        capacity_meters=2400.0,
        occupied=occupied,
        occupied_meters=occupied * 12.0,
        version=2,
    )


class TestGetYards:
    """Tests for GET /yards."""

    def test_lists_yards(self, client: TestClient) -> None:
        """Test the nested yard, area and rack listing."""
        rack = summarize_rack(make_rack())
        area = AreaSummary(
            id="B-N", name="North", racks=[rack], capacity=200, occupied=150,
            available=50, utilization_pct=75.0,
        )
        yard = YardSummary(
            id="B", name="Yard B", areas=[area], capacity=200, occupied=150,
            available=50, utilization_pct=75.0,
        )
        with patch("pipevault.api.yards.list_yards", AsyncMock(return_value=[yard])):
            response = client.get("/yards")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data[0]["id"] == "B"
        assert data[0]["areas"][0]["racks"][0]["available"] == 50
        assert data[0]["areas"][0]["racks"][0]["utilization_pct"] == 75.0


class TestGetRack:
    """Tests for GET /yards/racks/{rack_id}."""

    def test_get_rack(self, client: TestClient) -> None:
        """Test reading one rack's occupancy."""
        with patch("pipevault.api.yards.get_rack", AsyncMock(return_value=make_rack(50))):
            response = client.get("/yards/racks/B-N-1")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["available_meters"] == 1800.0

    def test_missing_rack(self, client: TestClient) -> None:
        """Test that an unknown rack is a 404."""
        with patch(
            "pipevault.api.yards.get_rack", AsyncMock(side_effect=NotFound("Rack", "B-Z-1"))
        ):
            response = client.get("/yards/racks/B-Z-1")
        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestAdjustRack:
    """Tests for POST /yards/racks/{rack_id}/adjust."""

    BODY = {
        "new_joints": 140,
        "new_meters": 1680.0,
        "reason": "Physical count after storm",
        "adjusted_by": "admin@mpsgroup.ca",
    }

    def test_adjust(self, client: TestClient) -> None:
        """Test a successful adjustment."""
        result = RackAdjustmentResult("B-N-1", 150, 140, 1800.0, 1680.0, 3)
        with patch(
            "pipevault.api.yards.adjust_rack_occupancy", AsyncMock(return_value=result)
        ) as mock_adjust:
            response = client.post("/yards/racks/B-N-1/adjust", json=self.BODY)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["old_joints"] == 150
        assert data["new_joints"] == 140
        assert data["version"] == 3
        assert data["invalidate"] == ["yards"]
        assert mock_adjust.await_args.kwargs["adjusted_by"] == "admin@mpsgroup.ca"

    def test_short_reason(self, client: TestClient) -> None:
        """Test that a short reason fails validation."""
        response = client.post(
            "/yards/racks/B-N-1/adjust", json={**self.BODY, "reason": "recount"}
        )
        assert response.status_code == 422

    def test_concurrent_change(self, client: TestClient) -> None:
        """Test that a concurrent change is a 409."""
        with patch(
            "pipevault.api.yards.adjust_rack_occupancy",
            AsyncMock(side_effect=ConcurrentModification("B-N-1")),
        ):
            response = client.post("/yards/racks/B-N-1/adjust", json=self.BODY)
        assert response.status_code == status.HTTP_409_CONFLICT
