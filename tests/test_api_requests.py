"""Tests for storage request API endpoints."""

from collections.abc import AsyncGenerator, Iterator
from datetime import UTC, date, datetime
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from fastapi import status
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession

from pipevault.database import get_db
from pipevault.main import app
from pipevault.models.storage_request import StorageRequest
from pipevault.models.truck_load import TruckLoad
from pipevault.services.allocation import OccupancyDelta
from pipevault.services.approval import ApprovalResult, RejectionResult
from pipevault.services.errors import (
    CapacityExceeded,
    ConcurrentModification,
    InvalidStatusTransition,
    MixedYardAllocation,
    NotFound,
)
from pipevault.services.inventory import DeliveryResult, PickupResult


@pytest.fixture
def mock_session() -> Iterator[AsyncMock]:
    """Override get_db with a mock session."""
    session = AsyncMock(spec=AsyncSession)

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield session

    app.dependency_overrides[get_db] = override_get_db
    yield session
    app.dependency_overrides.clear()


@pytest.fixture
def client(mock_session: AsyncMock) -> TestClient:
    return TestClient(app)


def make_request(status_value: str = "SUBMITTED") -> StorageRequest:
    return StorageRequest(
        id=uuid4(),
        company_id=uuid4(),
        user_email="ops@summit.ca",
        reference_id="AFE-158970-1",
        status=status_value,
        item_type="Casing",
        avg_joint_length_m=12.0,
        total_joints=100,
        storage_start_date=date(2026, 11, 1),
        storage_end_date=date(2027, 5, 1),
        created_at=datetime(2026, 10, 19, tzinfo=UTC),
    )


SUBMIT_BODY = {
    "user_email": "ops@summit.ca",
    "reference_id": "AFE-158970-1",
    "item_type": "Casing",
    "total_joints": 100,
    "avg_joint_length_m": 12.0,
    "storage_start_date": "2026-11-01",
    "storage_end_date": "2027-05-01",
}


class TestSubmitStorageRequest:
    """Tests for POST /requests."""

    def test_submit(self, client: TestClient) -> None:
        """Test that a submission returns the request and invalidation keys."""
        request = make_request()
        with patch(
            "pipevault.api.requests.create_storage_request",
            AsyncMock(return_value=request),
        ) as mock_create:
            response = client.post("/requests", json=SUBMIT_BODY)

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["request"]["status"] == "SUBMITTED"
        assert data["request"]["total_length_m"] == 1200.0
        assert "requests" in data["invalidate"]
        assert f"companies:details:{request.company_id}" in data["invalidate"]
        assert mock_create.await_args.args[1].total_joints == 100

    def test_rejects_zero_joints(self, client: TestClient) -> None:
        """Test that schema validation rejects a zero joint count."""
        response = client.post("/requests", json={**SUBMIT_BODY, "total_joints": 0})
        assert response.status_code == 422


class TestGetStorageRequests:
    """Tests for GET /requests and GET /requests/{id}."""

    def test_list(self, client: TestClient) -> None:
        """Test listing requests."""
        with patch(
            "pipevault.api.requests.list_storage_requests",
            AsyncMock(return_value=[make_request(), make_request("APPROVED")]),
        ) as mock_list:
            response = client.get("/requests?status=approved")

        assert response.status_code == status.HTTP_200_OK
        assert len(response.json()) == 2
        assert mock_list.await_args.kwargs["status"] == "approved"

    def test_get_missing(self, client: TestClient) -> None:
        """Test that an unknown request returns 404."""
        request_id = uuid4()
        with patch(
            "pipevault.api.requests.get_storage_request",
            AsyncMock(side_effect=NotFound("Storage request", request_id)),
        ):
            response = client.get(f"/requests/{request_id}")
        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestApproveRequest:
    """Tests for POST /requests/{id}/approve."""

    BODY = {"rack_ids": ["B-N-1", "B-N-2"], "admin_id": "admin@mpsgroup.ca"}

    def test_approve(self, client: TestClient) -> None:
        """Test a successful approval response."""
        request_id = uuid4()
        result = ApprovalResult(
            request_id=request_id,
            company_id=uuid4(),
            reference_id="AFE-1",
            status="APPROVED",
            assigned_location="Yard B, North, 2 Racks",
            rack_ids=["B-N-1", "B-N-2"],
            deltas=[OccupancyDelta("B-N-1", 50, 600.0), OccupancyDelta("B-N-2", 50, 600.0)],
            remaining_available={"B-N-1": 0, "B-N-2": 150},
            notification_queued=True,
        )
        with patch(
            "pipevault.api.requests.approve_storage_request",
            AsyncMock(return_value=result),
        ) as mock_approve:
            response = client.post(f"/requests/{request_id}/approve", json=self.BODY)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["assigned_location"] == "Yard B, North, 2 Racks"
        assert data["deltas"][0] == {
            "rack_id": "B-N-1",
            "occupied_delta": 50,
            "occupied_meters_delta": 600.0,
        }
        assert "yards" in data["invalidate"]
        assert mock_approve.await_args.args[2] == ["B-N-1", "B-N-2"]

    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (CapacityExceeded(250, 200, ["B-N-1"]), status.HTTP_409_CONFLICT),
            (ConcurrentModification("B-N-1"), status.HTTP_409_CONFLICT),
            (InvalidStatusTransition("AFE-1", "APPROVED", "APPROVED"), status.HTTP_409_CONFLICT),
            (MixedYardAllocation(["B", "C"]), 422),
            (NotFound("Rack", "B-Z-1"), status.HTTP_404_NOT_FOUND),
        ],
    )
    def test_domain_errors(self, client: TestClient, error: Exception, expected: int) -> None:
        """Test that approval failures map to HTTP status codes."""
        with patch(
            "pipevault.api.requests.approve_storage_request",
            AsyncMock(side_effect=error),
        ):
            response = client.post(f"/requests/{uuid4()}/approve", json=self.BODY)

        assert response.status_code == expected
        assert response.json()["detail"] == str(error)

    def test_requires_racks(self, client: TestClient) -> None:
        """Test that an empty rack list fails validation."""
        response = client.post(
            f"/requests/{uuid4()}/approve", json={"rack_ids": [], "admin_id": "a"}
        )
        assert response.status_code == 422


class TestRejectRequest:
    """Tests for POST /requests/{id}/reject."""

    def test_reject(self, client: TestClient) -> None:
        """Test a successful rejection response."""
        request_id = uuid4()
        result = RejectionResult(
            request_id=request_id,
            company_id=uuid4(),
            reference_id="AFE-1",
            status="REJECTED",
            rejection_reason="Yard full",
            notification_queued=True,
        )
        with patch(
            "pipevault.api.requests.reject_storage_request",
            AsyncMock(return_value=result),
        ):
            response = client.post(
                f"/requests/{request_id}/reject",
                json={"admin_id": "admin", "reason": "Yard full"},
            )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "REJECTED"
        assert "yards" not in response.json()["invalidate"]


class TestTruckLoads:
    """Tests for delivery, pickup and truck load endpoints."""

    LOAD = {
        "trucking_company": "Prairie Haulers",
        "driver_name": "Sam Ortiz",
        "joints_count": 50,
        "recorded_by": "yard@mpsgroup.ca",
    }

    def test_delivery(self, client: TestClient) -> None:
        """Test recording a delivery."""
        result = DeliveryResult(
            truck_load_id=uuid4(),
            request_id=uuid4(),
            company_id=uuid4(),
            status="ACTIVE",
            placements={"B-N-1": 50},
        )
        with patch(
            "pipevault.api.requests.record_delivery", AsyncMock(return_value=result)
        ) as mock_delivery:
            response = client.post(f"/requests/{result.request_id}/deliveries", json=self.LOAD)

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["placements"] == {"B-N-1": 50}
        assert "inventory" in response.json()["invalidate"]
        assert mock_delivery.await_args.args[2].joints_count == 50

    def test_pickup_request(self, client: TestClient) -> None:
        """Test asking for a pickup."""
        request = make_request("PICKUP_REQUESTED")
        with patch("pipevault.api.requests.request_pickup", AsyncMock(return_value=request)):
            response = client.post(
                f"/requests/{request.id}/pickup-request",
                json={"requested_by": "ops@summit.ca"},
            )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["request"]["status"] == "PICKUP_REQUESTED"

    def test_pickup(self, client: TestClient) -> None:
        """Test recording a pickup."""
        result = PickupResult(
            truck_load_id=uuid4(),
            request_id=uuid4(),
            company_id=uuid4(),
            status="COMPLETED",
            joints_picked_up=50,
            joints_remaining=0,
            released={"B-N-1": 50},
        )
        with patch("pipevault.api.requests.record_pickup", AsyncMock(return_value=result)):
            response = client.post(
                f"/requests/{result.request_id}/pickups",
                json={**self.LOAD, "assigned_uwi": "100/01-02-003-04W5/00"},
            )

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["status"] == "COMPLETED"
        assert data["released"] == {"B-N-1": 50}
        assert "yards" in data["invalidate"]

    def test_pickup_wrong_status(self, client: TestClient) -> None:
        """Test that a pickup without a pickup request is a conflict."""
        with patch(
            "pipevault.api.requests.record_pickup",
            AsyncMock(side_effect=InvalidStatusTransition("AFE-1", "ACTIVE", "COMPLETED")),
        ):
            response = client.post(f"/requests/{uuid4()}/pickups", json=self.LOAD)
        assert response.status_code == status.HTTP_409_CONFLICT

    def test_list_truck_loads(self, client: TestClient) -> None:
        """Test listing a request's truck loads."""
        load = TruckLoad(
            id=uuid4(),
            load_type="DELIVERY",
            trucking_company="Prairie Haulers",
            driver_name="Sam Ortiz",
            arrival_time=datetime(2026, 11, 2, 8, 30, tzinfo=UTC),
            joints_count=50,
            rack_id="B-N-1",
        )
        with patch("pipevault.api.requests.list_truck_loads", AsyncMock(return_value=[load])):
            response = client.get(f"/requests/{uuid4()}/truck-loads")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()[0]["joints_count"] == 50

    def test_truck_loads_for_unknown_request(self, client: TestClient) -> None:
        """Test that an empty listing for an unknown request is a 404."""
        request_id = uuid4()
        with (
            patch("pipevault.api.requests.list_truck_loads", AsyncMock(return_value=[])),
            patch(
                "pipevault.api.requests.get_storage_request",
                AsyncMock(side_effect=NotFound("Storage request", request_id)),
            ),
        ):
            response = client.get(f"/requests/{request_id}/truck-loads")
        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_check(self) -> None:
        """Test health check returns healthy status."""
        response = TestClient(app).get("/health")
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"status": "healthy"}
