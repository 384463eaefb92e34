"""Tests for the admin audit trail service and API."""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

from fastapi import status
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession

from pipevault.database import get_db
from pipevault.main import app
from pipevault.models.audit import AdminAuditLog
from pipevault.services.audit import (
    AuditAction,
    AuditLogFilters,
    query_audit_log,
    record_admin_action,
)


def make_entry(action: str = AuditAction.APPROVE_REQUEST) -> AdminAuditLog:
    return AdminAuditLog(
        id=uuid4(),
        admin_user_id="admin@mpsgroup.ca",
        action=action,
        entity_type="storage_request",
        entity_id=str(uuid4()),
        details={"rack_ids": ["B-N-1"]},
        created_at=datetime(2026, 10, 19, 12, 0, tzinfo=UTC),
    )


class TestRecordAdminAction:
    """Tests for record_admin_action."""

    async def test_adds_entry(self) -> None:
        """Test that the entry joins the caller's transaction."""
        session = AsyncMock(spec=AsyncSession)
        session.add = MagicMock()

        entry = await record_admin_action(
            session,
            admin_user_id="admin",
            action=AuditAction.ADJUST_RACK,
            entity_type="rack",
            entity_id="B-N-1",
            details={"reason": "Physical recount"},
        )

        session.add.assert_called_once_with(entry)
        session.flush.assert_awaited_once()
        assert entry.action == "ADJUST_RACK"
        assert entry.created_at is not None

    async def test_explicit_timestamp(self) -> None:
        """Test that a supplied timestamp is kept."""
        session = AsyncMock(spec=AsyncSession)
        session.add = MagicMock()
        when = datetime(2026, 1, 1, tzinfo=UTC)

        entry = await record_admin_action(
            session, "admin", AuditAction.REJECT_REQUEST, "storage_request", "x", timestamp=when
        )
        assert entry.created_at == when


class TestQueryAuditLog:
    """Tests for query_audit_log."""

    async def test_returns_entries_and_total(self) -> None:
        """Test that a count query and a page query are issued."""
        entries = [make_entry(), make_entry(AuditAction.REJECT_REQUEST)]
        count_result = MagicMock()
        count_result.scalar.return_value = 7
        page_result = MagicMock()
        page_result.scalars.return_value.all.return_value = entries
        session = AsyncMock(spec=AsyncSession)
        session.execute.side_effect = [count_result, page_result]

        found, total = await query_audit_log(
            session, AuditLogFilters(action="approve_request"), limit=2, offset=0
        )

        assert found == entries
        assert total == 7
        assert session.execute.await_count == 2


class TestAuditLogEndpoint:
    """Tests for GET /audit/logs."""

    def test_paginates(self) -> None:
        """Test pagination metadata and filters."""
        session = AsyncMock(spec=AsyncSession)

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        try:
            with patch(
                "pipevault.api.audit.query_audit_log",
                AsyncMock(return_value=([make_entry()], 51)),
            ) as mock_query:
                response = TestClient(app).get(
                    "/audit/logs?page=2&page_size=25&entity_type=rack"
                )

            assert response.status_code == status.HTTP_200_OK
            data = response.json()
            assert data["total"] == 51
            assert data["total_pages"] == 3
            assert data["items"][0]["action"] == "APPROVE_REQUEST"
            filters = mock_query.await_args.args[1]
            assert filters.entity_type == "rack"
            assert mock_query.await_args.kwargs == {"limit": 25, "offset": 25}
        finally:
            app.dependency_overrides.clear()
