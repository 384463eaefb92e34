"""Tests for manifest upload API endpoints."""

from collections.abc import AsyncGenerator, Iterator
from datetime import UTC, date, datetime
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from fastapi import status
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession

from pipevault.api.documents import get_manifest_extractor
from pipevault.database import get_db
from pipevault.main import app
from pipevault.models.document import Document
from pipevault.models.storage_request import StorageRequest
from pipevault.services.errors import NotFound, UpstreamServiceUnavailable
from pipevault.services.manifest import (
    ManifestConfigError,
    ManifestItem,
    ManifestPayloadError,
)


@pytest.fixture
def mock_session() -> AsyncMock:
    session = AsyncMock(spec=AsyncSession)
    session.add = MagicMock()
    return session


@pytest.fixture
def mock_extractor() -> MagicMock:
    extractor = MagicMock()
    extractor.extract = AsyncMock(
        return_value=[
            ManifestItem(
                manufacturer="Tenaris",
                heat_number="H1",
                serial_number="J-1",
                tally_length_ft=40.0,
                grade="L80",
                weight_lbs_ft=20.0,
            ),
            ManifestItem(
                manufacturer="TENRIS",
                heat_number="H1",
                serial_number="J-1",
                tally_length_ft=41.0,
                grade="L80",
            ),
        ]
    )
    return extractor


@pytest.fixture
def client(mock_session: AsyncMock, mock_extractor: MagicMock) -> Iterator[TestClient]:
    """Test client with mocked database and extractor."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield mock_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_manifest_extractor] = lambda: mock_extractor
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestUploadManifest:
    """Tests for POST /documents/manifest."""

    def test_pdf_extraction(
        self, client: TestClient, mock_extractor: MagicMock, mock_session: AsyncMock
    ) -> None:
        """Test that a PDF is extracted, checked, totalled and stored."""
        response = client.post(
            "/documents/manifest",
            files={"file": ("manifest.pdf", b"%PDF-1.4 test", "application/pdf")},
        )

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["file_type"] == "pdf"
        assert len(data["items"]) == 2
        assert data["validation"]["is_valid"] is False
        assert data["validation"]["errors"][0]["field"] == "serial_number"
        assert data["validation"]["manufacturer_corrections"] == {"TENRIS": "Tenaris"}
        assert data["summary"]["total_joints"] == 2
        assert data["summary"]["total_length_ft"] == 81.0
        assert data["summary"]["total_weight_lbs"] == 800
        assert "documents" in data["invalidate"]
        mock_extractor.extract.assert_awaited_once_with(b"%PDF-1.4 test", "application/pdf")
        [document] = [c.args[0] for c in mock_session.add.call_args_list]
        assert isinstance(document, Document)
        assert len(document.parsed_payload) == 2

    def test_csv_tally_sheet(self, client: TestClient, mock_extractor: MagicMock) -> None:
        """Test that tally sheets are parsed without calling the model."""
        csv = b"serial,length,grade\nJ-1,40.1,L80\nJ-2,oops,L80\n"
        response = client.post(
            "/documents/manifest", files={"file": ("tally.csv", csv, "text/csv")}
        )

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["file_type"] == "spreadsheet"
        assert len(data["items"]) == 1
        assert data["row_errors"][0]["row"] == 3
        mock_extractor.extract.assert_not_called()

    def test_unreadable_tally_sheet(self, client: TestClient) -> None:
        """Test that a tally sheet with no usable rows is a 400."""
        response = client.post(
            "/documents/manifest",
            files={"file": ("tally.csv", b"color\nred\n", "text/csv")},
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_links_request_company(
        self, client: TestClient, mock_session: AsyncMock
    ) -> None:
        """Test that the document is tied to the request's company."""
        request = StorageRequest(
            id=uuid4(),
            company_id=uuid4(),
            reference_id="AFE-1",
            storage_start_date=date(2026, 11, 1),
            storage_end_date=date(2027, 1, 1),
        )
        with patch(
            "pipevault.api.documents.get_storage_request", AsyncMock(return_value=request)
        ):
            response = client.post(
                "/documents/manifest",
                files={"file": ("m.png", b"\x89PNG", "image/png")},
                data={"request_id": str(request.id)},
            )

        assert response.status_code == status.HTTP_201_CREATED
        [document] = [c.args[0] for c in mock_session.add.call_args_list]
        assert document.company_id == request.company_id
        assert f"companies:details:{request.company_id}" in response.json()["invalidate"]

    def test_unknown_request(self, client: TestClient) -> None:
        """Test that an unknown request is a 404."""
        with patch(
            "pipevault.api.documents.get_storage_request",
            AsyncMock(side_effect=NotFound("Storage request", "x")),
        ):
            response = client.post(
                "/documents/manifest",
                files={"file": ("m.pdf", b"%PDF", "application/pdf")},
                data={"request_id": str(uuid4())},
            )
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_unsupported_extension(self, client: TestClient) -> None:
        """Test that unsupported file types are rejected."""
        response = client.post(
            "/documents/manifest", files={"file": ("notes.txt", b"hello", "text/plain")}
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "Unsupported file type" in response.json()["detail"]

    def test_empty_file(self, client: TestClient) -> None:
        """Test that empty uploads are rejected."""
        response = client.post(
            "/documents/manifest", files={"file": ("m.pdf", b"", "application/pdf")}
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_file_too_large(self, client: TestClient) -> None:
        """Test that oversized uploads are rejected."""
        with patch("pipevault.api.documents.settings") as mock_settings:
            mock_settings.max_upload_size_mb = 0
            response = client.post(
                "/documents/manifest", files={"file": ("m.pdf", b"%PDF", "application/pdf")}
            )
        assert response.status_code == status.HTTP_413_REQUEST_ENTITY_TOO_LARGE

    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (ManifestConfigError("Gemini is not configured"), 503),
            (ManifestPayloadError("not an array"), 502),
            (UpstreamServiceUnavailable("Gemini request timed out"), 503),
        ],
    )
    def test_extraction_errors(
        self, client: TestClient, mock_extractor: MagicMock, error: Exception, expected: int
    ) -> None:
        """Test that extraction failures map to gateway errors."""
        mock_extractor.extract.side_effect = error
        response = client.post(
            "/documents/manifest", files={"file": ("m.jpg", b"\xff\xd8", "image/jpeg")}
        )
        assert response.status_code == expected


class TestGetManifest:
    """Tests for GET /documents/{document_id}."""

    def test_revalidates_stored_payload(self, client: TestClient) -> None:
        """Test that stored items are re-checked on read."""
        document = Document(
            id=uuid4(),
            file_name="m.pdf",
            file_type="pdf",
            document_type="manifest",
            parsed_payload=[{"serial_number": "J-1", "tally_length_ft": 60.0}],
            parsed_at=datetime(2026, 10, 19, tzinfo=UTC),
        )
        with patch("pipevault.api.documents.get_document", AsyncMock(return_value=document)):
            response = client.get(f"/documents/{document.id}")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["items"][0]["serial_number"] == "J-1"
        assert "tally_length_ft" in {w["field"] for w in data["validation"]["warnings"]}

    def test_corrupt_payload(self, client: TestClient) -> None:
        """Test that a stored payload that fails validation is a 422."""
        document = Document(
            id=uuid4(), file_name="m.pdf", file_type="pdf", parsed_payload={"rows": []}
        )
        with patch("pipevault.api.documents.get_document", AsyncMock(return_value=document)):
            response = client.get(f"/documents/{document.id}")
        assert response.status_code == 422

    def test_missing(self, client: TestClient) -> None:
        """Test that an unknown document is a 404."""
        with patch(
            "pipevault.api.documents.get_document",
            AsyncMock(side_effect=NotFound("Document", "x")),
        ):
            response = client.get(f"/documents/{uuid4()}")
        assert response.status_code == status.HTTP_404_NOT_FOUND
