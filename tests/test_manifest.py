"""Tests for manifest extraction, validation and load summaries.

This module tests:
- ManifestItem boundary validation
- parse_manifest_payload for model output and stored payloads
- Tally sheet parsing with pandas
- Quality rules in validate_manifest
- Load totals
- Gemini error mapping
"""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import httpx
import pytest
from google.genai import errors as genai_errors
from sqlalchemy.ext.asyncio import AsyncSession

from pipevault.models.document import Document
from pipevault.services.errors import NotFound, UpstreamServiceUnavailable
from pipevault.services.manifest import (
    GeminiManifestExtractor,
    ManifestConfigError,
    ManifestItem,
    ManifestPayloadError,
    calculate_load_summary,
    document_file_type,
    get_document,
    parse_manifest_payload,
    parse_tally_sheet,
    save_manifest_document,
    validate_manifest,
)


def joint(**overrides: object) -> ManifestItem:
    fields: dict[str, object] = {
        "manufacturer": "Tenaris",
        "heat_number": "H12345",
        "serial_number": "J-001",
        "tally_length_ft": 40.0,
        "quantity": 1,
        "grade": "L80",
        "outer_diameter_in": 9.625,
        "weight_lbs_ft": 40.0,
    }
    fields.update(overrides)
    return ManifestItem(**fields)


class TestManifestItem:
    """Tests for ManifestItem field handling."""

    def test_placeholder_strings_become_none(self) -> None:
        """Test that blank and N/A values are treated as missing."""
        item = ManifestItem.model_validate(
            {"manufacturer": "  ", "heat_number": "N/A", "serial_number": "null"}
        )
        assert item.manufacturer is None
        assert item.heat_number is None
        assert item.serial_number is None

    def test_grade_upper_cased(self) -> None:
        """Test that grades are normalized to upper case."""
        assert ManifestItem(grade="p110").grade == "P110"

    def test_outer_diameter_alias(self) -> None:
        """Test that model output using 'outer_diameter' is accepted."""
        assert ManifestItem.model_validate({"outer_diameter": 5.5}).outer_diameter_in == 5.5

    def test_null_quantity_defaults_to_one(self) -> None:
        """Test that a missing quantity means one joint."""
        assert ManifestItem.model_validate({"quantity": None}).quantity == 1


class TestParseManifestPayload:
    """Tests for parse_manifest_payload."""

    def test_json_text(self) -> None:
        """Test parsing a JSON array returned by the model."""
        items = parse_manifest_payload(
            '[{"serial_number": "J-1", "tally_length_ft": 41.2, "grade": "l80"}]'
        )
        assert len(items) == 1
        assert items[0].grade == "L80"

    def test_code_fenced_json(self) -> None:
        """Test that a markdown code fence around the JSON is tolerated."""
        items = parse_manifest_payload('```json\n[{"serial_number": "J-1"}]\n```')
        assert items[0].serial_number == "J-1"

    def test_stored_list(self) -> None:
        """Test that an already-decoded list is validated too."""
        assert parse_manifest_payload([{"quantity": 3}])[0].quantity == 3

    @pytest.mark.parametrize("raw", [None, "", "[]", "null"])
    def test_empty(self, raw: str | None) -> None:
        """Test that empty payloads give no items."""
        assert parse_manifest_payload(raw) == []

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            '{"serial_number": "J-1"}',
            '["J-1"]',
            '[{"quantity": 0}]',
            '[{"tally_length_ft": "long"}]',
        ],
    )
    def test_malformed(self, raw: str) -> None:
        """Test that malformed payloads are rejected at the boundary."""
        with pytest.raises(ManifestPayloadError):
            parse_manifest_payload(raw)


class TestParseTallySheet:
    """Tests for parse_tally_sheet."""

    def test_csv_with_aliased_headers(self) -> None:
        """Test that common header spellings map to manifest fields."""
        csv = (
            b"Mill,Heat No,Joint #,Tally Length (ft),Grade,OD,Wt\n"
            b"Tenaris,H1,001,40.12,l80,9.625,40\n"
            b"VAM,H2,002,39.80,P110,9.625,40\n"
        )
        result = parse_tally_sheet(csv, ".csv")

        assert result.errors == []
        assert result.total_rows == 2
        assert result.items[0].serial_number == "001"
        assert result.items[0].grade == "L80"
        assert result.items[1].tally_length_ft == 39.80
        assert result.items[1].outer_diameter_in == 9.625

    def test_bad_row_reported(self) -> None:
        """Test that an unreadable row is reported with its row number."""
        csv = b"serial,length\nJ-1,40\nJ-2,forty\nJ-3,41\n"
        result = parse_tally_sheet(csv, ".csv")

        assert len(result.items) == 2
        assert len(result.errors) == 1
        assert result.errors[0].row_number == 3
        assert "tally_length_ft" in result.errors[0].message

    def test_missing_columns(self) -> None:
        """Test that a sheet without length or serial columns is refused."""
        result = parse_tally_sheet(b"color,shape\nred,round\n", ".csv")
        assert result.items == []
        assert "Missing required columns" in result.errors[0].message

    def test_empty_file(self) -> None:
        """Test that an empty file is reported, not raised."""
        result = parse_tally_sheet(b"", ".csv")
        assert result.items == []
        assert result.errors

    def test_unsupported_extension(self) -> None:
        """Test that unknown extensions are reported."""
        result = parse_tally_sheet(b"x", ".ods")
        assert "Unsupported" in result.errors[0].message


class TestValidateManifest:
    """Tests for validate_manifest."""

    def test_clean_manifest(self) -> None:
        """Test that complete, plausible joints pass without findings."""
        result = validate_manifest([joint(), joint(serial_number="J-002")])
        assert result.is_valid
        assert result.errors == []
        assert result.warnings == []
        assert result.total_joints == 2

    def test_duplicate_serial_is_error(self) -> None:
        """Test that repeated serials (any case) are errors."""
        result = validate_manifest([joint(serial_number="j-001"), joint(serial_number="J-001")])
        assert not result.is_valid
        assert result.errors[0].joint_index == 1
        assert "index 0" in result.errors[0].issue

    @pytest.mark.parametrize("length", [12.0, 55.5])
    def test_implausible_length(self, length: float) -> None:
        """Test that tally lengths outside 20-50 ft are flagged."""
        result = validate_manifest([joint(tally_length_ft=length)])
        assert result.is_valid
        assert [w.field for w in result.warnings] == ["tally_length_ft"]

    def test_missing_identifiers(self) -> None:
        """Test that missing manufacturer, heat and serial are warnings."""
        result = validate_manifest(
            [joint(manufacturer=None, heat_number=None, serial_number=None)]
        )
        assert {w.field for w in result.warnings} == {
            "manufacturer",
            "heat_number",
            "serial_number",
        }

    def test_grade_format(self) -> None:
        """Test that an unusual grade format is a warning."""
        result = validate_manifest([joint(grade="SUPER STEEL")])
        assert result.warnings[0].field == "grade"

    def test_quantity_above_one(self) -> None:
        """Test that multi-joint lines are flagged."""
        result = validate_manifest([joint(quantity=3)])
        assert result.total_joints == 3
        assert result.warnings[0].field == "quantity"

    def test_manufacturer_corrections(self) -> None:
        """Test that non-standard spellings get a suggestion."""
        result = validate_manifest([joint(manufacturer="TENRIS"), joint(serial_number="J-2")])
        assert result.manufacturer_corrections == {"TENRIS": "Tenaris"}


class TestCalculateLoadSummary:
    """Tests for calculate_load_summary."""

    def test_totals(self) -> None:
        """Test joint, length and weight totals."""
        summary = calculate_load_summary(
            [joint(tally_length_ft=40.0, weight_lbs_ft=20.0), joint(quantity=2, tally_length_ft=30.0)]
        )
        assert summary.total_joints == 3
        assert summary.total_length_ft == 100.0
        assert summary.total_length_m == 30.48
        assert summary.total_weight_lbs == 3200
        assert summary.total_weight_kg == 1451

    def test_missing_values(self) -> None:
        """Test that missing lengths and weights count as zero."""
        summary = calculate_load_summary([ManifestItem()])
        assert summary.total_joints == 1
        assert summary.total_length_ft == 0.0
        assert summary.total_weight_kg == 0


class TestGeminiManifestExtractor:
    """Tests for GeminiManifestExtractor."""

    @staticmethod
    def _extractor_with(generate: AsyncMock) -> GeminiManifestExtractor:
        client = MagicMock()
        client.aio.models.generate_content = generate
        extractor = GeminiManifestExtractor(api_key="test-key", model="gemini-test", timeout=5)
        extractor._client = client
        return extractor

    async def test_extracts_items(self) -> None:
        """Test that the model's JSON is validated into items."""
        response = MagicMock()
        response.text = '[{"serial_number": "J-1", "tally_length_ft": 40.5}]'
        generate = AsyncMock(return_value=response)
        extractor = self._extractor_with(generate)

        items = await extractor.extract(b"%PDF-1.4", "application/pdf")

        assert items[0].serial_number == "J-1"
        assert generate.await_args.kwargs["model"] == "gemini-test"

    async def test_not_configured(self) -> None:
        """Test that a missing API key is a configuration error."""
        with patch("pipevault.services.manifest.settings") as mock_settings:
            mock_settings.gemini_api_key = ""
            mock_settings.gemini_model = "gemini-test"
            mock_settings.gemini_timeout = 5
            extractor = GeminiManifestExtractor()
        with pytest.raises(ManifestConfigError):
            await extractor.extract(b"data", "image/png")

    async def test_client_created_with_timeout(self) -> None:
        """Test that the Gemini client is created once with a millisecond timeout."""
        with patch("pipevault.services.manifest.genai.Client") as mock_client_class:
            extractor = GeminiManifestExtractor(api_key="k", model="m", timeout=7)
            first = extractor._get_client()
            second = extractor._get_client()

        assert first is second
        mock_client_class.assert_called_once()
        assert mock_client_class.call_args.kwargs["http_options"].timeout == 7000

    @pytest.mark.parametrize(
        "error",
        [
            genai_errors.APIError(503, {"error": {"message": "overloaded", "status": "UNAVAILABLE"}}),
            httpx.ReadTimeout("timed out"),
            httpx.ConnectError("connection refused"),
        ],
    )
    async def test_upstream_errors(self, error: Exception) -> None:
        """Test that API, timeout and network errors map to one domain error."""
        extractor = self._extractor_with(AsyncMock(side_effect=error))
        with pytest.raises(UpstreamServiceUnavailable):
            await extractor.extract(b"data", "image/jpeg")

    async def test_malformed_model_output(self) -> None:
        """Test that unusable model output is a payload error."""
        response = MagicMock()
        response.text = "I could not read this document."
        extractor = self._extractor_with(AsyncMock(return_value=response))
        with pytest.raises(ManifestPayloadError):
            await extractor.extract(b"data", "image/jpeg")


class TestManifestDocuments:
    """Tests for storing and loading manifest documents."""

    @pytest.mark.parametrize(
        ("extension", "expected"),
        [(".pdf", "pdf"), (".PNG", "image"), (".xlsx", "spreadsheet"), (".csv", "spreadsheet")],
    )
    def test_document_file_type(self, extension: str, expected: str) -> None:
        """Test upload classification by extension."""
        assert document_file_type(extension) == expected

    async def test_save_stores_items(self) -> None:
        """Test that validated items are stored as the parsed payload."""
        session = AsyncMock(spec=AsyncSession)
        session.add = MagicMock()
        request_id = uuid4()

        document = await save_manifest_document(
            session, "manifest.pdf", ".pdf", [joint()], request_id=request_id
        )

        session.add.assert_called_once_with(document)
        assert document.file_type == "pdf"
        assert document.request_id == request_id
        assert document.parsed_payload[0]["serial_number"] == "J-001"
        assert parse_manifest_payload(document.parsed_payload) == [joint()]

    async def test_get_missing_document(self) -> None:
        """Test that an unknown document raises NotFound."""
        session = AsyncMock(spec=AsyncSession)
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        session.execute.return_value = result
        with pytest.raises(NotFound):
            await get_document(session, uuid4())

    async def test_get_document(self) -> None:
        """Test that a stored document is returned."""
        document = Document(id=uuid4(), file_name="m.pdf", file_type="pdf")
        session = AsyncMock(spec=AsyncSession)
        result = MagicMock()
        result.scalar_one_or_none.return_value = document
        session.execute.return_value = result
        assert await get_document(session, document.id) is document
