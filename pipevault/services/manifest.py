"""Pipe manifest extraction, validation and load summaries.

This module provides:
- ManifestItem: the typed line item every manifest source is validated into
- GeminiManifestExtractor: Gemini vision extraction for PDF and image manifests
- parse_tally_sheet: CSV/Excel tally sheets via pandas
- validate_manifest: rule-based quality checks on extracted joints
- calculate_load_summary: totals for a truck load
"""

import io
import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import httpx
import pandas as pd
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types
from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pipevault.config import settings
from pipevault.models.document import Document
from pipevault.services.errors import NotFound, PipeVaultError, UpstreamServiceUnavailable

logger = logging.getLogger(__name__)

FEET_PER_METER = 3.28084
LBS_PER_KG = 2.20462

MIN_TALLY_LENGTH_FT = 20.0
MAX_TALLY_LENGTH_FT = 50.0

GRADE_PATTERN = re.compile(r"^[A-Z]{1,2}-?\d{2,3}[A-Z]?$")

SUPPORTED_DOCUMENT_TYPES = {
    ".pdf": "application/pdf",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
}
TALLY_SHEET_EXTENSIONS = (".csv", ".xlsx", ".xls")

# Common spellings mapped to the standard manufacturer name
MANUFACTURER_CORRECTIONS = {
    "TENRIS": "Tenaris",
    "TENARIS": "Tenaris",
    "V.A.M.": "VAM",
    "VALLOUREC": "VAM",
    "USS": "US Steel",
    "U.S. STEEL": "US Steel",
    "TMK": "TMK IPSCO",
    "IPSCO": "TMK IPSCO",
    "HUNTING": "Hunting Energy Services",
}

MANIFEST_EXTRACTION_PROMPT = """
You are a pipe manifest data extraction specialist for the oil & gas industry.

Extract ALL pipe joints from this manifest document into structured JSON.

For each joint/row, extract:
- manufacturer: Company that made the pipe (e.g., "Tenaris", "VAM", "US Steel", "TMK IPSCO")
- heat_number: Heat/lot number (usually alphanumeric like "H12345", "AB-67890")
- serial_number: Unique joint identifier (may be stamped, stenciled, or printed)
- tally_length_ft: Measured length in FEET (convert from meters: 1m = 3.28084ft)
- quantity: Number of joints (usually 1 per line)
- grade: Steel grade (e.g., "L80", "P110", "J55", "N80", "K55", "C95", "T95")
- outer_diameter: Outside diameter in INCHES (e.g., 2.875, 4.5, 5.5, 9.625)
- weight_lbs_ft: Weight per foot in POUNDS (e.g., 9.5, 17.0, 23.0, 29.7)

Rules:
1. If a field is missing or unclear, use null (not empty string, not "N/A")
2. Convert ALL measurements to imperial units (feet, inches, lbs/ft)
3. Preserve leading zeros in serial numbers
4. Grade letters are capitalized (L80, not l80)
5. Do not include summary or totals rows as joints

Return ONLY a JSON array (no markdown, no explanation).
If you cannot extract any data, return an empty array: []
"""

# Tally sheet column aliases (case-insensitive)
TALLY_COLUMNS = {
    "manufacturer": ["manufacturer", "mfr", "mill", "maker"],
    "heat_number": ["heat_number", "heat number", "heat", "heat no", "heat #"],
    "serial_number": ["serial_number", "serial number", "serial", "joint", "joint #", "jt"],
    "tally_length_ft": [
        "tally_length_ft",
        "tally length (ft)",
        "tally length",
        "length (ft)",
        "length_ft",
        "length",
        "tally",
    ],
    "quantity": ["quantity", "qty", "joints", "count"],
    "grade": ["grade", "steel grade"],
    "outer_diameter_in": ["outer_diameter_in", "outer_diameter", "od", "od (in)", "size"],
    "weight_lbs_ft": ["weight_lbs_ft", "weight", "weight (lbs/ft)", "lbs/ft", "wt"],
}


class ManifestConfigError(PipeVaultError):
    """Raised when manifest extraction is not configured."""


class ManifestPayloadError(PipeVaultError):
    """Raised when an extraction payload is not a valid list of joints."""


class ManifestItem(BaseModel):
    """One manifest line (usually one joint)."""

    manufacturer: str | None = Field(default=None, description="Pipe manufacturer")
    heat_number: str | None = Field(default=None, description="Heat/lot number")
    serial_number: str | None = Field(default=None, description="Joint serial number")
    tally_length_ft: float | None = Field(
        default=None, ge=0, description="Measured joint length in feet"
    )
    quantity: int = Field(default=1, ge=1, description="Joints on this line")
    grade: str | None = Field(default=None, description="Steel grade (e.g., L80)")
    outer_diameter_in: float | None = Field(
        default=None,
        gt=0,
        validation_alias=AliasChoices("outer_diameter_in", "outer_diameter"),
        description="Outside diameter in inches",
    )
    weight_lbs_ft: float | None = Field(
        default=None, gt=0, description="Weight per foot in pounds"
    )

    @field_validator("manufacturer", "heat_number", "serial_number", "grade", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if value is None:
            return None
        text = str(value).strip()
        if not text or text.upper() in ("N/A", "NA", "NULL", "NONE"):
            return None
        return text

    @field_validator("grade")
    @classmethod
    def _upper_grade(cls, value: str | None) -> str | None:
        return value.upper() if value else value

    @field_validator("quantity", mode="before")
    @classmethod
    def _default_quantity(cls, value: Any) -> Any:
        return 1 if value is None else value


@dataclass
class ManifestIssue:
    """A problem found in one manifest line (or the whole manifest)."""

    field: str
    joint_index: int
    issue: str
    severity: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "joint_index": self.joint_index,
            "issue": self.issue,
            "severity": self.severity,
        }


@dataclass
class ManifestValidation:
    """Quality check results for a manifest."""

    total_joints: int
    errors: list[ManifestIssue] = field(default_factory=list)
    warnings: list[ManifestIssue] = field(default_factory=list)
    manufacturer_corrections: dict[str, str] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class LoadSummary:
    """Totals for a truck load computed from its manifest."""

    total_joints: int
    total_length_ft: float
    total_length_m: float
    total_weight_lbs: int
    total_weight_kg: int


@dataclass
class TallyRowError:
    """A row that could not be read from a tally sheet."""

    row_number: int
    message: str


@dataclass
class TallyParseResult:
    """Result of parsing a tally sheet."""

    items: list[ManifestItem]
    errors: list[TallyRowError]
    total_rows: int


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else text[3:]
        if text.endswith("```"):
            text = text[:-3]
        text = text.strip()
        if text.startswith("json"):
            text = text[4:].strip()
    return text


def parse_manifest_payload(raw: str | list[Any] | None) -> list[ManifestItem]:
    """Validate an extraction payload into manifest items.

    Args:
        raw: Model output text, an already-decoded list, or None.

    Returns:
        List of ManifestItem (empty when the payload holds no data).

    Raises:
        ManifestPayloadError: If the payload is not JSON, not an array, or
            any element fails validation.
    """
    if raw is None:
        return []

    if isinstance(raw, str):
        text = _strip_code_fence(raw)
        if not text:
            return []
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ManifestPayloadError(f"Manifest payload is not valid JSON: {e}") from e
    else:
        data = raw

    if data is None:
        return []
    if not isinstance(data, list):
        raise ManifestPayloadError(
            f"Manifest payload must be a JSON array, got {type(data).__name__}"
        )

    items: list[ManifestItem] = []
    for index, element in enumerate(data):
        if not isinstance(element, dict):
            raise ManifestPayloadError(f"Manifest line {index} is not an object")
        try:
            items.append(ManifestItem.model_validate(element))
        except ValidationError as e:
            raise ManifestPayloadError(f"Manifest line {index} is invalid: {e}") from e
    return items


class GeminiManifestExtractor:
    """Extracts manifest line items from PDFs and images with Gemini.

    Usage:
        extractor = GeminiManifestExtractor()
        items = await extractor.extract(pdf_bytes, "application/pdf")
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: int | None = None,
    ) -> None:
        self.api_key = api_key or settings.gemini_api_key
        self.model = model or settings.gemini_model
        self.timeout = timeout or settings.gemini_timeout
        self._client: genai.Client | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _get_client(self) -> genai.Client:
        if self._client is None:
            if not self.is_configured:
                raise ManifestConfigError(
                    "Gemini is not configured. Set GEMINI_API_KEY."
                )
            self._client = genai.Client(
                api_key=self.api_key,
                http_options=genai_types.HttpOptions(timeout=self.timeout * 1000),
            )
        return self._client

    async def extract(self, document_bytes: bytes, mime_type: str) -> list[ManifestItem]:
        """Extract manifest items from a document.

        Raises:
            ManifestConfigError: If no API key is configured.
            UpstreamServiceUnavailable: If Gemini cannot be reached or errors.
            ManifestPayloadError: If the model returns a malformed payload.
        """
        client = self._get_client()

        logger.info(
            "Extracting manifest with %s (%s, %d bytes)",
            self.model,
            mime_type,
            len(document_bytes),
        )

        try:
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=[
                    genai_types.Part.from_bytes(data=document_bytes, mime_type=mime_type),
                    MANIFEST_EXTRACTION_PROMPT,
                ],
                config=genai_types.GenerateContentConfig(
                    temperature=0.1,
                    response_mime_type="application/json",
                ),
            )
        except genai_errors.APIError as e:
            logger.error("Gemini API error: %s", e)
            raise UpstreamServiceUnavailable(f"Gemini API error: {e}") from e
        except httpx.TimeoutException as e:
            logger.error("Gemini request timed out: %s", e)
            raise UpstreamServiceUnavailable("Gemini request timed out") from e
        except httpx.RequestError as e:
            logger.error("Gemini request failed: %s", e)
            raise UpstreamServiceUnavailable(f"Gemini request failed: {e}") from e

        items = parse_manifest_payload(response.text)
        logger.info("Extracted %d manifest lines", len(items))
        return items


def _find_column(headers: list[str], possible_names: list[str]) -> str | None:
    """Return the first header matching one of the names (case-insensitive)."""
    headers_lower = {h.lower().strip(): h for h in headers}
    for name in possible_names:
        if name in headers_lower:
            return headers_lower[name]
    return None


def _cell(row: pd.Series, column: str | None) -> Any:
    if column is None:
        return None
    value = row.get(column)
    if value is None or pd.isna(value):
        return None
    return value


def parse_tally_sheet(contents: bytes, extension: str) -> TallyParseResult:
    """Parse a CSV or Excel tally sheet into manifest items.

    Rows that fail validation are reported and skipped; fully blank rows
    are ignored.

    Args:
        contents: File content as bytes.
        extension: File extension ('.csv', '.xlsx' or '.xls').

    Returns:
        TallyParseResult with items and row errors.
    """
    extension = extension.lower()
    try:
        if extension == ".csv":
            df = pd.read_csv(io.BytesIO(contents), dtype=str)
        elif extension in (".xlsx", ".xls"):
            df = pd.read_excel(io.BytesIO(contents), sheet_name=0)
        else:
            return TallyParseResult(
                items=[],
                errors=[TallyRowError(0, f"Unsupported file extension: {extension}")],
                total_rows=0,
            )
    except (ValueError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        return TallyParseResult(
            items=[],
            errors=[TallyRowError(0, f"Could not read tally sheet: {e}")],
            total_rows=0,
        )

    if df.empty:
        return TallyParseResult(
            items=[], errors=[TallyRowError(0, "No data rows found")], total_rows=0
        )

    headers = [str(col) for col in df.columns]
    df.columns = headers
    columns = {
        name: _find_column(headers, aliases) for name, aliases in TALLY_COLUMNS.items()
    }
    if columns["tally_length_ft"] is None and columns["serial_number"] is None:
        return TallyParseResult(
            items=[],
            errors=[
                TallyRowError(
                    0, "Missing required columns: need a length or serial number column"
                )
            ],
            total_rows=0,
        )

    items: list[ManifestItem] = []
    errors: list[TallyRowError] = []
    total_rows = 0

    for idx, row in df.iterrows():
        row_num = int(idx) + 2  # header is row 1
        values = {name: _cell(row, column) for name, column in columns.items()}
        if all(value is None for value in values.values()):
            continue
        total_rows += 1
        try:
            items.append(ManifestItem.model_validate(values))
        except ValidationError as e:
            fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err["loc"])
            errors.append(TallyRowError(row_num, f"Invalid value in: {fields}"))

    return TallyParseResult(items=items, errors=errors, total_rows=total_rows)


def validate_manifest(items: list[ManifestItem]) -> ManifestValidation:
    """Run quality checks over extracted manifest lines.

    Duplicate serial numbers are errors. Implausible tally lengths, missing
    identifiers, malformed grades, unusual quantities and non-standard
    manufacturer spellings are warnings.
    """
    result = ManifestValidation(total_joints=sum(item.quantity for item in items))
    first_seen: dict[str, int] = {}

    for index, item in enumerate(items):
        if item.serial_number:
            key = item.serial_number.upper()
            if key in first_seen:
                result.errors.append(
                    ManifestIssue(
                        field="serial_number",
                        joint_index=index,
                        issue=(
                            f"Duplicate serial number: {item.serial_number} "
                            f"(also appears at index {first_seen[key]})"
                        ),
                        severity="error",
                    )
                )
            else:
                first_seen[key] = index

        if item.tally_length_ft is not None and not (
            MIN_TALLY_LENGTH_FT <= item.tally_length_ft <= MAX_TALLY_LENGTH_FT
        ):
            result.warnings.append(
                ManifestIssue(
                    field="tally_length_ft",
                    joint_index=index,
                    issue=(
                        f"Implausible tally length: {item.tally_length_ft} ft "
                        f"(expected {MIN_TALLY_LENGTH_FT:g}-{MAX_TALLY_LENGTH_FT:g} ft)"
                    ),
                    severity="warning",
                )
            )

        for name in ("manufacturer", "heat_number", "serial_number"):
            if getattr(item, name) is None:
                result.warnings.append(
                    ManifestIssue(
                        field=name,
                        joint_index=index,
                        issue=f"Missing {name.replace('_', ' ')}",
                        severity="warning",
                    )
                )

        if item.grade and not GRADE_PATTERN.match(item.grade):
            result.warnings.append(
                ManifestIssue(
                    field="grade",
                    joint_index=index,
                    issue=f"Unexpected grade format: {item.grade}",
                    severity="warning",
                )
            )

        if item.quantity > 1:
            result.warnings.append(
                ManifestIssue(
                    field="quantity",
                    joint_index=index,
                    issue=f"Quantity {item.quantity} on one line (expected 1 per joint)",
                    severity="warning",
                )
            )

        if item.manufacturer:
            standard = MANUFACTURER_CORRECTIONS.get(item.manufacturer.upper())
            if standard and standard != item.manufacturer:
                result.manufacturer_corrections[item.manufacturer] = standard

    return result


def calculate_load_summary(items: list[ManifestItem]) -> LoadSummary:
    """Total joints, length and weight for a load."""
    total_joints = 0
    total_length_ft = 0.0
    total_weight_lbs = 0.0

    for item in items:
        qty = item.quantity or 1
        length_ft = item.tally_length_ft or 0.0
        weight_per_ft = item.weight_lbs_ft or 0.0
        total_joints += qty
        total_length_ft += length_ft * qty
        total_weight_lbs += length_ft * qty * weight_per_ft

    return LoadSummary(
        total_joints=total_joints,
        total_length_ft=round(total_length_ft, 2),
        total_length_m=round(total_length_ft / FEET_PER_METER, 2),
        total_weight_lbs=round(total_weight_lbs),
        total_weight_kg=round(total_weight_lbs / LBS_PER_KG),
    )


def document_file_type(extension: str) -> str:
    """Classify an upload by extension: 'pdf', 'image' or 'spreadsheet'."""
    extension = extension.lower()
    if extension == ".pdf":
        return "pdf"
    if extension in TALLY_SHEET_EXTENSIONS:
        return "spreadsheet"
    return "image"


async def save_manifest_document(
    session: AsyncSession,
    file_name: str,
    extension: str,
    items: list[ManifestItem],
    request_id: uuid.UUID | None = None,
    company_id: uuid.UUID | None = None,
    truck_load_id: uuid.UUID | None = None,
) -> Document:
    """Store an uploaded manifest with its validated line items."""
    now = datetime.now(UTC)
    document = Document(
        id=uuid.uuid4(),
        request_id=request_id,
        company_id=company_id,
        truck_load_id=truck_load_id,
        file_name=file_name,
        file_type=document_file_type(extension),
        document_type="manifest",
        parsed_payload=[item.model_dump() for item in items],
        parsed_at=now,
        uploaded_at=now,
    )
    session.add(document)
    await session.flush()
    return document


async def get_document(session: AsyncSession, document_id: uuid.UUID) -> Document:
    """Load a document by id.

    Raises:
        NotFound: If the document does not exist.
    """
    result = await session.execute(select(Document).where(Document.id == document_id))
    document = result.scalar_one_or_none()
    if document is None:
        raise NotFound("Document", document_id)
    return document
