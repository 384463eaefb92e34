"""FastAPI routes for manifest upload and extraction."""

from dataclasses import asdict
from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from pipevault.api.errors import http_error
from pipevault.config import settings
from pipevault.database import get_db
from pipevault.services.approval import get_storage_request
from pipevault.services.cache import MutationKind, invalidation_keys
from pipevault.services.errors import PipeVaultError
from pipevault.services.manifest import (
    SUPPORTED_DOCUMENT_TYPES,
    TALLY_SHEET_EXTENSIONS,
    GeminiManifestExtractor,
    ManifestConfigError,
    ManifestItem,
    ManifestPayloadError,
    calculate_load_summary,
    get_document,
    parse_manifest_payload,
    parse_tally_sheet,
    save_manifest_document,
    validate_manifest,
)

SUPPORTED_EXTENSIONS = set(SUPPORTED_DOCUMENT_TYPES) | set(TALLY_SHEET_EXTENSIONS)

router = APIRouter(prefix="/documents", tags=["documents"])


# --- Pydantic Schemas ---


class ManifestIssueResponse(BaseModel):
    """A problem found in a manifest line."""

    field: str = Field(description="Field with the problem")
    joint_index: int = Field(description="Index of the manifest line")
    issue: str = Field(description="Description of the problem")
    severity: str = Field(description="error or warning")


class ManifestValidationResponse(BaseModel):
    """Quality check results for a manifest."""

    is_valid: bool = Field(description="False if any errors were found")
    total_joints: int = Field(description="Joints across all lines")
    errors: list[ManifestIssueResponse] = Field(description="Blocking problems")
    warnings: list[ManifestIssueResponse] = Field(description="Non-blocking problems")
    manufacturer_corrections: dict[str, str] = Field(
        description="Suggested manufacturer spellings"
    )


class LoadSummaryResponse(BaseModel):
    """Load totals computed from the manifest."""

    total_joints: int = Field(description="Total joints")
    total_length_ft: float = Field(description="Total length in feet")
    total_length_m: float = Field(description="Total length in meters")
    total_weight_lbs: int = Field(description="Total weight in pounds")
    total_weight_kg: int = Field(description="Total weight in kilograms")


class RowErrorResponse(BaseModel):
    """A tally sheet row that could not be read."""

    row: int = Field(description="Row number (1-indexed, header is row 1)")
    message: str = Field(description="Error message")


class ManifestResponse(BaseModel):
    """Parsed manifest with validation and totals."""

    document_id: UUID = Field(description="Stored document UUID")
    file_name: str = Field(description="Original filename")
    file_type: str = Field(description="pdf, image or spreadsheet")
    parsed_at: datetime | None = Field(description="When the manifest was parsed")
    items: list[ManifestItem] = Field(description="Manifest line items")
    validation: ManifestValidationResponse = Field(description="Quality checks")
    summary: LoadSummaryResponse = Field(description="Load totals")
    row_errors: list[RowErrorResponse] = Field(
        default_factory=list, description="Unreadable tally sheet rows"
    )
    invalidate: list[str] = Field(
        default_factory=list, description="Client cache keys to refetch"
    )


def get_manifest_extractor() -> GeminiManifestExtractor:
    """Dependency that provides the Gemini manifest extractor."""
    return GeminiManifestExtractor()


def validate_file_extension(filename: str) -> str:
    """Validate and return the lowercase file extension.

    Raises:
        HTTPException: If the file extension is not supported.
    """
    if not filename:
        raise HTTPException(status_code=400, detail="Filename is required")

    ext = ""
    if "." in filename:
        ext = "." + filename.rsplit(".", 1)[-1].lower()

    if ext not in SUPPORTED_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type. Supported types: {', '.join(sorted(SUPPORTED_EXTENSIONS))}",
        )
    return ext


async def validate_file_size(file: UploadFile) -> bytes:
    """Read the upload and enforce the size limit.

    Raises:
        HTTPException: If the file is empty or too large.
    """
    contents = await file.read()
    max_size = settings.max_upload_size_mb * 1024 * 1024

    if len(contents) == 0:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    if len(contents) > max_size:
        raise HTTPException(
            status_code=413,
            detail=f"File size exceeds maximum allowed size of {settings.max_upload_size_mb}MB",
        )
    return contents


def build_manifest_response(
    document_id: UUID,
    file_name: str,
    file_type: str,
    parsed_at: datetime | None,
    items: list[ManifestItem],
    row_errors: list[RowErrorResponse] | None = None,
    invalidate: list[str] | None = None,
) -> ManifestResponse:
    validation = validate_manifest(items)
    return ManifestResponse(
        document_id=document_id,
        file_name=file_name,
        file_type=file_type,
        parsed_at=parsed_at,
        items=items,
        validation=ManifestValidationResponse(
            is_valid=validation.is_valid,
            total_joints=validation.total_joints,
            errors=[ManifestIssueResponse(**e.to_dict()) for e in validation.errors],
            warnings=[ManifestIssueResponse(**w.to_dict()) for w in validation.warnings],
            manufacturer_corrections=validation.manufacturer_corrections,
        ),
        summary=LoadSummaryResponse(**asdict(calculate_load_summary(items))),
        row_errors=row_errors or [],
        invalidate=invalidate or [],
    )


# --- API Endpoints ---


@router.post("/manifest", response_model=ManifestResponse, status_code=201)
async def upload_manifest(
    file: Annotated[UploadFile, File(description="Manifest (PDF, image, CSV or Excel)")],
    db: Annotated[AsyncSession, Depends(get_db)],
    extractor: Annotated[GeminiManifestExtractor, Depends(get_manifest_extractor)],
    request_id: Annotated[
        UUID | None, Form(description="Storage request the manifest belongs to")
    ] = None,
    truck_load_id: Annotated[
        UUID | None, Form(description="Truck load the manifest describes")
    ] = None,
) -> ManifestResponse:
    """Upload a pipe manifest and extract its joints.

    PDFs and images are read by Gemini; CSV and Excel tally sheets are
    parsed directly. The extracted lines are stored with the document and
    returned with quality checks and load totals.

    Raises:
        HTTPException: 400 on unsupported, empty or unreadable files, 413 when
            too large, 404 for an unknown request, 502 when the model returns
            an unusable payload and 503 when extraction is unavailable.
    """
    filename = file.filename or ""
    extension = validate_file_extension(filename)
    contents = await validate_file_size(file)

    company_id = None
    if request_id is not None:
        try:
            request = await get_storage_request(db, request_id)
        except PipeVaultError as e:
            raise http_error(e) from e
        company_id = request.company_id

    row_errors: list[RowErrorResponse] = []
    if extension in TALLY_SHEET_EXTENSIONS:
        tally = parse_tally_sheet(contents, extension)
        if not tally.items and tally.errors:
            raise HTTPException(status_code=400, detail=tally.errors[0].message)
        items = tally.items
        row_errors = [
            RowErrorResponse(row=err.row_number, message=err.message)
            for err in tally.errors
        ]
    else:
        try:
            items = await extractor.extract(contents, SUPPORTED_DOCUMENT_TYPES[extension])
        except ManifestConfigError as e:
            raise HTTPException(status_code=503, detail=str(e)) from e
        except ManifestPayloadError as e:
            raise HTTPException(status_code=502, detail=str(e)) from e
        except PipeVaultError as e:
            raise http_error(e) from e

    document = await save_manifest_document(
        db,
        file_name=filename,
        extension=extension,
        items=items,
        request_id=request_id,
        company_id=company_id,
        truck_load_id=truck_load_id,
    )

    return build_manifest_response(
        document_id=document.id,
        file_name=document.file_name,
        file_type=document.file_type,
        parsed_at=document.parsed_at,
        items=items,
        row_errors=row_errors,
        invalidate=list(invalidation_keys(MutationKind.MANIFEST_PARSED, company_id)),
    )


@router.get("/{document_id}", response_model=ManifestResponse)
async def get_manifest(
    document_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ManifestResponse:
    """Get a stored manifest with fresh quality checks and totals."""
    try:
        document = await get_document(db, document_id)
        items = parse_manifest_payload(document.parsed_payload)
    except ManifestPayloadError as e:
        raise HTTPException(
            status_code=422,
            detail=f"Stored manifest payload is invalid: {e}",
        ) from e
    except PipeVaultError as e:
        raise http_error(e) from e

    return build_manifest_response(
        document_id=document.id,
        file_name=document.file_name,
        file_type=document.file_type,
        parsed_at=document.parsed_at,
        items=items,
    )
