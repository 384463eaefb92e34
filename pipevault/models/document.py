"""Document model for uploaded manifests and their parsed payloads."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import JSON, DateTime, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from pipevault.database import Base


class Document(Base):
    """An uploaded document (manifest, bill of lading, inspection report).

    Attributes:
        id: Unique identifier (UUID)
        request_id: Storage request the document belongs to (optional)
        truck_load_id: Truck load the document describes (optional)
        company_id: Owning company (optional)
        file_name: Original filename
        file_type: 'pdf', 'image' or 'spreadsheet'
        document_type: 'manifest', 'bill-of-lading', 'inspection' or 'other'
        parsed_payload: Validated manifest line items (JSON array) or null
        parsed_at: When the payload was extracted
    """

    __tablename__ = "documents"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    request_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("storage_requests.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    truck_load_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("truck_loads.id", ondelete="CASCADE"),
        nullable=True,
    )
    company_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=True,
    )
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_type: Mapped[str] = mapped_column(String(20), nullable=False)
    document_type: Mapped[str] = mapped_column(
        String(30), nullable=False, default="manifest"
    )
    parsed_payload: Mapped[list | None] = mapped_column(JSON, nullable=True)
    parsed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<Document(file_name={self.file_name!r}, "
            f"document_type={self.document_type!r})>"
        )
