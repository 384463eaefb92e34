"""NotificationQueue model for transactional outbound notifications."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from pipevault.database import Base


class NotificationQueue(Base):
    """A queued notification written in the same transaction as its cause.

    The dispatcher task picks up unprocessed rows, sends them and records the
    outcome. Delivery failures never roll back the originating mutation.

    Attributes:
        id: Unique identifier (UUID)
        notification_type: e.g. 'storage_request_approved'
        payload: Template data (recipient, reference id, racks, reason...)
        processed: Whether the notification was delivered
        attempts: Delivery attempts so far
        last_error: Error message from the most recent failed attempt
    """

    __tablename__ = "notification_queue"
    __table_args__ = (
        Index(
            "ix_notification_queue_pending",
            "created_at",
            postgresql_where=text("processed = false"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    notification_type: Mapped[str] = mapped_column(String(60), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return (
            f"<NotificationQueue(notification_type={self.notification_type!r}, "
            f"processed={self.processed!r})>"
        )
