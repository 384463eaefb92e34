"""Outbound notifications for storage request and truck load events.

Notifications are queued as rows in the same transaction as the mutation
that caused them. ``process_notification_queue`` later delivers them by
email (Resend HTTP API) and mirrors a short message to Slack when a webhook
is configured. Delivery failures are recorded on the row and never surface
to the admin who triggered the notification.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pipevault.config import settings
from pipevault.models.notification import NotificationQueue
from pipevault.services.errors import UpstreamServiceUnavailable

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    """Notification kinds the dispatcher knows how to render."""

    NEW_STORAGE_REQUEST = "new_storage_request"
    STORAGE_REQUEST_APPROVED = "storage_request_approved"
    STORAGE_REQUEST_REJECTED = "storage_request_rejected"
    PICKUP_REQUESTED = "pickup_requested"
    LOAD_APPROVED = "load_approved"
    LOAD_REJECTED = "load_rejected"
    MANIFEST_CORRECTION_NEEDED = "manifest_correction_needed"
    LOAD_IN_TRANSIT = "load_in_transit"
    LOAD_COMPLETED = "load_completed"


@dataclass(frozen=True)
class RenderedNotification:
    """Email content for one queued notification."""

    to: str
    subject: str
    body: str
    slack_text: str


@dataclass
class QueueProcessingResult:
    """Counts from one pass over the notification queue."""

    processed: int = 0
    failed: int = 0
    skipped: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "failed": self.failed,
            "skipped": self.skipped,
        }


async def enqueue_notification(
    session: AsyncSession,
    notification_type: NotificationType,
    payload: dict[str, Any],
) -> NotificationQueue:
    """Queue a notification inside the caller's transaction."""
    entry = NotificationQueue(
        notification_type=notification_type.value,
        payload=payload,
        processed=False,
        attempts=0,
    )
    session.add(entry)
    await session.flush()
    return entry


def render_notification(
    notification_type: str,
    payload: dict[str, Any],
) -> RenderedNotification:
    """Render subject, body and Slack text for a queued notification.

    Raises:
        ValueError: If the type is unknown or the payload has no recipient.
    """
    recipient = payload.get("userEmail")
    if not recipient:
        raise ValueError("Notification payload has no userEmail")

    reference_id = payload.get("referenceId", "unknown")
    company = payload.get("companyName", "")

    if notification_type == NotificationType.STORAGE_REQUEST_APPROVED.value:
        location = payload.get("assignedLocation") or ", ".join(
            payload.get("assignedRacks", [])
        )
        subject = f"Your PipeVault Storage Request has been Approved! (Ref: {reference_id})"
        body = (
            "Dear Customer,\n\n"
            f'Great news! Your storage request for project reference "{reference_id}" '
            "has been approved.\n\n"
            "Your items have been assigned to the following location in our facility:\n"
            f"{location}\n\n"
            "Thank you for choosing PipeVault.\n\n"
            "Sincerely,\nThe PipeVault Team\n"
        )
        slack_text = f"Approved {reference_id} ({company}) -> {location}"
    elif notification_type == NotificationType.STORAGE_REQUEST_REJECTED.value:
        reason = payload.get("rejectionReason", "")
        subject = f"Update on Your PipeVault Storage Request (Ref: {reference_id})"
        body = (
            "Dear Customer,\n\n"
            "We are writing to inform you about an update on your storage request "
            f'for project reference "{reference_id}".\n\n'
            "Unfortunately, we are unable to approve your request at this time.\n"
            f"Reason provided: {reason}\n\n"
            "If you have any questions, please reply to this email.\n\n"
            "Sincerely,\nThe PipeVault Team\n"
        )
        slack_text = f"Rejected {reference_id} ({company}): {reason}"
    elif notification_type == NotificationType.NEW_STORAGE_REQUEST.value:
        joints = payload.get("totalJoints")
        subject = f"Storage Request Received (Ref: {reference_id})"
        body = (
            "Dear Customer,\n\n"
            f'We received your storage request "{reference_id}" for {joints} joints. '
            "Our yard team will review it shortly.\n\n"
            "Sincerely,\nThe PipeVault Team\n"
        )
        slack_text = f"New storage request {reference_id} from {company} ({joints} joints)"
    elif notification_type == NotificationType.PICKUP_REQUESTED.value:
        subject = f"Pickup Request Received (Ref: {reference_id})"
        body = (
            "Dear Customer,\n\n"
            f'Your pickup request for project reference "{reference_id}" has been '
            "received. We will confirm the pickup schedule shortly.\n\n"
            "Sincerely,\nThe PipeVault Team\n"
        )
        slack_text = f"Pickup requested for {reference_id} ({company})"
    elif notification_type == NotificationType.LOAD_APPROVED.value:
        load_number = payload.get("loadNumber")
        slot = payload.get("scheduledSlot", "")
        subject = f"Load #{load_number} Approved (Ref: {reference_id})"
        body = (
            "Dear Customer,\n\n"
            f"Your Load #{load_number} for storage request {reference_id} has been "
            f"approved and scheduled for {slot}.\n\n"
            "Sincerely,\nThe PipeVault Team\n"
        )
        slack_text = (
            f"Load #{load_number} for {reference_id} ({company}) approved for {slot}"
        )
    elif notification_type == NotificationType.LOAD_REJECTED.value:
        load_number = payload.get("loadNumber")
        reason = payload.get("rejectionReason", "")
        subject = f"Load #{load_number} Not Approved (Ref: {reference_id})"
        body = (
            "Dear Customer,\n\n"
            f"We are unable to accept Load #{load_number} for storage request "
            f"{reference_id}.\n"
            f"Reason provided: {reason}\n\n"
            "Please book a new delivery slot or reply to this email.\n\n"
            "Sincerely,\nThe PipeVault Team\n"
        )
        slack_text = (
            f"Load #{load_number} for {reference_id} ({company}) rejected: {reason}"
        )
    elif notification_type == NotificationType.MANIFEST_CORRECTION_NEEDED.value:
        load_number = payload.get("loadNumber")
        issues = payload.get("issues") or []
        listed = "\n".join(f"- {issue}" for issue in issues)
        subject = f"Manifest Correction Needed for Load #{load_number} (Ref: {reference_id})"
        body = (
            "Dear Customer,\n\n"
            f"Our yard team found problems with the manifest for Load #{load_number} "
            f"of storage request {reference_id}:\n"
            f"{listed}\n\n"
            "Please upload a corrected manifest so the load can be approved.\n\n"
            "Sincerely,\nThe PipeVault Team\n"
        )
        slack_text = (
            f"Manifest correction requested for Load #{load_number} of "
            f"{reference_id} ({company}): {len(issues)} issue(s)"
        )
    elif notification_type == NotificationType.LOAD_IN_TRANSIT.value:
        load_number = payload.get("loadNumber")
        eta = payload.get("eta") or "today"
        subject = f"Load #{load_number} In Transit (Ref: {reference_id})"
        body = (
            "Dear Customer,\n\n"
            f"Load #{load_number} for storage request {reference_id} is on its way "
            f"to the yard. Expected arrival: {eta}.\n\n"
            "Sincerely,\nThe PipeVault Team\n"
        )
        slack_text = (
            f"Load #{load_number} for {reference_id} ({company}) in transit, ETA {eta}"
        )
    elif notification_type == NotificationType.LOAD_COMPLETED.value:
        load_number = payload.get("loadNumber")
        received = payload.get("jointsReceived")
        subject = f"Load #{load_number} Delivered (Ref: {reference_id})"
        body = (
            "Dear Customer,\n\n"
            f"Load #{load_number} has been delivered and {received} joints of "
            f"storage request {reference_id} are now in storage.\n\n"
            "Sincerely,\nThe PipeVault Team\n"
        )
        slack_text = (
            f"Load #{load_number} for {reference_id} ({company}) received: {received} joints"
        )
    else:
        raise ValueError(f"Unknown notification type: {notification_type}")

    return RenderedNotification(
        to=recipient,
        subject=subject,
        body=body,
        slack_text=slack_text,
    )


class NotificationDispatcher:
    """Async sender for email (Resend) and Slack webhook notifications.

    Usage:
        async with NotificationDispatcher() as dispatcher:
            await dispatcher.send(rendered)
    """

    def __init__(
        self,
        resend_api_key: str | None = None,
        resend_base_url: str | None = None,
        from_email: str | None = None,
        slack_webhook_url: str | None = None,
    ) -> None:
        self.resend_api_key = resend_api_key or settings.resend_api_key
        self.resend_base_url = (resend_base_url or settings.resend_base_url).rstrip("/")
        self.from_email = from_email or settings.notification_from_email
        self.slack_webhook_url = (
            slack_webhook_url
            if slack_webhook_url is not None
            else settings.slack_webhook_url
        )
        self._http_client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "NotificationDispatcher":
        self._http_client = httpx.AsyncClient(timeout=httpx.Timeout(15.0))
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    @property
    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            raise RuntimeError(
                "NotificationDispatcher must be used as an async context manager"
            )
        return self._http_client

    @property
    def is_configured(self) -> bool:
        return bool(self.resend_api_key)

    async def send_email(self, message: RenderedNotification) -> str | None:
        """Send an email through Resend.

        Returns:
            The Resend message id, if the API returned one.

        Raises:
            UpstreamServiceUnavailable: If Resend is not configured or fails.
        """
        if not self.is_configured:
            raise UpstreamServiceUnavailable("Resend API key is not configured")

        try:
            response = await self._client.post(
                f"{self.resend_base_url}/emails",
                headers={"Authorization": f"Bearer {self.resend_api_key}"},
                json={
                    "from": self.from_email,
                    "to": [message.to],
                    "subject": message.subject,
                    "text": message.body,
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "Resend email failed: %s %s",
                e.response.status_code,
                e.response.text,
            )
            raise UpstreamServiceUnavailable(
                f"Resend returned HTTP {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            logger.error("Resend request failed: %s", e)
            raise UpstreamServiceUnavailable(f"Resend request failed: {e}") from e

        data: dict[str, Any] = response.json()
        return data.get("id")

    async def send_slack(self, text: str) -> bool:
        """Post a message to the Slack webhook.

        Slack is best-effort: failures are logged and reported as False.
        """
        if not self.slack_webhook_url:
            return False
        try:
            response = await self._client.post(self.slack_webhook_url, json={"text": text})
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Slack webhook failed: %s", e)
            return False
        return True

    async def send(self, message: RenderedNotification) -> str | None:
        message_id = await self.send_email(message)
        await self.send_slack(message.slack_text)
        return message_id


async def process_notification_queue(
    session: AsyncSession,
    dispatcher: NotificationDispatcher,
    limit: int = 50,
    max_attempts: int | None = None,
) -> QueueProcessingResult:
    """Deliver pending notifications, oldest first.

    Args:
        session: Database session (the caller commits).
        dispatcher: An entered NotificationDispatcher.
        limit: Maximum rows to process in this pass.
        max_attempts: Rows with this many failed attempts are skipped.

    Returns:
        QueueProcessingResult with processed/failed/skipped counts.
    """
    max_attempts = max_attempts or settings.notification_max_attempts
    result = QueueProcessingResult()

    rows = await session.execute(
        select(NotificationQueue)
        .where(NotificationQueue.processed == False)  # noqa: E712
        .order_by(NotificationQueue.created_at)
        .limit(limit)
    )
    entries = rows.scalars().all()

    for entry in entries:
        if entry.attempts >= max_attempts:
            result.skipped += 1
            continue

        entry.attempts += 1
        try:
            rendered = render_notification(entry.notification_type, entry.payload)
            await dispatcher.send(rendered)
        except (ValueError, UpstreamServiceUnavailable) as e:
            entry.last_error = str(e)
            result.failed += 1
            logger.warning(
                "Notification %s (%s) failed on attempt %d: %s",
                entry.id,
                entry.notification_type,
                entry.attempts,
                e,
            )
            continue

        entry.processed = True
        entry.processed_at = datetime.now(UTC)
        entry.last_error = None
        result.processed += 1
        logger.info(
            "Delivered %s notification %s to %s",
            entry.notification_type,
            entry.id,
            rendered.to,
        )

    await session.flush()
    return result
