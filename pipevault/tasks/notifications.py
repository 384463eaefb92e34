"""Celery task that delivers queued customer notifications."""

import asyncio
import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pipevault.celery_app import celery_app
from pipevault.database import build_engine
from pipevault.services.notifications import (
    NotificationDispatcher,
    process_notification_queue,
)

logger = logging.getLogger(__name__)


async def _async_process_notifications(limit: int) -> dict[str, Any]:
    """Async implementation of the notification pass.

    Returns:
        Dictionary with processed/failed/skipped counts and a status
    """
    engine = build_engine(pooled=False)
    async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    results: dict[str, Any] = {"status": "success", "processed": 0, "failed": 0, "skipped": 0}

    try:
        async with async_session() as session:
            async with NotificationDispatcher() as dispatcher:
                if not dispatcher.is_configured:
                    results["status"] = "skipped"
                    logger.warning("Resend is not configured; leaving notifications queued")
                    return results
                outcome = await process_notification_queue(session, dispatcher, limit=limit)
            await session.commit()
        results.update(outcome.to_dict())
    finally:
        await engine.dispose()

    if results["failed"]:
        results["status"] = "partial"
    return results


@celery_app.task(
    bind=True,
    name="pipevault.tasks.notifications.process_notifications",
    max_retries=3,
    default_retry_delay=60,
)
def process_notifications(self: Any, limit: int = 50) -> dict[str, Any]:
    """Celery task that sends queued approval/rejection emails.

    Runs every minute. Rows that fail are retried on later runs until they
    reach the configured attempt limit.

    Returns:
        Dictionary with processing counts
    """
    logger.info("Processing notification queue (limit=%d)", limit)
    try:
        result = asyncio.run(_async_process_notifications(limit))
        logger.info(
            "Notification pass complete: %d sent, %d failed, %d skipped",
            result["processed"],
            result["failed"],
            result["skipped"],
        )
        return result
    except Exception as e:
        logger.exception("Notification task failed")
        raise self.retry(exc=e) from e
