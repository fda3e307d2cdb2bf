"""Data retention worker for webhook logs.

Endpoints with ``retention_days`` set only keep logs received within that
window. Endpoints without it keep their logs indefinitely. Run periodically,
e.g. from cron:

    python -m hookrelay.workers.data_retention
"""
import asyncio
from datetime import timedelta
from typing import Any

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hookrelay.database import AsyncSessionLocal
from hookrelay.models.base import utcnow
from hookrelay.models.webhook_endpoint import WebhookEndpoint
from hookrelay.models.webhook_log import WebhookLog

logger = structlog.get_logger(__name__)

BATCH_SIZE = 1000


class DataRetentionService:
    """Service for enforcing per-endpoint log retention."""

    def __init__(self, db: AsyncSession, batch_size: int = BATCH_SIZE):
        """Initialize data retention service."""
        self.db = db
        self.batch_size = batch_size

    async def purge_endpoint_logs(self, endpoint_id: Any, retention_days: int) -> int:
        """
        Delete one endpoint's logs received before its retention window.

        Args:
            endpoint_id: Endpoint whose logs are purged
            retention_days: Days of logs to keep

        Returns:
            Number of logs deleted
        """
        cutoff_date = utcnow() - timedelta(days=retention_days)
        total_deleted = 0

        # Delete in batches to avoid long-running transactions
        while True:
            result = await self.db.execute(
                select(WebhookLog.id)
                .where(WebhookLog.endpoint_id == endpoint_id, WebhookLog.received_at < cutoff_date)
                .limit(self.batch_size)
            )
            ids_to_delete = list(result.scalars().all())

            if not ids_to_delete:
                break

            await self.db.execute(delete(WebhookLog).where(WebhookLog.id.in_(ids_to_delete)))
            await self.db.commit()

            total_deleted += len(ids_to_delete)

        if total_deleted:
            logger.info(
                "webhook_logs_purged",
                endpoint_id=str(endpoint_id),
                cutoff_date=cutoff_date.isoformat(),
                deleted=total_deleted,
            )

        return total_deleted

    async def purge_expired_logs(self) -> dict[str, int]:
        """
        Apply every endpoint's retention policy.

        Returns:
            Mapping of endpoint ID to number of logs deleted
        """
        result = await self.db.execute(
            select(WebhookEndpoint.id, WebhookEndpoint.retention_days).where(
                WebhookEndpoint.retention_days.is_not(None)
            )
        )
        policies = result.all()

        deleted: dict[str, int] = {}
        for endpoint_id, retention_days in policies:
            deleted[str(endpoint_id)] = await self.purge_endpoint_logs(endpoint_id, retention_days)

        return deleted


async def run_data_retention(
    session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
) -> dict[str, Any]:
    """
    Worker entry point for log retention.

    Returns:
        Dictionary with job results
    """
    logger.info("data_retention_job_started")

    try:
        async with session_factory() as db:
            deleted = await DataRetentionService(db).purge_expired_logs()
    except Exception as e:
        logger.error("data_retention_job_failed", error=str(e), exc_info=True)
        return {"success": False, "error": str(e), "timestamp": utcnow().isoformat()}

    total = sum(deleted.values())
    logger.info("data_retention_job_complete", endpoints=len(deleted), logs_deleted=total)

    return {
        "success": True,
        "logs_deleted": total,
        "endpoints": deleted,
        "timestamp": utcnow().isoformat(),
    }


if __name__ == "__main__":
    from hookrelay.middleware.logging import setup_logging

    setup_logging()
    asyncio.run(run_data_retention())
