"""
Expiry Cron Job: closes pending workflows whose deadline has passed.

This module runs as a scheduled job (via cron, Celery, or similar).
The sweep is the only regular path to EXPIRED: a vote cast after the deadline
is refused with workflow_expired and leaves the workflow PENDING. The expiry
branch of the status transition only covers a vote racing the deadline.

Typical cron schedule: */15 * * * * (every 15 minutes)
"""

import argparse
import asyncio
import logging
import traceback
from datetime import datetime, timezone
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from ..services import EngineConfig, WorkflowService

logger = logging.getLogger(__name__)


# =============================================================================
# ALERTING
# =============================================================================


async def send_alert(
    title: str,
    message: str,
    severity: str = "error",
    details: dict | None = None,
    webhook_url: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> None:
    """
    Report a job failure in the logs and, when configured, to a webhook
    (PagerDuty, Opsgenie, custom).
    """
    log_message = f"[CRON ALERT] {title}: {message}"
    if details:
        log_message += f" | Details: {details}"

    if severity == "critical":
        logger.critical(log_message)
    else:
        logger.error(log_message)

    if not webhook_url:
        return

    payload = {
        "title": title,
        "message": message,
        "severity": severity,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "source": "approval-ledger-cron",
        "details": details or {},
    }
    try:
        if client is not None:
            await client.post(webhook_url, json=payload, timeout=10)
        else:
            async with httpx.AsyncClient() as owned_client:
                await owned_client.post(webhook_url, json=payload, timeout=10)
    except httpx.HTTPError as e:
        logger.error(f"Failed to send webhook alert: {e}")


# =============================================================================
# JOB
# =============================================================================


async def run_expiry_job(
    database_url: str,
    engine_config: EngineConfig | None = None,
    alert_webhook_url: str | None = None,
    batch_size: int = 500,
) -> dict[str, Any]:
    """
    Main entry point for the expiry cron job.

    Expires due workflows in batches, one transaction per batch, until a
    batch comes back short.

    Args:
        database_url: async SQLAlchemy connection string
        engine_config: engine tunables
        alert_webhook_url: where to report a crash
        batch_size: workflows read per transaction

    Returns:
        Job result summary
    """
    start_time = datetime.now(timezone.utc)
    logger.info(f"Starting expiry job at {start_time.isoformat()}")

    engine = create_async_engine(database_url)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)

    results: dict[str, Any] = {
        "started_at": start_time.isoformat(),
        "completed_at": None,
        "expired_count": 0,
        "batches": 0,
    }

    try:
        while True:
            async with session_factory() as session:
                async with session.begin():
                    service = WorkflowService(session, config=engine_config or EngineConfig())
                    expired = await service.expire_due_workflows(start_time, limit=batch_size)

            results["expired_count"] += expired
            results["batches"] += 1
            if expired < batch_size:
                break

    except Exception as e:
        logger.error(f"Expiry job failed: {e}")

        await send_alert(
            title="Expiry Cron Job Failed",
            message="The workflow expiry job crashed unexpectedly.",
            severity="critical",
            details={
                "error": str(e),
                "traceback": traceback.format_exc()[-500:],
                "started_at": results["started_at"],
                "expired_before_crash": results["expired_count"],
            },
            webhook_url=alert_webhook_url,
        )
        raise

    finally:
        await engine.dispose()

    end_time = datetime.now(timezone.utc)
    results["completed_at"] = end_time.isoformat()
    results["duration_seconds"] = (end_time - start_time).total_seconds()

    logger.info(
        f"Expiry job completed in {results['duration_seconds']:.2f}s: "
        f"{results['expired_count']} expired in {results['batches']} batch(es)"
    )
    return results


# =============================================================================
# CLI ENTRY POINT
# =============================================================================


def main():
    """CLI entry point for the expiry job."""
    from ..core.config import get_settings
    from ..core.logging import configure_logging

    settings = get_settings()

    parser = argparse.ArgumentParser(description="Expire pending workflows past their deadline")
    parser.add_argument(
        "--database-url",
        default=settings.database_url_async,
        help="Async SQLAlchemy connection string",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=500,
        help="Workflows expired per transaction",
    )
    args = parser.parse_args()

    configure_logging(settings)
    if not settings.alerting_enabled:
        logger.warning("ALERT_WEBHOOK_URL is not set, job failures are only logged")

    try:
        results = asyncio.run(run_expiry_job(
            database_url=args.database_url,
            engine_config=EngineConfig.from_settings(settings),
            alert_webhook_url=settings.alert_webhook_url if settings.alerting_enabled else None,
            batch_size=args.batch_size,
        ))
        print(f"Job completed: {results}")
    except Exception as e:
        print(f"Job failed: {e}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
