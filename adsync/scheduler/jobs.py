"""ADSYNC - Scheduler Jobs.

APScheduler daily job that ingests the default lookback window for every
user whose credential has a linked account.
"""

from typing import List

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlmodel import Session

from adsync.config import Settings, settings
from adsync.core.errors import AdsyncError
from adsync.core.logging import get_logger
from adsync.database import engine
from adsync.ingestion.pipeline import IngestionOrchestrator
from adsync.models.run_models import IngestionResult
from adsync.storage.credential_store import CredentialStore

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()


async def ingest_all_linked(
    session: Session, config: Settings, transport=None
) -> List[IngestionResult]:
    """One ingestion per linked user. A failing user does not stop the batch."""
    results: List[IngestionResult] = []
    credentials = CredentialStore(session).list_linked_credentials()
    logger.info(f"Daily ingestion for {len(credentials)} linked users")

    for cred in credentials:
        orchestrator = IngestionOrchestrator(session, config, transport)
        try:
            result = await orchestrator.run(
                user_id=cred.user_id, target_account_id=cred.customer_id
            )
        except AdsyncError as e:
            logger.error(f"Daily ingestion skipped: {e}", extra={"user_id": cred.user_id})
            continue
        results.append(result)

    failed = sum(1 for r in results if not r.ok)
    logger.info(f"Daily ingestion finished: {len(results) - failed} ok, {failed} failed")
    return results


async def daily_ingestion_job():
    """Run the daily ingestion batch."""
    logger.info("Scheduled daily ingestion starting...")
    try:
        with Session(engine) as session:
            await ingest_all_linked(session, settings)
    except Exception as e:
        logger.error(f"Scheduled ingestion failed: {e}")


def start_scheduler():
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        daily_ingestion_job,
        "cron",
        hour=settings.ingest_hour,
        minute=0,
        id="daily_ingestion",
        replace_existing=True,
        misfire_grace_time=3600,
    )
    scheduler.start()
    logger.info(f"Scheduler started. Daily ingestion at {settings.ingest_hour}:00 UTC")


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
