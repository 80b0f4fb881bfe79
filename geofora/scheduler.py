from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from geofora.container import ServiceContainer
import logging

logger = logging.getLogger(__name__)


async def cleanup_expired_exports(services: ServiceContainer):
    removed = await services.exports.cleanup_expired_exports()
    logger.info(f"[Scheduler] Removed {removed} expired exports.")


async def cleanup_expired_privacy_data(services: ServiceContainer):
    result = await services.privacy.cleanup_expired_data()
    logger.info(f"[Scheduler] Privacy cleanup removed {result.deleted_records} records.")


def create_scheduler(services: ServiceContainer, interval_minutes: int = 60) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        cleanup_expired_exports,
        trigger=IntervalTrigger(minutes=interval_minutes),
        args=[services],
        id="cleanup_expired_exports",
        replace_existing=True,
    )
    scheduler.add_job(
        cleanup_expired_privacy_data,
        trigger=IntervalTrigger(minutes=interval_minutes),
        args=[services],
        id="cleanup_expired_privacy_data",
        replace_existing=True,
    )
    logger.info(f"[Scheduler] Cleanup jobs scheduled every {interval_minutes} minutes")
    return scheduler
