import logging
from datetime import datetime
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from epghub.config import settings
from epghub.exceptions import EpgError
from epghub.services.fetch_coordinator import RefreshInProgress
from epghub.services.provider_service import ProviderService


logger = logging.getLogger(__name__)

class EPGScheduler:
    """Scheduler for automatic refresh of the default provider"""

    def __init__(self, provider_service: ProviderService, provider_id: str | None = None):
        self.provider_service = provider_service
        self.provider_id = provider_id or settings.default_provider_id
        self.scheduler: AsyncIOScheduler | None = None

    async def _fetch_job(self) -> None:
        """Background job that refreshes the default provider"""
        logger.info("Scheduled EPG refresh triggered for provider %s", self.provider_id)
        try:
            result = await self.provider_service.refresh(self.provider_id)
            logger.info("Scheduled refresh finished: %s", result.message)
        except RefreshInProgress:
            logger.warning("Scheduled refresh skipped, provider %s already refreshing", self.provider_id)
        except EpgError as e:
            logger.error(f"Scheduled refresh failed: {e}")
        except Exception as e:
            logger.error(f"Exception in scheduled refresh: {e}", exc_info=True)

    def start(self) -> None:
        """Start the scheduler with the refresh job"""
        if self.scheduler and self.scheduler.running:
            logger.warning("Scheduler already running")
            return

        try:
            trigger = CronTrigger.from_crontab(settings.epg_fetch_cron)
        except (ValueError, KeyError) as exc:
            logger.error("Invalid cron expression '%s': %s", settings.epg_fetch_cron, exc)
            raise

        self.scheduler = AsyncIOScheduler(timezone='UTC')
        self.scheduler.add_job(
            self._fetch_job,
            trigger=trigger,
            id='epg_fetch',
            max_instances=1,
            coalesce=True,
            misfire_grace_time=settings.epg_fetch_misfire_grace_sec
        )

        self.scheduler.start()
        next_time = self.get_next_run_time()
        logger.info(
            "Scheduler started. Next refresh: %s",
            next_time.isoformat() if next_time else "unknown"
        )

    def shutdown(self) -> None:
        """Shutdown the scheduler"""
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown()
            logger.info("Scheduler stopped")
            self.scheduler = None

    def get_next_run_time(self) -> datetime | None:
        """Get next scheduled refresh time"""
        if not self.scheduler:
            return None
        job = self.scheduler.get_job('epg_fetch')
        return job.next_run_time if job else None
