import logging
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import get_settings
from database import session_scope
from mail_source import MailSourceNotConnected, MockMailSource
from services import IngestService

logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(
        self,
        source: MockMailSource,
        interval_minutes: Optional[int] = None,
        on_inserted: Optional[Callable[[], None]] = None,
    ):
        settings = get_settings()
        self.source = source
        self.on_inserted = on_inserted
        self.interval_minutes = (
            settings.mail_sync_minutes if interval_minutes is None else interval_minutes
        )
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    def _run_job(self, trigger: str = "manual") -> None:
        logger.info(f"mail_sync: trigger={trigger}")
        if not self.source.state.is_connected:
            logger.info(f"mail_sync: trigger={trigger} skipped, source not connected")
            return
        try:
            with session_scope() as session:
                result = IngestService(session).sync_mail(self.source)
        except MailSourceNotConnected:
            logger.info(f"mail_sync: trigger={trigger} source disconnected mid-run")
            return
        logger.info(
            f"mail_sync: trigger={trigger} inserted={result.inserted} "
            f"duplicates={result.duplicates}"
        )
        if result.inserted and self.on_inserted is not None:
            self.on_inserted()

    def start(self) -> None:
        if self.interval_minutes <= 0:
            logger.info("Mail sync scheduler disabled")
            return

        trigger = IntervalTrigger(minutes=self.interval_minutes)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["interval"],
            id="mail_sync",
            replace_existing=True,
            misfire_grace_time=300,
        )

        self.scheduler.start()
        logger.info(f"Scheduler started, mail sync every {self.interval_minutes} min")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
