import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from import_sessions import ImportSessionStore
from storage import Storage

logger = logging.getLogger(__name__)


class SchedulerManager:
    """
    Background housekeeping: expired import sessions and auth sessions.
    Started by a long-running host that shares one ImportSessionStore
    across requests.
    """

    def __init__(
        self,
        sessions: ImportSessionStore,
        storage: Optional[Storage] = None,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.sessions = sessions
        self.storage = storage
        self.log = log or logger
        self.scheduler = BackgroundScheduler(timezone="UTC")

    def sweep_import_sessions(self, source: str = "manual") -> int:
        removed = self.sessions.sweep()
        if removed:
            self.log.info(f"import_sessions_swept: source={source} removed={removed}")
        return removed

    def purge_auth_sessions(self, source: str = "manual") -> int:
        if self.storage is None:
            return 0
        removed = self.storage.delete_expired_sessions()
        self.log.info(f"auth_sessions_purged: source={source} removed={removed}")
        return removed

    def start(self) -> None:
        self.scheduler.add_job(
            self.sweep_import_sessions,
            IntervalTrigger(minutes=1),
            args=["every_minute"],
            id="import_session_sweeper",
            replace_existing=True,
            misfire_grace_time=30,
        )

        if self.storage is not None:
            self.purge_auth_sessions("startup")
            self.scheduler.add_job(
                self.purge_auth_sessions,
                IntervalTrigger(hours=1),
                args=["hourly"],
                id="auth_session_purge",
                replace_existing=True,
                misfire_grace_time=300,
            )

        self.scheduler.start()
        self.log.info("Scheduler started with import session sweeper")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            self.log.info("Scheduler stopped")
