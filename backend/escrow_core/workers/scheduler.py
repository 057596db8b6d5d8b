"""
In-process release scheduler - periodic sweep of held funds
"""

import logging
from typing import Any, Callable, Dict, Optional
from uuid import uuid4

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from escrow_core.infrastructure.database import SessionLocal
from escrow_core.infrastructure.logging_config import trace_id_context
from escrow_core.infrastructure.settings import get_settings
from escrow_core.services.notifications import NotificationPublisher, get_notification_publisher
from escrow_core.services.release_service import release_held_funds
from escrow_core.utils.metrics import record_sweep_run

logger = logging.getLogger(__name__)

RELEASE_JOB_ID = "release_held_funds"


class ReleaseScheduler:
    """
    Runs release_held_funds on a fixed interval in a background thread.

    Each run opens its own session and is wrapped in its own error boundary: an
    exception in one sweep is logged and counted, and the next sweep still runs.
    """

    def __init__(
        self,
        *,
        interval_seconds: Optional[int] = None,
        session_factory: Callable = SessionLocal,
        publisher: Optional[NotificationPublisher] = None,
    ):
        settings = get_settings()
        self.interval_seconds = interval_seconds or settings.RELEASE_SWEEP_INTERVAL_SECONDS
        self.session_factory = session_factory
        self.publisher = publisher
        self.scheduler = BackgroundScheduler(
            job_defaults={
                'coalesce': True,  # Collapse missed runs into one
                'max_instances': 1,  # Never two sweeps at once
                'misfire_grace_time': 60,
            },
            timezone='UTC',
        )

    def run_once(self) -> Optional[Dict[str, Any]]:
        """One sweep inside the error boundary; returns stats, or None if it failed"""
        trace_id = str(uuid4())
        token = trace_id_context.set(trace_id)
        db = None
        try:
            db = self.session_factory()
            publisher = self.publisher or get_notification_publisher()
            return release_held_funds(db, trace_id=trace_id, publisher=publisher)
        except Exception:
            record_sweep_run("failed")
            logger.exception("Release sweep failed")
            return None
        finally:
            if db is not None:
                db.close()
            trace_id_context.reset(token)

    def start(self) -> None:
        if self.scheduler.running:
            return
        self.scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=RELEASE_JOB_ID,
            name="Release Held Funds",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info("Release scheduler started", extra={"interval_seconds": self.interval_seconds})

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Release scheduler stopped")

    @property
    def running(self) -> bool:
        return self.scheduler.running
