"""Wiring of stores, sources, pipeline, scheduler and admin surface."""

import asyncio
import signal
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timedelta

from vaultbets.analysis.client import LlmAnnotator
from vaultbets.analysis.interfaces import IAnnotator
from vaultbets.automation.admin import AdminControl
from vaultbets.automation.config_store import ConfigStore
from vaultbets.automation.pipeline import Pipeline
from vaultbets.automation.scheduler import Scheduler
from vaultbets.common.config import AppConfig
from vaultbets.common.logging import get_logger
from vaultbets.common.time_utils import utc_now
from vaultbets.football.client import FootballApiClient
from vaultbets.football.interfaces import IMatchSource, IOddsSource
from vaultbets.storage.database import Database

logger = get_logger(__name__)


class Service:
    """One explicitly constructed automation instance."""

    def __init__(
        self,
        config: AppConfig,
        db: Database,
        match_source: IMatchSource,
        annotator: IAnnotator,
        odds_source: IOddsSource | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self.db = db
        self.config_store = ConfigStore(db)
        self.pipeline = Pipeline(
            db,
            self.config_store,
            match_source,
            annotator,
            odds_source=odds_source,
            pipeline_config=config.pipeline,
            timezone=config.scheduler.timezone,
            clock=clock,
        )
        self.scheduler = Scheduler(
            self.pipeline,
            self.config_store,
            timezone=config.scheduler.timezone,
            clock=clock,
            run_lock_timeout=timedelta(minutes=config.scheduler.run_lock_timeout_minutes),
        )
        self.admin = AdminControl(
            self.scheduler,
            self.pipeline,
            db,
            self.config_store,
            pipeline_config=config.pipeline,
            clock=clock,
        )

    async def serve(self, shutdown: asyncio.Event) -> None:
        """Run scheduled jobs until shutdown is requested.

        Runs in progress are allowed to finish before returning.
        """
        if self.config.scheduler.auto_start:
            result = await self.admin.initialize()
            if not result.success:
                logger.error("scheduler_start_failed", error=result.error)
        else:
            logger.info("scheduler_not_started", reason="auto_start disabled")

        await shutdown.wait()

        logger.info("shutdown_started")
        self.scheduler.stop_all_jobs()
        await self.scheduler.wait_idle()
        logger.info("shutdown_complete")


@asynccontextmanager
async def open_service(config: AppConfig) -> AsyncIterator[Service]:
    """Open the database and HTTP clients and build a service around them."""
    db = Database(config.database.path)
    db.connect()
    try:
        db.migrate()
        async with FootballApiClient(config.football_api) as football:
            async with LlmAnnotator(config.annotator) as annotator:
                service = Service(config, db, football, annotator, odds_source=football)
                service.config_store.seed_defaults()
                yield service
    finally:
        db.close()


def install_signal_handlers(shutdown: asyncio.Event) -> None:
    """Set the shutdown event on SIGINT and SIGTERM."""
    loop = asyncio.get_running_loop()

    def request_shutdown(signum: int) -> None:
        logger.info("shutdown_requested", signal=signum)
        shutdown.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, request_shutdown, signum)
