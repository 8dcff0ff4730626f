"""Background worker for driver location matching.

This worker:
- Connects to PostgreSQL and creates missing tables
- Loads the IAAI and Copart yard datasets
- Runs the unknown-driver matcher, and the conversation and load syncs when
  transports are registered, as single-flight periodic jobs
- Serves a FastAPI health endpoint
"""

import asyncio
from typing import Awaitable, Callable, Optional

import uvicorn
from fastapi import FastAPI

from driver_locator.core.ai_client import AIFallbackClient
from driver_locator.core.config import settings
from driver_locator.core.database import async_session_maker, close_database, db_client, init_database
from driver_locator.services.location.auction_location_matcher import AuctionLocationMatcher
from driver_locator.services.matching.ai_dispatcher import AIDispatcher
from driver_locator.services.matching.conversation_service import (
    ConversationSyncService,
    MessagingTransport,
)
from driver_locator.services.matching.load_sync_service import LoadSyncService, SpreadsheetTransport
from driver_locator.services.matching.unknown_driver_service import UnknownDriverService
from driver_locator.services.scheduler import PeriodicJob, Scheduler
from driver_locator.utils.logging import get_logger

LOGGER = get_logger(__name__)

UNKNOWN_DRIVER_JOB = "unknown_driver_matching"
CONVERSATION_SYNC_JOB = "conversation_sync"
LOAD_SYNC_JOB = "load_sync"


def create_health_app(
    scheduler: Scheduler,
    dispatcher: Optional[AIDispatcher] = None,
    db_health: Callable[[], Awaitable[dict]] = db_client.health_check,
) -> FastAPI:
    """Create the minimal FastAPI app exposing worker health."""
    app = FastAPI(title=f"{settings.app_name} Worker Health Check", version=settings.app_version)

    @app.get("/health")
    async def health():
        database = await db_health()
        return {
            "status": "ok" if database.get("status") == "healthy" else "degraded",
            "service": "driver-locator-worker",
            "database": database,
            "jobs": scheduler.states(),
            "ai_dispatcher": dispatcher.stats() if dispatcher else None,
        }

    @app.get("/")
    async def root():
        return {"message": "Driver locator worker is running", "health": "/health"}

    return app


def build_scheduler(
    matcher: AuctionLocationMatcher,
    ai_client: Optional[AIFallbackClient] = None,
    dispatcher: Optional[AIDispatcher] = None,
    messaging_transport: Optional[MessagingTransport] = None,
    spreadsheet_transport: Optional[SpreadsheetTransport] = None,
    session_factory=async_session_maker,
) -> Scheduler:
    """Wire the periodic jobs. Sync jobs are only added for registered transports."""
    scheduler_settings = settings.scheduler
    scheduler = Scheduler()

    async def match_unknown_drivers():
        async with session_factory() as session:
            return await UnknownDriverService(session, matcher=matcher).match_unknown_drivers()

    scheduler.add(PeriodicJob(
        UNKNOWN_DRIVER_JOB,
        match_unknown_drivers,
        scheduler_settings.unknown_driver_interval_seconds,
        run_on_startup=scheduler_settings.run_on_startup,
    ))

    if messaging_transport is not None:
        sync_service = ConversationSyncService(
            session_factory,
            ai_client=ai_client,
            dispatcher=dispatcher,
            matcher=matcher,
            message_limit=settings.matching.message_history_limit,
            concurrency=settings.matching.conversation_concurrency,
        )
        scheduler.add(PeriodicJob(
            CONVERSATION_SYNC_JOB,
            lambda: sync_service.sync_all(messaging_transport),
            scheduler_settings.conversation_sync_interval_seconds,
            run_on_startup=scheduler_settings.run_on_startup,
        ))
    else:
        LOGGER.info("No messaging transport registered, conversation sync disabled")

    if spreadsheet_transport is not None:
        async def sync_loads():
            async with session_factory() as session:
                return await LoadSyncService(session, matcher=matcher).sync_from_transport(
                    spreadsheet_transport
                )

        scheduler.add(PeriodicJob(
            LOAD_SYNC_JOB,
            sync_loads,
            scheduler_settings.load_sync_interval_seconds,
            run_on_startup=scheduler_settings.run_on_startup,
        ))
    else:
        LOGGER.info("No spreadsheet transport registered, load sync disabled")

    return scheduler


def build_ai_fallback() -> tuple[Optional[AIFallbackClient], AIDispatcher]:
    ai_settings = settings.ai
    dispatcher = AIDispatcher(
        concurrency=ai_settings.concurrency,
        dispatch_delay_ms=ai_settings.dispatch_delay_ms,
    )
    if not ai_settings.enabled:
        LOGGER.info("AI fallback disabled, AI_FALLBACK_URL is not set")
        return None, dispatcher

    client = AIFallbackClient(
        base_url=ai_settings.url,
        api_key=ai_settings.api_key,
        timeout=ai_settings.timeout,
        max_retries=ai_settings.max_retries,
        retry_delay=ai_settings.retry_delay,
    )
    return client, dispatcher


async def run_health_check_server(app: FastAPI):
    LOGGER.info(f"Starting health check server on port {settings.port}")
    config = uvicorn.Config(app, host=settings.host, port=settings.port, log_level="info")
    server = uvicorn.Server(config)
    await server.serve()


async def main(
    messaging_transport: Optional[MessagingTransport] = None,
    spreadsheet_transport: Optional[SpreadsheetTransport] = None,
):
    """Start the worker. Transports are supplied by the embedding process."""
    await asyncio.wait_for(init_database(), timeout=settings.db_init_timeout)

    matcher = AuctionLocationMatcher.from_files(
        settings.gazetteer.primary_path, settings.gazetteer.secondary_path
    )
    ai_client, dispatcher = build_ai_fallback()
    scheduler = build_scheduler(
        matcher,
        ai_client=ai_client,
        dispatcher=dispatcher,
        messaging_transport=messaging_transport,
        spreadsheet_transport=spreadsheet_transport,
    )

    LOGGER.info("=" * 60)
    LOGGER.info("Driver Locator Worker Initialized")
    LOGGER.info(f"Environment: {settings.environment}")
    LOGGER.info(f"Jobs: {list(scheduler.jobs)}")
    LOGGER.info("=" * 60)

    scheduler.start()
    try:
        await run_health_check_server(create_health_app(scheduler, dispatcher))
    finally:
        await scheduler.stop()
        await dispatcher.close()
        await close_database()


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        LOGGER.info("Worker stopped by user")


if __name__ == "__main__":
    run()
