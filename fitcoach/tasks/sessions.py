"""Session lifecycle tasks.

``reconcile_session_statuses`` runs daily just after local midnight (see the
beat schedule in ``fitcoach.core.celery_app``).
"""
import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from fitcoach.config.database import get_async_database_url
from fitcoach.config.settings import settings
from fitcoach.core.celery_app import celery_app
from fitcoach.core.redis import acquire_lock, release_lock
from fitcoach.domains.schedule.reconciler import SessionReconciler

logger = logging.getLogger(__name__)

SWEEP_LOCK_NAME = "session-reconciler"


def run_async(coro):
    """Run async function in sync context."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@celery_app.task(bind=True)
def reconcile_session_statuses(self):
    """Settle sessions dated before today.

    Scheduled sessions become completed, pending and requested ones become
    cancelled. Safe to run more than once a day.
    """
    logger.info("Starting session reconciliation task")
    return run_async(_reconcile_session_statuses_async())


async def _reconcile_session_statuses_async(session_factory=None) -> dict:
    token = await acquire_lock(SWEEP_LOCK_NAME, settings.SESSION_SWEEP_LOCK_TTL_SECONDS)
    if token is None:
        logger.info("Session reconciliation already running elsewhere, skipping")
        return {"skipped": True}

    engine = None
    if session_factory is None:
        # The task runs on a fresh event loop, so it cannot share the app's pooled engine
        engine = create_async_engine(get_async_database_url(settings.DATABASE_URL))
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    try:
        async with session_factory() as db:
            result = await SessionReconciler(db).run()
        return {"skipped": False, **result.as_dict()}
    finally:
        await release_lock(SWEEP_LOCK_NAME, token)
        if engine is not None:
            await engine.dispose()
