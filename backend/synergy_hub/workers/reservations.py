from datetime import timedelta
from typing import Optional

import dramatiq
import structlog

from synergy_hub.config import settings
from synergy_hub.database import worker_session
from synergy_hub.services.billing import credit_ledger
from synergy_hub.workers.polling import run_async

logger = structlog.get_logger(__name__)


def schedule_sweep(delay_ms: Optional[int] = None) -> None:
    sweep_stale_reservations.send_with_options(
        delay=settings.RESERVATION_SWEEP_INTERVAL_MS if delay_ms is None else delay_ms,
    )


async def sweep_reservations_async(session_factory=None) -> int:
    """Refund reservations nothing settled within ``RESERVATION_STALE_MINUTES``."""
    session_factory = session_factory or worker_session
    async with session_factory() as db:
        released = await credit_ledger.release_stale(
            db, timedelta(minutes=settings.RESERVATION_STALE_MINUTES)
        )
    logger.info("reservation_sweep_done", released=released)
    return released


@dramatiq.actor(max_retries=3, min_backoff=1000, max_backoff=10000)
def sweep_stale_reservations():
    run_async(sweep_reservations_async())
    schedule_sweep()
