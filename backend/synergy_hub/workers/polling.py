"""Server-side completion poller for asynchronous provider jobs.

Each poll is one dramatiq message. A poll that does not reach a terminal
state schedules the next one with a growing delay, up to
``POLL_MAX_ATTEMPTS`` polls, after which the task fails with ``TIMEOUT``.
"""

import asyncio
import uuid
from datetime import datetime
from typing import Optional

import dramatiq
import structlog

from synergy_hub.adapters.base import BaseAdapter, ProviderOutput
from synergy_hub.config import settings
from synergy_hub.database import worker_session
from synergy_hub.exceptions import PersistenceError, ProviderError
from synergy_hub.models.credit_reservation import CreditReservation, ReservationStatus
from synergy_hub.models.enums import OperationType
from synergy_hub.models.generation_task import GenerationTask, TaskStatus
from synergy_hub.services.artifacts import ArtifactService, artifact_service
from synergy_hub.services.billing import credit_ledger
from synergy_hub.services.costs import estimate_provider_cost
from synergy_hub.services.provider_routing import get_adapter_by_name

logger = structlog.get_logger(__name__)


def run_async(coro):
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def next_poll_delay_ms(poll_number: int) -> int:
    delay = settings.POLL_INTERVAL_MS * (settings.POLL_BACKOFF_FACTOR ** max(0, poll_number - 1))
    return int(min(delay, settings.POLL_MAX_INTERVAL_MS))


def schedule_poll(task_id: str, poll_number: int = 1) -> None:
    poll_generation_task.send_with_options(
        args=(str(task_id), poll_number),
        delay=next_poll_delay_ms(poll_number),
    )


async def fail_task(db, task: GenerationTask, error_code: str, error_message: str) -> None:
    reservation_id = task.reservation_id
    task_id = str(task.id)

    task.status = TaskStatus.FAILED.value
    task.error_code = error_code
    task.error_message = error_message
    task.completed_at = datetime.utcnow()
    await db.commit()

    logger.warning("task_failed", task_id=task_id, error_code=error_code, error_message=error_message)

    if reservation_id:
        await credit_ledger.release(db, reservation_id)


async def complete_task(db, task: GenerationTask, result_url: str, artifacts: ArtifactService) -> str:
    is_video = task.operation_type == OperationType.VIDEO_GENERATION.value
    output = ProviderOutput(
        url=result_url,
        format=task.output_format or ("mp4" if is_video else "png"),
        width=task.width,
        height=task.height,
        media_type="video" if is_video else "image",
    )
    task.result_url = result_url

    try:
        artifact = await artifacts.save_output(
            db,
            task.user_id,
            output,
            prompt=task.prompt,
            model_identifier=task.model_identifier,
            commit=False,
        )
    except PersistenceError as e:
        # an insert failure has already rolled the session back
        await db.refresh(task)
        await fail_task(db, task, "PERSISTENCE_FAILED", e.message)
        return TaskStatus.FAILED.value

    reservation_id = task.reservation_id
    provider_cost = estimate_provider_cost(task.model_identifier)
    task.status = TaskStatus.COMPLETED.value
    task.artifact_id = artifact.id
    task.completed_at = datetime.utcnow()
    await db.commit()

    logger.info("task_completed", task_id=str(task.id), artifact_id=str(artifact.id))

    if reservation_id:
        await credit_ledger.commit(db, reservation_id, provider_cost_usd=provider_cost)
    return TaskStatus.COMPLETED.value


async def settle_terminal_task(db, task: GenerationTask) -> None:
    """Settle a finished task whose reservation is still held.

    Redelivered messages land here when the first settlement did not go
    through; completed tasks are charged, failed ones refunded.
    """
    if not task.reservation_id:
        return
    reservation = await db.get(CreditReservation, task.reservation_id)
    if reservation is None or reservation.status != ReservationStatus.RESERVED.value:
        return

    logger.warning("task_reservation_unsettled", task_id=str(task.id), status=task.status)
    if task.status == TaskStatus.COMPLETED.value:
        await credit_ledger.commit(
            db,
            task.reservation_id,
            provider_cost_usd=estimate_provider_cost(task.model_identifier),
        )
    else:
        await credit_ledger.release(db, task.reservation_id)


async def poll_task_async(
    task_id: str,
    poll_number: int = 1,
    session_factory=None,
    adapter: Optional[BaseAdapter] = None,
    artifacts: Optional[ArtifactService] = None,
) -> Optional[str]:
    """Run one poll. Returns the task status afterwards, None for unknown tasks."""
    session_factory = session_factory or worker_session
    artifacts = artifacts or artifact_service
    log = logger.bind(task_id=task_id, attempt=poll_number)

    async with session_factory() as db:
        task = await db.get(GenerationTask, uuid.UUID(str(task_id)))
        if task is None:
            log.warning("poll_unknown_task")
            return None
        if TaskStatus(task.status).is_terminal:
            status = task.status
            await settle_terminal_task(db, task)
            return status

        if poll_number > settings.POLL_MAX_ATTEMPTS:
            await fail_task(
                db,
                task,
                "TIMEOUT",
                f"Task did not complete after {settings.POLL_MAX_ATTEMPTS} polls",
            )
            return TaskStatus.FAILED.value

        if adapter is None:
            try:
                adapter = get_adapter_by_name(task.provider)
            except ProviderError as e:
                await fail_task(db, task, e.provider_code or "NO_API_KEY", e.message)
                return TaskStatus.FAILED.value

        status = await adapter.get_task_status(task.external_task_id)
        task.poll_count = poll_number

        if not status.success:
            log.warning("poll_query_failed", error_code=status.error_code, error_message=status.error_message)
            current = task.status
            await db.commit()
            schedule_poll(task_id, poll_number + 1)
            return current

        log.info("task_polled", provider=task.provider, provider_status=status.status)

        if status.status == TaskStatus.COMPLETED.value and status.result_url:
            return await complete_task(db, task, status.result_url, artifacts)

        if status.status in (TaskStatus.COMPLETED.value, TaskStatus.FAILED.value):
            await fail_task(
                db,
                task,
                status.error_code or "PROVIDER_FAILED",
                status.error_message or "Task failed",
            )
            return TaskStatus.FAILED.value

        task.status = (
            TaskStatus.GENERATING.value
            if status.status == TaskStatus.GENERATING.value
            else TaskStatus.PENDING.value
        )
        current = task.status
        await db.commit()
        schedule_poll(task_id, poll_number + 1)
        return current


@dramatiq.actor(max_retries=3, min_backoff=1000, max_backoff=10000)
def poll_generation_task(task_id: str, poll_number: int = 1):
    run_async(poll_task_async(task_id, poll_number))
