import uuid
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from sqlalchemy import select

from synergy_hub.adapters.base import TaskStatusResult
from synergy_hub.config import settings
from synergy_hub.models.credit_reservation import CreditReservation
from synergy_hub.models.generation_task import GenerationTask
from synergy_hub.models.stored_artifact import StoredArtifact
from synergy_hub.models.usage_record import UsageRecord
from synergy_hub.services.billing import CreditLedger
from synergy_hub.workers.polling import next_poll_delay_ms, poll_task_async


@pytest.fixture
def reschedule():
    with patch("synergy_hub.workers.polling.schedule_poll") as mocked:
        yield mocked


@pytest.fixture
def start_task(session_factory, make_profile):
    async def _start(credits="10", cost="1.5", status="pending", operation="video-generation"):
        user_id = await make_profile(credits)
        async with session_factory() as session:
            decision = await CreditLedger().reserve(session, user_id, Decimal(cost), operation, "klingai:5@3")
            task = GenerationTask(
                id=uuid.uuid4(),
                user_id=user_id,
                reservation_id=decision.reservation_id,
                provider="runware",
                operation_type=operation,
                model_identifier="klingai:5@3",
                external_task_id="ext-1",
                status=status,
                prompt="a waterfall",
                output_format="mp4",
                poll_count=0,
            )
            session.add(task)
            await session.commit()
        return user_id, task.id

    return _start


def status_adapter(result: TaskStatusResult):
    adapter = MagicMock()
    adapter.get_task_status = AsyncMock(return_value=result)
    return adapter


async def _load(session_factory, model, **filters):
    async with session_factory() as session:
        query = select(model)
        for name, value in filters.items():
            query = query.where(getattr(model, name) == value)
        result = await session.execute(query)
        return list(result.scalars().all())


def test_backoff_grows_and_caps():
    assert next_poll_delay_ms(1) == settings.POLL_INTERVAL_MS
    assert next_poll_delay_ms(2) == int(settings.POLL_INTERVAL_MS * settings.POLL_BACKOFF_FACTOR)
    assert next_poll_delay_ms(2) > next_poll_delay_ms(1)
    assert next_poll_delay_ms(100) == settings.POLL_MAX_INTERVAL_MS


async def test_completed_job_is_stored_and_charged(session_factory, start_task, artifacts, s3_client, balance_of, reschedule):
    user_id, task_id = await start_task()
    adapter = status_adapter(TaskStatusResult(success=True, status="completed", result_url="https://v/out.mp4"))

    status = await poll_task_async(str(task_id), 3, session_factory=session_factory, adapter=adapter, artifacts=artifacts)

    assert status == "completed"
    [task] = await _load(session_factory, GenerationTask, id=task_id)
    assert task.status == "completed"
    assert task.result_url == "https://v/out.mp4"
    assert task.completed_at is not None
    assert task.poll_count == 3

    [artifact] = await _load(session_factory, StoredArtifact, user_id=user_id)
    assert task.artifact_id == artifact.id
    assert artifact.media_type == "video"
    assert artifact.format == "mp4"
    assert s3_client.put_object.call_args.kwargs["ContentType"] == "video/mp4"

    [usage] = await _load(session_factory, UsageRecord, user_id=user_id)
    assert usage.cost_charged == Decimal("1.5")
    assert await balance_of(user_id) == Decimal("8.5")
    reschedule.assert_not_called()


async def test_failed_job_is_refunded(session_factory, start_task, artifacts, balance_of, reschedule):
    user_id, task_id = await start_task()
    adapter = status_adapter(TaskStatusResult(
        success=True, status="failed", error_code="VIDEO_FAILED", error_message="Content moderated"
    ))

    status = await poll_task_async(str(task_id), 1, session_factory=session_factory, adapter=adapter, artifacts=artifacts)

    assert status == "failed"
    [task] = await _load(session_factory, GenerationTask, id=task_id)
    assert task.error_code == "VIDEO_FAILED"
    assert task.error_message == "Content moderated"
    assert await balance_of(user_id) == Decimal("10")
    assert await _load(session_factory, UsageRecord, user_id=user_id) == []
    [reservation] = await _load(session_factory, CreditReservation, user_id=user_id)
    assert reservation.status == "released"


async def test_in_progress_job_is_rescheduled(session_factory, start_task, artifacts, reschedule):
    _, task_id = await start_task()
    adapter = status_adapter(TaskStatusResult(success=True, status="generating"))

    status = await poll_task_async(str(task_id), 2, session_factory=session_factory, adapter=adapter, artifacts=artifacts)

    assert status == "generating"
    [task] = await _load(session_factory, GenerationTask, id=task_id)
    assert task.status == "generating"
    assert task.poll_count == 2
    reschedule.assert_called_once_with(str(task_id), 3)


async def test_query_failure_keeps_polling(session_factory, start_task, artifacts, balance_of, reschedule):
    user_id, task_id = await start_task()
    adapter = status_adapter(TaskStatusResult(success=False, error_code="HTTP_503", error_message="unavailable"))

    status = await poll_task_async(str(task_id), 1, session_factory=session_factory, adapter=adapter, artifacts=artifacts)

    assert status == "pending"
    reschedule.assert_called_once_with(str(task_id), 2)
    assert await balance_of(user_id) == Decimal("8.5")


async def test_poll_cap_times_out_and_refunds(session_factory, start_task, artifacts, balance_of, reschedule):
    user_id, task_id = await start_task()
    adapter = status_adapter(TaskStatusResult(success=True, status="pending"))

    status = await poll_task_async(
        str(task_id),
        settings.POLL_MAX_ATTEMPTS + 1,
        session_factory=session_factory,
        adapter=adapter,
        artifacts=artifacts,
    )

    assert status == "failed"
    adapter.get_task_status.assert_not_called()
    [task] = await _load(session_factory, GenerationTask, id=task_id)
    assert task.error_code == "TIMEOUT"
    assert await balance_of(user_id) == Decimal("10")
    reschedule.assert_not_called()


async def test_persistence_failure_fails_task_and_refunds(
    session_factory, start_task, artifacts, download_handler, balance_of, reschedule
):
    user_id, task_id = await start_task()
    download_handler["handler"] = lambda request: httpx.Response(500)
    adapter = status_adapter(TaskStatusResult(success=True, status="completed", result_url="https://v/out.mp4"))

    status = await poll_task_async(str(task_id), 1, session_factory=session_factory, adapter=adapter, artifacts=artifacts)

    assert status == "failed"
    [task] = await _load(session_factory, GenerationTask, id=task_id)
    assert task.error_code == "PERSISTENCE_FAILED"
    assert task.artifact_id is None
    assert await balance_of(user_id) == Decimal("10")


async def test_terminal_task_is_left_alone(session_factory, start_task, artifacts, reschedule):
    _, task_id = await start_task(status="completed")
    adapter = status_adapter(TaskStatusResult(success=True, status="failed"))

    status = await poll_task_async(str(task_id), 1, session_factory=session_factory, adapter=adapter, artifacts=artifacts)

    assert status == "completed"
    adapter.get_task_status.assert_not_called()


async def test_completed_task_with_held_reservation_is_charged(session_factory, start_task, artifacts, balance_of, reschedule):
    user_id, task_id = await start_task(status="completed")
    adapter = status_adapter(TaskStatusResult(success=True, status="completed"))

    status = await poll_task_async(str(task_id), 2, session_factory=session_factory, adapter=adapter, artifacts=artifacts)

    assert status == "completed"
    [usage] = await _load(session_factory, UsageRecord, user_id=user_id)
    assert usage.cost_charged == Decimal("1.5")
    assert await balance_of(user_id) == Decimal("8.5")
    adapter.get_task_status.assert_not_called()


async def test_failed_task_with_held_reservation_is_refunded(session_factory, start_task, artifacts, balance_of, reschedule):
    user_id, task_id = await start_task(status="failed")
    adapter = status_adapter(TaskStatusResult(success=True, status="failed"))

    status = await poll_task_async(str(task_id), 2, session_factory=session_factory, adapter=adapter, artifacts=artifacts)

    assert status == "failed"
    assert await balance_of(user_id) == Decimal("10")
    [reservation] = await _load(session_factory, CreditReservation, user_id=user_id)
    assert reservation.status == "released"


async def test_redelivered_poll_does_not_settle_twice(session_factory, start_task, artifacts, balance_of, reschedule):
    user_id, task_id = await start_task()
    adapter = status_adapter(TaskStatusResult(success=True, status="completed", result_url="https://v/out.mp4"))

    await poll_task_async(str(task_id), 1, session_factory=session_factory, adapter=adapter, artifacts=artifacts)
    await poll_task_async(str(task_id), 1, session_factory=session_factory, adapter=adapter, artifacts=artifacts)

    assert len(await _load(session_factory, UsageRecord, user_id=user_id)) == 1
    assert await balance_of(user_id) == Decimal("8.5")


async def test_unknown_task(session_factory, artifacts, reschedule):
    adapter = status_adapter(TaskStatusResult(success=True, status="pending"))

    assert await poll_task_async(str(uuid.uuid4()), 1, session_factory=session_factory, adapter=adapter, artifacts=artifacts) is None


async def test_missing_provider_key_fails_task(session_factory, start_task, artifacts, balance_of, reschedule):
    user_id, task_id = await start_task()

    with patch.object(settings, "RUNWARE_API_KEY", ""):
        status = await poll_task_async(str(task_id), 1, session_factory=session_factory, artifacts=artifacts)

    assert status == "failed"
    [task] = await _load(session_factory, GenerationTask, id=task_id)
    assert task.error_code == "NO_API_KEY"
    assert await balance_of(user_id) == Decimal("10")
