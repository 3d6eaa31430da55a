import base64
import uuid
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from sqlalchemy import select

from synergy_hub.adapters.base import GenerationResult, ProviderOutput
from synergy_hub.exceptions import (
    AccountNotFoundError,
    InsufficientCreditsError,
    PersistenceError,
    ProviderError,
    ValidationError,
)
from synergy_hub.models.credit_reservation import CreditReservation, ReservationStatus
from synergy_hub.models.enums import OperationType
from synergy_hub.models.generation_task import GenerationTask
from synergy_hub.models.stored_artifact import StoredArtifact
from synergy_hub.models.usage_record import UsageRecord
from synergy_hub.services.billing import CreditLedger
from synergy_hub.services.generation import GenerationRequest, GenerationService

DATA_URL = "data:image/png;base64," + base64.b64encode(b"source").decode()


def fake_adapter(result: GenerationResult, name="runware"):
    adapter = MagicMock()
    adapter.name = name
    adapter.generate = AsyncMock(return_value=result)
    return adapter


def image_urls(count):
    return GenerationResult(
        success=True,
        outputs=[ProviderOutput(url=f"https://im.runware.ai/{i}.webp", format="webp") for i in range(count)],
        status="completed",
    )


@pytest.fixture
def poll_scheduler():
    return MagicMock()


@pytest.fixture
def persist_scheduler():
    return MagicMock()


@pytest.fixture
def make_service(artifacts, poll_scheduler, persist_scheduler):
    def _make(adapter):
        return GenerationService(
            ledger=CreditLedger(),
            artifacts=artifacts,
            adapter_resolver=lambda operation: adapter,
            poll_scheduler=poll_scheduler,
            persist_scheduler=persist_scheduler,
        )

    return _make


async def _rows(session_factory, model, user_id):
    async with session_factory() as session:
        result = await session.execute(select(model).where(model.user_id == user_id))
        return list(result.scalars().all())


class TestCreditGate:
    async def test_insufficient_credits(self, db, make_profile, make_service, balance_of):
        user_id = await make_profile("0.5")
        adapter = fake_adapter(image_urls(1))
        service = make_service(adapter)

        with pytest.raises(InsufficientCreditsError) as exc_info:
            await service.run(db, GenerationRequest(
                user_id=user_id,
                operation_type=OperationType.IMAGE_GENERATION,
                model_identifier="runware:100@1",
                prompt="a lighthouse",
            ))

        body = exc_info.value.to_dict()
        assert body["error"] == "insufficient_credits"
        assert body["creditsRemaining"] == 0.5
        assert body["costRequired"] == 1
        assert body["message"] == "Insufficient credits. You have 0.5 credits, but need 1."
        assert exc_info.value.status_code == 402
        adapter.generate.assert_not_called()
        assert await balance_of(user_id) == Decimal("0.5")

    async def test_unknown_profile(self, db, make_service):
        service = make_service(fake_adapter(image_urls(1)))

        with pytest.raises(AccountNotFoundError):
            await service.run(db, GenerationRequest(
                user_id=uuid.uuid4(),
                operation_type=OperationType.IMAGE_GENERATION,
                model_identifier="runware:100@1",
                prompt="a lighthouse",
            ))

    async def test_missing_provider_key_charges_nothing(self, db, make_profile, artifacts, balance_of):
        user_id = await make_profile("5")

        def no_key(operation):
            raise ProviderError("No API key configured for provider: runware", provider_code="NO_API_KEY")

        service = GenerationService(ledger=CreditLedger(), artifacts=artifacts, adapter_resolver=no_key)

        with pytest.raises(ProviderError):
            await service.run(db, GenerationRequest(
                user_id=user_id,
                operation_type=OperationType.IMAGE_GENERATION,
                model_identifier="runware:100@1",
                prompt="a lighthouse",
            ))

        assert await balance_of(user_id) == Decimal("5")


class TestSyncGeneration:
    async def test_single_image(self, db, make_profile, make_service, balance_of, session_factory, persist_scheduler):
        user_id = await make_profile("3")
        service = make_service(fake_adapter(image_urls(1)))

        outcome = await service.run(db, GenerationRequest(
            user_id=user_id,
            operation_type=OperationType.IMAGE_GENERATION,
            model_identifier="google:4@1",
            prompt="a lighthouse at dusk",
        ))

        assert not outcome.is_async
        assert outcome.cost == Decimal("1")
        assert outcome.credits_remaining == Decimal("2")
        assert outcome.artifact.model_identifier == "google:4@1"
        assert outcome.usage.cost_charged == Decimal("1")
        assert outcome.usage.provider_cost_usd == Decimal("0.039")
        persist_scheduler.assert_not_called()
        assert await balance_of(user_id) == Decimal("2")

    async def test_multi_image_persists_the_rest_in_background(
        self, db, make_profile, make_service, balance_of, session_factory, persist_scheduler
    ):
        user_id = await make_profile("4")
        service = make_service(fake_adapter(image_urls(4)))

        outcome = await service.run(db, GenerationRequest(
            user_id=user_id,
            operation_type=OperationType.IMAGE_GENERATION,
            model_identifier="runware:100@1",
            prompt="four kittens",
            desired_count=4,
        ))

        assert outcome.cost == Decimal("4")
        assert outcome.pending_results == 3
        assert await balance_of(user_id) == Decimal("0")
        assert len(await _rows(session_factory, StoredArtifact, user_id)) == 1

        args = persist_scheduler.call_args.args
        assert args[0] == user_id
        assert [o.url for o in args[1]] == [f"https://im.runware.ai/{i}.webp" for i in (1, 2, 3)]
        assert args[2] == "four kittens"

    async def test_fewer_images_than_requested_charges_only_delivered(
        self, db, make_profile, make_service, balance_of, session_factory, persist_scheduler
    ):
        user_id = await make_profile("4")
        service = make_service(fake_adapter(image_urls(2)))

        outcome = await service.run(db, GenerationRequest(
            user_id=user_id,
            operation_type=OperationType.IMAGE_GENERATION,
            model_identifier="runware:100@1",
            prompt="four kittens",
            desired_count=4,
        ))

        assert outcome.cost == Decimal("2")
        assert outcome.credits_remaining == Decimal("2")
        assert outcome.pending_results == 1
        assert await balance_of(user_id) == Decimal("2")
        [usage] = await _rows(session_factory, UsageRecord, user_id)
        assert usage.cost_charged == Decimal("2")

    async def test_partial_delivery_for_legacy_user_stays_free(
        self, db, make_profile, make_service, balance_of, session_factory
    ):
        user_id = await make_profile("0", is_legacy_user=True)
        service = make_service(fake_adapter(image_urls(1)))

        outcome = await service.run(db, GenerationRequest(
            user_id=user_id,
            operation_type=OperationType.IMAGE_GENERATION,
            model_identifier="runware:100@1",
            prompt="three owls",
            desired_count=3,
        ))

        assert outcome.credits_remaining == Decimal("0")
        assert await balance_of(user_id) == Decimal("0")
        [usage] = await _rows(session_factory, UsageRecord, user_id)
        assert usage.cost_charged == Decimal("0")

    async def test_legacy_user_keeps_balance_but_gets_usage(self, db, make_profile, make_service, balance_of, session_factory):
        user_id = await make_profile("0", is_legacy_user=True)
        service = make_service(fake_adapter(image_urls(1)))

        outcome = await service.run(db, GenerationRequest(
            user_id=user_id,
            operation_type=OperationType.IMAGE_GENERATION,
            model_identifier="runware:100@1",
            prompt="a lighthouse",
        ))

        assert outcome.is_legacy_user
        assert await balance_of(user_id) == Decimal("0")
        usage = await _rows(session_factory, UsageRecord, user_id)
        assert len(usage) == 1
        assert usage[0].is_legacy

    async def test_upscale(self, db, make_profile, make_service, balance_of):
        user_id = await make_profile("1")
        adapter = fake_adapter(GenerationResult(
            success=True, outputs=[ProviderOutput(data=b"big", format="webp", width=4096, height=4096)]
        ))
        service = make_service(adapter)

        outcome = await service.run(db, GenerationRequest(
            user_id=user_id,
            operation_type=OperationType.UPSCALE,
            model_identifier="runware:upscale",
            attachments=["https://src/in.png"],
            width=1024,
            height=1024,
            upscale_factor=4,
        ))

        assert outcome.cost == Decimal("0.005")
        assert await balance_of(user_id) == Decimal("0.995")
        sent = adapter.generate.call_args.args[0]
        assert sent.input_image == "https://src/in.png"
        assert sent.upscale_factor == 4

    async def test_upscale_too_large_is_rejected_before_charging(self, db, make_profile, make_service, balance_of):
        user_id = await make_profile("1")
        adapter = fake_adapter(image_urls(1))

        with pytest.raises(ValidationError) as exc_info:
            await make_service(adapter).run(db, GenerationRequest(
                user_id=user_id,
                operation_type=OperationType.UPSCALE,
                model_identifier="runware:upscale",
                attachments=["https://src/in.png"],
                width=5000,
                height=5000,
            ))

        assert exc_info.value.message == "Image too large. Maximum allowed: 4K (4096px)"
        adapter.generate.assert_not_called()
        assert await balance_of(user_id) == Decimal("1")


class TestRefunds:
    async def test_provider_failure_refunds(self, db, make_profile, make_service, balance_of, session_factory):
        user_id = await make_profile("2")
        service = make_service(fake_adapter(GenerationResult(
            success=False, error_code="invalidPrompt", error_message="Prompt contains forbidden words"
        )))

        with pytest.raises(ProviderError) as exc_info:
            await service.run(db, GenerationRequest(
                user_id=user_id,
                operation_type=OperationType.IMAGE_GENERATION,
                model_identifier="runware:100@1",
                prompt="something forbidden",
            ))

        error = exc_info.value
        assert error.status_code == 502
        assert error.provider_code == "invalidPrompt"
        assert error.details == "Prompt contains forbidden words"
        assert error.message == "Generation failed, please try again later"
        assert await balance_of(user_id) == Decimal("2")
        assert await _rows(session_factory, UsageRecord, user_id) == []
        reservations = await _rows(session_factory, CreditReservation, user_id)
        assert [r.status for r in reservations] == [ReservationStatus.RELEASED.value]

    async def test_adapter_exception_refunds(self, db, make_profile, make_service, balance_of):
        user_id = await make_profile("2")
        adapter = fake_adapter(image_urls(1))
        adapter.generate.side_effect = RuntimeError("connection reset")

        with pytest.raises(RuntimeError):
            await make_service(adapter).run(db, GenerationRequest(
                user_id=user_id,
                operation_type=OperationType.IMAGE_GENERATION,
                model_identifier="runware:100@1",
                prompt="a lighthouse",
            ))

        assert await balance_of(user_id) == Decimal("2")

    async def test_persistence_failure_refunds(
        self, db, make_profile, make_service, balance_of, session_factory, download_handler
    ):
        user_id = await make_profile("2")
        download_handler["handler"] = lambda request: httpx.Response(404)

        with pytest.raises(PersistenceError):
            await make_service(fake_adapter(image_urls(1))).run(db, GenerationRequest(
                user_id=user_id,
                operation_type=OperationType.IMAGE_GENERATION,
                model_identifier="runware:100@1",
                prompt="a lighthouse",
            ))

        assert await balance_of(user_id) == Decimal("2")
        assert await _rows(session_factory, UsageRecord, user_id) == []


class TestAsyncGeneration:
    async def test_video_creates_task_and_schedules_poll(
        self, db, make_profile, make_service, balance_of, session_factory, poll_scheduler
    ):
        user_id = await make_profile("10")
        adapter = fake_adapter(GenerationResult(success=True, task_id="vid-123", status="pending"))

        outcome = await make_service(adapter).run(db, GenerationRequest(
            user_id=user_id,
            operation_type=OperationType.VIDEO_GENERATION,
            model_identifier="openai:3@1",
            prompt="waves crashing",
            duration=8,
        ))

        assert outcome.is_async
        assert outcome.cost == Decimal("1.5")
        assert await balance_of(user_id) == Decimal("8.5")

        tasks = await _rows(session_factory, GenerationTask, user_id)
        assert len(tasks) == 1
        task = tasks[0]
        assert task.external_task_id == "vid-123"
        assert task.status == "pending"
        assert task.provider == "runware"
        assert task.reservation_id is not None
        poll_scheduler.assert_called_once_with(str(task.id), 1)

        # charged up front, settled once the poller delivers
        assert await _rows(session_factory, UsageRecord, user_id) == []

    async def test_skin_enhance_is_async(self, db, make_profile, make_service, poll_scheduler):
        user_id = await make_profile("1")
        adapter = fake_adapter(GenerationResult(success=True, task_id="fp-1", status="generating"), name="freepik")

        outcome = await make_service(adapter).run(db, GenerationRequest(
            user_id=user_id,
            operation_type=OperationType.SKIN_ENHANCE,
            model_identifier="freepik:skin-enhancer",
            attachments=["https://src/face.jpg"],
            sharpen=10,
            smart_grain=2,
        ))

        assert outcome.task.status == "generating"
        assert outcome.task.provider == "freepik"
        poll_scheduler.assert_called_once()


class TestValidation:
    @pytest.mark.parametrize(
        "operation,kwargs,message",
        [
            (OperationType.IMAGE_GENERATION, dict(prompt="  "), "prompt is required"),
            (OperationType.IMAGE_GENERATION, dict(prompt="x", model_identifier=""), "model is required"),
            (OperationType.IMAGE_GENERATION, dict(prompt="x", desired_count=5), "numberResults"),
            (OperationType.IMAGE_GENERATION, dict(prompt="x", width=0), "width"),
            (OperationType.IMAGE_GENERATION, dict(prompt="x", strength=1.5), "strength"),
            (OperationType.VIDEO_GENERATION, dict(), "prompt is required"),
            (OperationType.UPSCALE, dict(), "input image"),
            (OperationType.UPSCALE, dict(attachments=["https://x/y.png"], upscale_factor=3), "upscaleFactor"),
            (OperationType.SKIN_ENHANCE, dict(attachments=["https://x/y.png"], sharpen=101), "sharpen"),
            (OperationType.INPAINT, dict(prompt="x", attachments=["https://x/y.png"]), "data URL"),
            (OperationType.INPAINT, dict(prompt="x"), "input image"),
        ],
    )
    async def test_rejected_before_any_charge(self, db, make_profile, make_service, balance_of, operation, kwargs, message):
        user_id = await make_profile("5")
        adapter = fake_adapter(image_urls(1))
        fields = dict(user_id=user_id, operation_type=operation, model_identifier="some-model")
        fields.update(kwargs)

        with pytest.raises(ValidationError) as exc_info:
            await make_service(adapter).run(db, GenerationRequest(**fields))

        assert message in exc_info.value.message
        adapter.generate.assert_not_called()
        assert await balance_of(user_id) == Decimal("5")

    async def test_reference_images_limited_per_model(self, db, make_profile, make_service):
        user_id = await make_profile("5")

        with pytest.raises(ValidationError):
            await make_service(fake_adapter(image_urls(1))).run(db, GenerationRequest(
                user_id=user_id,
                operation_type=OperationType.IMAGE_GENERATION,
                model_identifier="runware:108@1",
                prompt="x",
                attachments=["https://x/ref.png"],
            ))

    async def test_inpaint_accepts_data_url(self, db, make_profile, make_service):
        user_id = await make_profile("1")
        adapter = fake_adapter(GenerationResult(success=True, outputs=[ProviderOutput(data=b"edited", format="png")]), name="gemini")

        outcome = await make_service(adapter).run(db, GenerationRequest(
            user_id=user_id,
            operation_type=OperationType.INPAINT,
            model_identifier="gemini-2.5-flash-image",
            prompt="remove the car",
            attachments=[DATA_URL],
        ))

        assert outcome.artifact.format == "png"
        assert outcome.credits_remaining == Decimal("0")


def test_describe():
    request = GenerationRequest(
        user_id=uuid.uuid4(),
        operation_type=OperationType.UPSCALE,
        model_identifier="runware:upscale",
        width=2048,
        height=1024,
        upscale_factor=2,
    )
    assert request.describe() == "Upscale 2x (2048x1024)"
