"""Credit-gated generation lifecycle.

validate -> cost -> reserve credits -> provider call -> persist (or hand the
job to the poller) -> settle the reservation. Every failure after the
reservation releases it, so a user is only charged for delivered results.
"""

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, List, Optional
from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from synergy_hub.adapters.base import BaseAdapter, GenerationResult, ProviderRequest
from synergy_hub.adapters.gemini import parse_data_url
from synergy_hub.exceptions import (
    AccountNotFoundError,
    InsufficientCreditsError,
    PersistenceError,
    ProviderError,
    ValidationError,
)
from synergy_hub.models.enums import OperationType
from synergy_hub.models.generation_task import GenerationTask, TaskStatus
from synergy_hub.models.stored_artifact import StoredArtifact
from synergy_hub.models.usage_record import UsageRecord
from synergy_hub.services.artifacts import ArtifactService, artifact_service
from synergy_hub.services.billing import (
    CreditLedger,
    INSUFFICIENT_CREDITS,
    PROFILE_NOT_FOUND,
    credit_ledger,
)
from synergy_hub.services.costs import (
    UPSCALE_REJECTED,
    calculate_image_cost,
    cost_for,
    estimate_provider_cost,
)
from synergy_hub.services.model_catalog import ModelDescriptor, get_descriptor
from synergy_hub.services.provider_routing import get_adapter_for_operation
from synergy_hub.workers.persistence import schedule_persist
from synergy_hub.workers.polling import schedule_poll

logger = structlog.get_logger(__name__)

PROMPT_REQUIRED = {
    OperationType.IMAGE_GENERATION,
    OperationType.VIDEO_GENERATION,
    OperationType.INPAINT,
}
IMAGE_REQUIRED = {
    OperationType.UPSCALE,
    OperationType.SKIN_ENHANCE,
    OperationType.INPAINT,
}
UPSCALE_FACTORS = (2, 4, 8)
MAX_RESULTS = 4


@dataclass
class GenerationRequest:
    user_id: UUID
    operation_type: OperationType
    model_identifier: Optional[str] = None
    prompt: Optional[str] = None
    attachments: List[str] = field(default_factory=list)
    width: Optional[int] = None
    height: Optional[int] = None
    desired_count: int = 1
    output_format: Optional[str] = None
    strength: Optional[float] = None
    duration: Optional[int] = None
    frame_start_url: Optional[str] = None
    frame_end_url: Optional[str] = None
    upscale_factor: Optional[int] = None
    sharpen: Optional[int] = None
    smart_grain: Optional[int] = None

    @property
    def input_image(self) -> Optional[str]:
        return self.attachments[0] if self.attachments else None

    def describe(self) -> str:
        operation = OperationType(self.operation_type)
        prompt = (self.prompt or "")[:100]
        if operation == OperationType.UPSCALE:
            return f"Upscale {self.upscale_factor or 4}x ({self.width or 1024}x{self.height or 1024})"
        if operation == OperationType.SKIN_ENHANCE:
            return f"Skin enhancement: sharpen={self.sharpen}, smart_grain={self.smart_grain}"
        if operation == OperationType.VIDEO_GENERATION:
            return f"Video generation: {prompt}"
        if operation == OperationType.INPAINT:
            return f"Inpaint: {prompt}"
        return f"Image generation ({self.desired_count}x): {prompt}"

    def to_provider_request(self) -> ProviderRequest:
        return ProviderRequest(
            operation_type=OperationType(self.operation_type),
            model=self.model_identifier,
            prompt=self.prompt,
            width=self.width,
            height=self.height,
            count=self.desired_count,
            output_format=self.output_format,
            input_image=self.input_image,
            reference_images=list(self.attachments[1:]),
            strength=self.strength,
            duration=self.duration,
            frame_start_url=self.frame_start_url,
            frame_end_url=self.frame_end_url,
            upscale_factor=self.upscale_factor,
            sharpen=self.sharpen,
            smart_grain=self.smart_grain,
        )


@dataclass
class GenerationOutcome:
    operation_type: OperationType
    cost: Decimal
    credits_remaining: Decimal
    is_legacy_user: bool = False
    artifact: Optional[StoredArtifact] = None
    pending_results: int = 0
    task: Optional[GenerationTask] = None
    usage: Optional[UsageRecord] = None

    @property
    def is_async(self) -> bool:
        return self.task is not None


def _check_range(name: str, value, low, high) -> None:
    if value is not None and not (low <= value <= high):
        raise ValidationError(f"{name} must be between {low} and {high}")


class GenerationService:
    def __init__(
        self,
        ledger: Optional[CreditLedger] = None,
        artifacts: Optional[ArtifactService] = None,
        adapter_resolver: Optional[Callable[[OperationType], BaseAdapter]] = None,
        poll_scheduler: Optional[Callable] = None,
        persist_scheduler: Optional[Callable] = None,
    ):
        self.ledger = ledger or credit_ledger
        self.artifacts = artifacts or artifact_service
        self.adapter_resolver = adapter_resolver or get_adapter_for_operation
        self.poll_scheduler = poll_scheduler or schedule_poll
        self.persist_scheduler = persist_scheduler or schedule_persist

    def validate(self, request: GenerationRequest) -> OperationType:
        try:
            operation = OperationType(request.operation_type)
        except ValueError:
            raise ValidationError(f"Unknown operation type: {request.operation_type}")

        if not request.model_identifier or not request.model_identifier.strip():
            raise ValidationError("model is required")
        if operation in PROMPT_REQUIRED and not (request.prompt or "").strip():
            raise ValidationError("prompt is required")
        if operation in IMAGE_REQUIRED and not request.input_image:
            raise ValidationError("an input image is required")
        if operation == OperationType.INPAINT and parse_data_url(request.input_image) is None:
            raise ValidationError("image must be a base64 data URL")

        for name, value in (("width", request.width), ("height", request.height)):
            if value is not None and value <= 0:
                raise ValidationError(f"{name} must be a positive integer")
        if request.duration is not None and request.duration <= 0:
            raise ValidationError("duration must be a positive integer")

        _check_range("numberResults", request.desired_count, 1, MAX_RESULTS)
        _check_range("strength", request.strength, 0, 1)
        _check_range("sharpen", request.sharpen, 0, 100)
        _check_range("smart_grain", request.smart_grain, 0, 100)

        if operation == OperationType.UPSCALE:
            factor = request.upscale_factor or 4
            if factor not in UPSCALE_FACTORS:
                raise ValidationError("upscaleFactor must be 2, 4 or 8")

        return operation

    def check_attachments(self, request: GenerationRequest, descriptor: ModelDescriptor) -> None:
        if OperationType(request.operation_type) != OperationType.IMAGE_GENERATION or not request.attachments:
            return
        if descriptor.max_reference_images == 0:
            raise ValidationError(f"{descriptor.label} does not accept reference images")
        if len(request.attachments) > descriptor.max_reference_images:
            raise ValidationError(
                f"{descriptor.label} accepts at most {descriptor.max_reference_images} reference images"
            )

    async def run(self, db: AsyncSession, request: GenerationRequest) -> GenerationOutcome:
        operation = self.validate(request)
        descriptor = get_descriptor(request.model_identifier, operation)
        self.check_attachments(request, descriptor)

        cost = cost_for(request)
        if cost == UPSCALE_REJECTED or cost < 0:
            raise ValidationError("Image too large. Maximum allowed: 4K (4096px)")

        # unconfigured providers fail before anything is charged
        adapter = self.adapter_resolver(operation)

        log = logger.bind(
            user_id=str(request.user_id),
            operation_type=operation.value,
            model=request.model_identifier,
        )

        decision = await self.ledger.reserve(
            db,
            request.user_id,
            cost,
            operation.value,
            request.model_identifier,
            request.describe(),
        )
        if not decision.authorized:
            if decision.reason == INSUFFICIENT_CREDITS:
                raise InsufficientCreditsError(decision.credits_remaining, cost)
            if decision.reason == PROFILE_NOT_FOUND:
                raise AccountNotFoundError("Profile not found")
            raise PersistenceError("Could not reserve credits, please try again later")

        try:
            result = await adapter.generate(request.to_provider_request())
        except Exception:
            await self.ledger.release(db, decision.reservation_id)
            raise

        if not result.success:
            await self.ledger.release(db, decision.reservation_id)
            log.warning(
                "provider_call_failed",
                provider=adapter.name,
                error_code=result.error_code,
                error_message=result.error_message,
            )
            raise ProviderError(
                "Generation failed, please try again later",
                provider_code=result.error_code,
                provider=adapter.name,
                details=result.error_message,
            )

        outcome = GenerationOutcome(
            operation_type=operation,
            cost=cost,
            credits_remaining=decision.credits_remaining,
            is_legacy_user=decision.is_legacy_user,
        )

        if result.is_async:
            outcome.task = await self._start_task(db, request, adapter, result, decision.reservation_id)
            log.info("generation_task_started", task_id=str(outcome.task.id), external_task_id=result.task_id)
            return outcome

        if not result.outputs:
            await self.ledger.release(db, decision.reservation_id)
            raise ProviderError(
                "Generation failed, please try again later",
                provider_code="EMPTY_RESULT",
                provider=adapter.name,
                details="Provider returned no results",
            )

        first, rest = result.outputs[0], result.outputs[1:]
        try:
            outcome.artifact = await self.artifacts.save_output(
                db,
                request.user_id,
                first,
                prompt=request.prompt,
                model_identifier=request.model_identifier,
            )
        except PersistenceError:
            await self.ledger.release(db, decision.reservation_id)
            raise

        delivered = len(result.outputs)
        charge = None
        if operation == OperationType.IMAGE_GENERATION and delivered < request.desired_count:
            charge = calculate_image_cost(request.model_identifier, delivered)
            log.warning("partial_delivery", requested=request.desired_count, delivered=delivered)
            if not decision.is_legacy_user:
                outcome.credits_remaining += cost - charge
            outcome.cost = charge

        outcome.usage = await self.ledger.commit(
            db,
            decision.reservation_id,
            provider_cost_usd=self._provider_cost(request, result),
            amount=charge,
        )

        if rest:
            self.persist_scheduler(request.user_id, rest, request.prompt, request.model_identifier)
            outcome.pending_results = len(rest)

        log.info(
            "generation_completed",
            artifact_id=str(outcome.artifact.id),
            pending_results=outcome.pending_results,
            cost=str(outcome.cost),
        )
        return outcome

    async def _start_task(
        self,
        db: AsyncSession,
        request: GenerationRequest,
        adapter: BaseAdapter,
        result: GenerationResult,
        reservation_id: UUID,
    ) -> GenerationTask:
        status = result.status if result.status in (
            TaskStatus.PENDING.value,
            TaskStatus.GENERATING.value,
        ) else TaskStatus.PENDING.value

        task = GenerationTask(
            id=uuid.uuid4(),
            user_id=request.user_id,
            reservation_id=reservation_id,
            provider=adapter.name,
            operation_type=OperationType(request.operation_type).value,
            model_identifier=request.model_identifier,
            external_task_id=result.task_id,
            status=status,
            prompt=request.prompt,
            width=request.width,
            height=request.height,
            output_format=(request.output_format or "").lower() or None,
            poll_count=0,
        )
        db.add(task)
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            await self.ledger.release(db, reservation_id)
            raise PersistenceError("Failed to record generation task", details=str(e))

        self.poll_scheduler(str(task.id), 1)
        return task

    @staticmethod
    def _provider_cost(request: GenerationRequest, result: GenerationResult) -> Optional[Decimal]:
        if result.provider_cost:
            return Decimal(str(result.provider_cost))
        return estimate_provider_cost(request.model_identifier, len(result.outputs) or 1)


generation_service = GenerationService()


def get_generation_service() -> GenerationService:
    return generation_service
