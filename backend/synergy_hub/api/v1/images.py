from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession

from synergy_hub.database import get_db
from synergy_hub.api.deps import get_current_user
from synergy_hub.api.v1.artifacts import ArtifactResponse, artifact_to_response
from synergy_hub.models.enums import OperationType
from synergy_hub.models.profile import Profile
from synergy_hub.services.generation import (
    GenerationOutcome,
    GenerationRequest,
    GenerationService,
    get_generation_service,
)
from synergy_hub.services.model_catalog import DEFAULT_IMAGE_MODEL

router = APIRouter()

ALLOWED_IMAGE_FORMATS = {"png", "jpg", "jpeg", "webp"}


class ImageGenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    model: str = DEFAULT_IMAGE_MODEL
    prompt: Optional[str] = None
    positive_prompt: Optional[str] = Field(None, alias="positivePrompt")
    width: Optional[int] = 1024
    height: Optional[int] = 1024
    number_results: int = Field(1, alias="numberResults")
    output_format: str = Field("webp", alias="outputFormat")
    input_image: Optional[str] = Field(None, alias="inputImage")
    input_images: Optional[List[str]] = Field(None, alias="inputImages")
    strength: Optional[float] = None

    @field_validator("output_format")
    @classmethod
    def validate_output_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ALLOWED_IMAGE_FORMATS:
            return "webp"
        return v

    @property
    def text(self) -> Optional[str]:
        return self.prompt or self.positive_prompt

    @property
    def attachments(self) -> List[str]:
        images = [self.input_image] if self.input_image else []
        return images + [i for i in (self.input_images or []) if i]


class GenerationResponse(BaseModel):
    ok: bool = True
    operation: str
    image: Optional[ArtifactResponse] = None
    pending_results: int = 0
    credits_spent: float
    credits_remaining: float
    is_legacy_user: bool = False


def outcome_to_response(outcome: GenerationOutcome) -> GenerationResponse:
    return GenerationResponse(
        operation=outcome.operation_type.value,
        image=artifact_to_response(outcome.artifact) if outcome.artifact else None,
        pending_results=outcome.pending_results,
        credits_spent=float(0 if outcome.is_legacy_user else outcome.cost),
        credits_remaining=float(outcome.credits_remaining),
        is_legacy_user=outcome.is_legacy_user,
    )


@router.post("/generate", response_model=GenerationResponse)
async def generate_image(
    data: ImageGenerateRequest,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: GenerationService = Depends(get_generation_service),
):
    outcome = await service.run(
        db,
        GenerationRequest(
            user_id=user.id,
            operation_type=OperationType.IMAGE_GENERATION,
            model_identifier=data.model,
            prompt=data.text,
            attachments=data.attachments,
            width=data.width,
            height=data.height,
            desired_count=data.number_results,
            output_format=data.output_format,
            strength=data.strength,
        ),
    )
    return outcome_to_response(outcome)
