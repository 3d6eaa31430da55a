from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from synergy_hub.database import get_db
from synergy_hub.api.deps import get_current_user
from synergy_hub.api.v1.tasks import TaskResponse, task_to_response
from synergy_hub.models.enums import OperationType
from synergy_hub.models.profile import Profile
from synergy_hub.services.generation import (
    GenerationOutcome,
    GenerationRequest,
    GenerationService,
    get_generation_service,
)
from synergy_hub.services.model_catalog import DEFAULT_VIDEO_MODEL

router = APIRouter()


class VideoGenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    model: Optional[str] = None
    model_id: Optional[str] = Field(None, alias="modelId")
    prompt: Optional[str] = None
    positive_prompt: Optional[str] = Field(None, alias="positivePrompt")
    width: Optional[int] = None
    height: Optional[int] = None
    duration: Optional[int] = None
    frame_start_url: Optional[str] = Field(None, alias="frameStartUrl")
    frame_end_url: Optional[str] = Field(None, alias="frameEndUrl")
    output_format: str = Field("mp4", alias="outputFormat")

    @property
    def model_identifier(self) -> str:
        return self.model or self.model_id or DEFAULT_VIDEO_MODEL

    @property
    def text(self) -> Optional[str]:
        return self.prompt or self.positive_prompt


class TaskAcceptedResponse(BaseModel):
    ok: bool = True
    task: TaskResponse
    credits_spent: float
    credits_remaining: float
    is_legacy_user: bool = False


def accepted_response(outcome: GenerationOutcome) -> TaskAcceptedResponse:
    return TaskAcceptedResponse(
        task=task_to_response(outcome.task),
        credits_spent=float(0 if outcome.is_legacy_user else outcome.cost),
        credits_remaining=float(outcome.credits_remaining),
        is_legacy_user=outcome.is_legacy_user,
    )


@router.post("/generate", response_model=TaskAcceptedResponse, status_code=202)
async def generate_video(
    data: VideoGenerateRequest,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: GenerationService = Depends(get_generation_service),
):
    outcome = await service.run(
        db,
        GenerationRequest(
            user_id=user.id,
            operation_type=OperationType.VIDEO_GENERATION,
            model_identifier=data.model_identifier,
            prompt=data.text,
            width=data.width,
            height=data.height,
            duration=data.duration,
            frame_start_url=data.frame_start_url,
            frame_end_url=data.frame_end_url,
            output_format=data.output_format,
        ),
    )
    return accepted_response(outcome)
