from fastapi import APIRouter, Depends
from pydantic import BaseModel
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from synergy_hub.database import get_db
from synergy_hub.api.deps import get_current_user
from synergy_hub.api.v1.images import GenerationResponse, outcome_to_response
from synergy_hub.api.v1.video import TaskAcceptedResponse, accepted_response
from synergy_hub.models.enums import OperationType
from synergy_hub.models.profile import Profile
from synergy_hub.services.generation import GenerationRequest, GenerationService, get_generation_service
from synergy_hub.services.model_catalog import DEFAULT_INPAINT_MODEL, DEFAULT_SKIN_ENHANCE_MODEL

router = APIRouter()


class SkinEnhanceRequest(BaseModel):
    image: Optional[str] = None
    sharpen: int = 0
    smart_grain: int = 2
    model: str = DEFAULT_SKIN_ENHANCE_MODEL


class InpaintRequest(BaseModel):
    prompt: Optional[str] = None
    image: Optional[str] = None
    model: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None


@router.post("/skin", response_model=TaskAcceptedResponse, status_code=202)
async def enhance_skin(
    data: SkinEnhanceRequest,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: GenerationService = Depends(get_generation_service),
):
    outcome = await service.run(
        db,
        GenerationRequest(
            user_id=user.id,
            operation_type=OperationType.SKIN_ENHANCE,
            model_identifier=data.model,
            attachments=[data.image] if data.image else [],
            sharpen=data.sharpen,
            smart_grain=data.smart_grain,
        ),
    )
    return accepted_response(outcome)


@router.post("/inpaint", response_model=GenerationResponse)
async def inpaint_image(
    data: InpaintRequest,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: GenerationService = Depends(get_generation_service),
):
    outcome = await service.run(
        db,
        GenerationRequest(
            user_id=user.id,
            operation_type=OperationType.INPAINT,
            model_identifier=data.model or DEFAULT_INPAINT_MODEL,
            prompt=data.prompt,
            attachments=[data.image] if data.image else [],
            width=data.width,
            height=data.height,
        ),
    )
    return outcome_to_response(outcome)
