from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from synergy_hub.database import get_db
from synergy_hub.api.deps import get_current_user
from synergy_hub.api.v1.images import GenerationResponse, outcome_to_response
from synergy_hub.models.enums import OperationType
from synergy_hub.models.profile import Profile
from synergy_hub.services.generation import GenerationRequest, GenerationService, get_generation_service
from synergy_hub.services.model_catalog import DEFAULT_UPSCALE_MODEL

router = APIRouter()


class UpscaleRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    model: str = DEFAULT_UPSCALE_MODEL
    input_image: Optional[str] = Field(None, alias="inputImage")
    upscale_factor: int = Field(4, alias="upscaleFactor")
    output_format: str = Field("webp", alias="outputFormat")
    image_width: int = Field(1024, alias="imageWidth")
    image_height: int = Field(1024, alias="imageHeight")


@router.post("", response_model=GenerationResponse)
async def upscale_image(
    data: UpscaleRequest,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: GenerationService = Depends(get_generation_service),
):
    outcome = await service.run(
        db,
        GenerationRequest(
            user_id=user.id,
            operation_type=OperationType.UPSCALE,
            model_identifier=data.model,
            attachments=[data.input_image] if data.input_image else [],
            width=data.image_width,
            height=data.image_height,
            upscale_factor=data.upscale_factor,
            output_format=data.output_format,
        ),
    )
    return outcome_to_response(outcome)
