from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
import uuid

from synergy_hub.database import get_db
from synergy_hub.api.deps import get_current_user
from synergy_hub.models.profile import Profile
from synergy_hub.models.stored_artifact import StoredArtifact
from synergy_hub.services.artifacts import artifact_service

router = APIRouter()


class ArtifactResponse(BaseModel):
    id: str
    url: str
    storage_path: str
    prompt: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    format: str
    media_type: str
    model: Optional[str] = None
    visibility: str
    created_at: Optional[datetime] = None


class ArtifactListResponse(BaseModel):
    artifacts: List[ArtifactResponse]
    limit: int
    offset: int


class VisibilityUpdate(BaseModel):
    visibility: str


def artifact_to_response(artifact: StoredArtifact) -> ArtifactResponse:
    return ArtifactResponse(
        id=str(artifact.id),
        url=artifact.public_url,
        storage_path=artifact.storage_path,
        prompt=artifact.prompt,
        width=artifact.width,
        height=artifact.height,
        format=artifact.format,
        media_type=artifact.media_type,
        model=artifact.model_identifier,
        visibility=artifact.visibility,
        created_at=artifact.created_at,
    )


@router.get("", response_model=ArtifactListResponse)
async def list_artifacts(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    media_type: Optional[str] = Query(None, pattern="^(image|video)$"),
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    artifacts = await artifact_service.list_artifacts(db, user.id, limit=limit, offset=offset, media_type=media_type)
    return ArtifactListResponse(
        artifacts=[artifact_to_response(a) for a in artifacts],
        limit=limit,
        offset=offset,
    )


@router.patch("/{artifact_id}", response_model=ArtifactResponse)
async def update_visibility(
    artifact_id: uuid.UUID,
    data: VisibilityUpdate,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    artifact = await artifact_service.set_visibility(db, user.id, artifact_id, data.visibility)
    return artifact_to_response(artifact)


@router.delete("/{artifact_id}")
async def delete_artifact(
    artifact_id: uuid.UUID,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await artifact_service.delete_artifact(db, user.id, artifact_id)
    return {"ok": True}
