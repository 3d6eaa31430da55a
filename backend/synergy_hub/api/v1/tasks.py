from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
import uuid

from synergy_hub.database import get_db
from synergy_hub.api.deps import get_current_user
from synergy_hub.exceptions import NotFoundError
from synergy_hub.models.profile import Profile
from synergy_hub.models.generation_task import GenerationTask
from synergy_hub.models.stored_artifact import StoredArtifact
from synergy_hub.api.v1.artifacts import ArtifactResponse, artifact_to_response

router = APIRouter()


class TaskResponse(BaseModel):
    task_id: str
    status: str
    type: str
    model: str
    provider: str
    prompt: Optional[str] = None
    poll_count: int = 0
    result_url: Optional[str] = None
    artifact_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class TaskDetailResponse(TaskResponse):
    artifact: Optional[ArtifactResponse] = None


class TaskListResponse(BaseModel):
    tasks: List[TaskResponse]
    limit: int
    offset: int


def task_to_response(task: GenerationTask) -> TaskResponse:
    return TaskResponse(
        task_id=str(task.id),
        status=task.status,
        type=task.operation_type,
        model=task.model_identifier,
        provider=task.provider,
        prompt=task.prompt,
        poll_count=task.poll_count or 0,
        result_url=task.result_url,
        artifact_id=str(task.artifact_id) if task.artifact_id else None,
        error_code=task.error_code,
        error_message=task.error_message,
        created_at=task.created_at,
        completed_at=task.completed_at,
    )


@router.get("", response_model=TaskListResponse)
async def list_tasks(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    status: Optional[str] = Query(None),
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    query = select(GenerationTask).where(GenerationTask.user_id == user.id)
    if status:
        query = query.where(GenerationTask.status == status)

    result = await db.execute(
        query.order_by(desc(GenerationTask.created_at)).limit(limit).offset(offset)
    )
    tasks = result.scalars().all()

    return TaskListResponse(
        tasks=[task_to_response(t) for t in tasks],
        limit=limit,
        offset=offset,
    )


@router.get("/{task_id}", response_model=TaskDetailResponse)
async def get_task(
    task_id: uuid.UUID,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(GenerationTask).where(
            GenerationTask.id == task_id,
            GenerationTask.user_id == user.id,
        )
    )
    task = result.scalar_one_or_none()
    if not task:
        raise NotFoundError("Task not found")

    response = TaskDetailResponse(**task_to_response(task).model_dump())
    if task.artifact_id:
        artifact = await db.get(StoredArtifact, task.artifact_id)
        if artifact:
            response.artifact = artifact_to_response(artifact)
    return response
