from typing import List, Optional
from uuid import UUID

import structlog
from sqlalchemy import select, desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from synergy_hub.adapters.base import ProviderOutput
from synergy_hub.exceptions import NotFoundError, PersistenceError, ValidationError
from synergy_hub.models.stored_artifact import StoredArtifact, Visibility
from synergy_hub.services.storage import StorageService, normalize_extension, storage_service

logger = structlog.get_logger(__name__)


class ArtifactService:
    """Moves provider output into object storage and keeps ``user_images`` in step."""

    def __init__(self, storage: Optional[StorageService] = None):
        self._storage = storage

    @property
    def storage(self) -> StorageService:
        return self._storage or storage_service

    async def save_output(
        self,
        db: AsyncSession,
        user_id: UUID,
        output: ProviderOutput,
        prompt: Optional[str] = None,
        model_identifier: Optional[str] = None,
        commit: bool = True,
    ) -> StoredArtifact:
        if output.data is not None:
            content = output.data
        elif output.url:
            content, _ = await self.storage.download(output.url)
        else:
            raise PersistenceError("Provider output has neither bytes nor a URL")

        ext = normalize_extension(output.format, default="mp4" if output.media_type == "video" else "webp")
        uploaded = await self.storage.upload_bytes(user_id, content, ext)

        artifact = StoredArtifact(
            user_id=user_id,
            storage_path=uploaded["key"],
            public_url=uploaded["public_url"],
            prompt=prompt,
            width=output.width,
            height=output.height,
            format=ext,
            media_type=output.media_type,
            model_identifier=model_identifier,
            visibility=Visibility.PRIVATE.value,
        )
        db.add(artifact)

        try:
            if commit:
                await db.commit()
            else:
                await db.flush()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("artifact_insert_failed", key=uploaded["key"], error=str(e))
            try:
                await self.storage.delete_object(uploaded["key"])
            except PersistenceError:
                logger.error("orphaned_storage_object", key=uploaded["key"])
            raise PersistenceError("Failed to record generated file", details=str(e))

        logger.info("artifact_saved", artifact_id=str(artifact.id), user_id=str(user_id), key=artifact.storage_path)
        return artifact

    async def list_artifacts(
        self,
        db: AsyncSession,
        user_id: UUID,
        limit: int = 50,
        offset: int = 0,
        media_type: Optional[str] = None,
    ) -> List[StoredArtifact]:
        query = select(StoredArtifact).where(StoredArtifact.user_id == user_id)
        if media_type:
            query = query.where(StoredArtifact.media_type == media_type)
        result = await db.execute(
            query.order_by(desc(StoredArtifact.created_at)).limit(limit).offset(offset)
        )
        return list(result.scalars().all())

    async def get_artifact(self, db: AsyncSession, user_id: UUID, artifact_id: UUID) -> StoredArtifact:
        result = await db.execute(
            select(StoredArtifact).where(
                StoredArtifact.id == artifact_id,
                StoredArtifact.user_id == user_id,
            )
        )
        artifact = result.scalar_one_or_none()
        if not artifact:
            raise NotFoundError("Artifact not found")
        return artifact

    async def set_visibility(
        self,
        db: AsyncSession,
        user_id: UUID,
        artifact_id: UUID,
        visibility: str,
    ) -> StoredArtifact:
        try:
            visibility = Visibility(visibility).value
        except ValueError:
            raise ValidationError("visibility must be 'public' or 'private'")

        artifact = await self.get_artifact(db, user_id, artifact_id)
        artifact.visibility = visibility
        await db.commit()
        return artifact

    async def delete_artifact(self, db: AsyncSession, user_id: UUID, artifact_id: UUID) -> None:
        """Remove the row and the stored object together, or neither."""
        artifact = await self.get_artifact(db, user_id, artifact_id)
        key = artifact.storage_path

        await db.delete(artifact)
        await db.flush()

        try:
            await self.storage.delete_object(key)
        except PersistenceError:
            await db.rollback()
            raise

        await db.commit()
        logger.info("artifact_deleted", artifact_id=str(artifact_id), user_id=str(user_id), key=key)


artifact_service = ArtifactService()
