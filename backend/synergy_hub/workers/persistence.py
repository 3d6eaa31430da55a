import base64
from typing import List, Optional
from uuid import UUID

import dramatiq
import structlog

from synergy_hub.adapters.base import ProviderOutput
from synergy_hub.database import worker_session
from synergy_hub.exceptions import PersistenceError
from synergy_hub.services.artifacts import ArtifactService, artifact_service
from synergy_hub.workers.polling import run_async

logger = structlog.get_logger(__name__)


def serialize_output(output: ProviderOutput) -> dict:
    return {
        "url": output.url,
        "data": base64.b64encode(output.data).decode() if output.data is not None else None,
        "format": output.format,
        "width": output.width,
        "height": output.height,
        "media_type": output.media_type,
    }


def deserialize_output(item: dict) -> ProviderOutput:
    return ProviderOutput(
        url=item.get("url"),
        data=base64.b64decode(item["data"]) if item.get("data") else None,
        format=item.get("format") or "webp",
        width=item.get("width"),
        height=item.get("height"),
        media_type=item.get("media_type") or "image",
    )


def schedule_persist(
    user_id,
    outputs: List[ProviderOutput],
    prompt: Optional[str] = None,
    model_identifier: Optional[str] = None,
) -> None:
    persist_generation_outputs.send(
        str(user_id),
        [serialize_output(o) for o in outputs],
        prompt,
        model_identifier,
    )


async def persist_outputs_async(
    user_id: str,
    outputs: List[dict],
    prompt: Optional[str] = None,
    model_identifier: Optional[str] = None,
    session_factory=None,
    artifacts: Optional[ArtifactService] = None,
) -> int:
    """Store extra results one by one; a failed item does not stop the rest."""
    session_factory = session_factory or worker_session
    artifacts = artifacts or artifact_service
    saved = 0

    async with session_factory() as db:
        for index, item in enumerate(outputs):
            try:
                await artifacts.save_output(
                    db,
                    UUID(user_id),
                    deserialize_output(item),
                    prompt=prompt,
                    model_identifier=model_identifier,
                )
                saved += 1
            except PersistenceError as e:
                logger.error(
                    "background_persist_failed",
                    user_id=user_id,
                    index=index,
                    error=e.message,
                    details=e.details,
                )

    logger.info("background_persist_done", user_id=user_id, saved=saved, total=len(outputs))
    return saved


@dramatiq.actor(max_retries=0)
def persist_generation_outputs(
    user_id: str,
    outputs: list,
    prompt: Optional[str] = None,
    model_identifier: Optional[str] = None,
):
    run_async(persist_outputs_async(user_id, outputs, prompt, model_identifier))
