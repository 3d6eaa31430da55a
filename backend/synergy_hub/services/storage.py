import asyncio
import mimetypes
import time
import uuid
from typing import Optional, Tuple

import boto3
import httpx
import structlog
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from synergy_hub.config import settings
from synergy_hub.exceptions import PersistenceError

logger = structlog.get_logger(__name__)

KEY_PREFIX = "user-images"

CONTENT_TYPES = {
    "webp": "image/webp",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "mp4": "video/mp4",
    "webm": "video/webm",
    "mov": "video/quicktime",
}


def normalize_extension(fmt: Optional[str], default: str = "webp") -> str:
    ext = (fmt or default).lower().lstrip(".")
    if "/" in ext:
        ext = ext.split("/")[-1]
    return "jpg" if ext == "jpeg" else ext


class StorageService:
    """S3-compatible object storage for generated artifacts."""

    def __init__(self, client=None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.endpoint_url = settings.S3_ENDPOINT
        self.bucket = settings.S3_BUCKET
        self.public_endpoint = (settings.S3_PUBLIC_ENDPOINT or settings.S3_ENDPOINT).rstrip("/")
        self.transport = transport

        self.client = client or boto3.client(
            "s3",
            endpoint_url=self.endpoint_url,
            aws_access_key_id=settings.S3_ACCESS_KEY,
            aws_secret_access_key=settings.S3_SECRET_KEY,
            region_name=settings.S3_REGION,
            config=Config(signature_version="s3v4"),
        )

    def build_key(self, user_id, ext: str) -> str:
        return f"{KEY_PREFIX}/{user_id}/{int(time.time() * 1000)}-{uuid.uuid4()}.{normalize_extension(ext)}"

    def public_url(self, key: str) -> str:
        return f"{self.public_endpoint}/{self.bucket}/{key}"

    async def upload_bytes(
        self,
        user_id,
        content: bytes,
        ext: str,
        content_type: Optional[str] = None,
    ) -> dict:
        ext = normalize_extension(ext)
        key = self.build_key(user_id, ext)

        if not content_type:
            content_type = (
                CONTENT_TYPES.get(ext)
                or mimetypes.guess_type(f"file.{ext}")[0]
                or "application/octet-stream"
            )

        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=content,
                ContentType=content_type,
                Metadata={"user_id": str(user_id)},
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("upload_failed", key=key, error=str(e))
            raise PersistenceError("Failed to store generated file", details=str(e))

        return {
            "key": key,
            "public_url": self.public_url(key),
            "size_bytes": len(content),
            "content_type": content_type,
        }

    async def download(self, url: str) -> Tuple[bytes, str]:
        """Fetch provider-hosted bytes, retrying with a linear backoff."""
        max_attempts = max(1, settings.DOWNLOAD_MAX_ATTEMPTS)
        last_error = None

        for attempt in range(1, max_attempts + 1):
            try:
                async with httpx.AsyncClient(timeout=60.0, transport=self.transport) as client:
                    response = await client.get(url, follow_redirects=True)
                    response.raise_for_status()
                    content_type = response.headers.get("content-type", "application/octet-stream")
                    return response.content, content_type.split(";")[0]
            except httpx.HTTPError as e:
                last_error = e
                logger.warning("download_retry", url=url[:200], attempt=attempt, error=str(e))
                if attempt < max_attempts:
                    await asyncio.sleep(settings.DOWNLOAD_BACKOFF_SECONDS * attempt)

        raise PersistenceError(
            f"Failed to download generated file after {max_attempts} attempts",
            details=str(last_error),
        )

    async def delete_object(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.error("storage_delete_failed", key=key, error=str(e))
            raise PersistenceError("Failed to delete stored file", details=str(e))


storage_service = StorageService()
