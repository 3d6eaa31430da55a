import base64
import uuid
from typing import Optional, Tuple

import httpx
import structlog

from synergy_hub.adapters.base import (
    BaseAdapter,
    GenerationResult,
    ProviderOutput,
    ProviderRequest,
    ProviderType,
    TaskStatusResult,
)
from synergy_hub.models.enums import OperationType
from synergy_hub.services.model_catalog import get_descriptor

logger = structlog.get_logger(__name__)

DEFAULT_IMAGE_STRENGTH = 0.8
DEFAULT_VIDEO_DURATION = 6
UPSCALE_FACTORS = (2, 4, 8)


def _format_from_url(url: str, fallback: str) -> str:
    path = url.split("?", 1)[0].lower()
    for ext in ("webp", "png", "jpeg", "jpg", "mp4", "webm", "mov"):
        if path.endswith("." + ext):
            return ext
    return fallback.lower()


def _runware_error(status_code: int, data: dict) -> Tuple[str, str]:
    errors = data.get("errors") or []
    if errors and isinstance(errors, list):
        first = errors[0] or {}
        return first.get("code") or f"HTTP_{status_code}", first.get("message") or "Unknown error"
    return f"HTTP_{status_code}", data.get("error") or f"Runware error ({status_code})"


class RunwareAdapter(BaseAdapter):
    """Runware task API: images, upscales and async video."""

    name = "runware"
    display_name = "Runware"
    provider_type = ProviderType.IMAGE
    operations = (
        OperationType.IMAGE_GENERATION,
        OperationType.VIDEO_GENERATION,
        OperationType.UPSCALE,
    )

    API_URL = "https://api.runware.ai/v1"

    def _tasks(self, task: dict) -> list:
        return [{"taskType": "authentication", "apiKey": self.api_key}, task]

    async def _send(self, task: dict) -> Tuple[Optional[dict], Optional[GenerationResult]]:
        payload = self._tasks(task)
        # never echo the api key back through raw_response
        logged_request = task

        try:
            async with self._client() as client:
                response = await client.post(self.API_URL, json=payload)
        except httpx.TimeoutException:
            return None, GenerationResult(
                success=False,
                error_code="TIMEOUT",
                error_message="Request timed out",
                raw_response={"request": logged_request},
            )
        except Exception as e:
            return None, GenerationResult(
                success=False,
                error_code="EXCEPTION",
                error_message=str(e),
                raw_response={"request": logged_request},
            )

        try:
            data = response.json()
        except ValueError:
            data = {"error": response.text}

        if response.status_code != 200 or data.get("errors"):
            error_code, error_message = _runware_error(response.status_code, data)
            return None, GenerationResult(
                success=False,
                error_code=error_code,
                error_message=error_message,
                raw_response={"request": logged_request, "response": data},
            )

        return data, None

    async def generate(self, request: ProviderRequest) -> GenerationResult:
        operation = OperationType(request.operation_type)
        if operation == OperationType.UPSCALE:
            return await self.upscale(request)
        if operation == OperationType.VIDEO_GENERATION:
            return await self.start_video(request)
        return await self.generate_images(request)

    async def generate_images(self, request: ProviderRequest) -> GenerationResult:
        descriptor = get_descriptor(request.model, OperationType.IMAGE_GENERATION)
        width, height = descriptor.fit_dimensions(request.width or 1024, request.height or 1024)
        output_format = (request.output_format or "WEBP").upper()

        task = {
            "taskType": "imageInference",
            "taskUUID": str(uuid.uuid4()),
            "positivePrompt": request.prompt,
            "width": width,
            "height": height,
            "model": request.model,
            "numberResults": max(1, min(4, request.count or 1)),
            "outputType": "URL",
            "outputFormat": output_format,
            "includeCost": True,
        }

        references = list(request.reference_images)
        if request.input_image:
            if descriptor.supports_strength:
                task["inputImage"] = request.input_image
                task["strength"] = request.strength if request.strength is not None else DEFAULT_IMAGE_STRENGTH
            else:
                references.insert(0, request.input_image)
        if references:
            if descriptor.max_reference_images:
                references = references[: descriptor.max_reference_images]
            task["referenceImages"] = references

        data, failure = await self._send(task)
        if failure:
            return failure

        items = [
            item for item in data.get("data", [])
            if item.get("taskType") == "imageInference" and item.get("imageURL")
        ]
        if not items:
            return GenerationResult(
                success=False,
                error_code="NO_IMAGE",
                error_message="Invalid response from Runware",
                raw_response={"request": task, "response": data},
            )

        outputs = [
            ProviderOutput(
                url=item["imageURL"],
                format=_format_from_url(item["imageURL"], output_format),
                width=width,
                height=height,
            )
            for item in items
        ]
        return GenerationResult(
            success=True,
            outputs=outputs,
            status="completed",
            provider_cost=sum(float(item.get("cost") or 0) for item in items),
            raw_response={"request": task, "response": data},
        )

    async def upscale(self, request: ProviderRequest) -> GenerationResult:
        factor = request.upscale_factor or 4
        output_format = (request.output_format or "WEBP").upper()

        task = {
            "taskType": "imageUpscale",
            "taskUUID": str(uuid.uuid4()),
            "inputImage": request.input_image,
            "upscaleFactor": factor,
            "outputType": "base64Data",
            "outputFormat": output_format,
            "includeCost": True,
        }

        data, failure = await self._send(task)
        if failure:
            return failure

        item = next((d for d in data.get("data", []) if d.get("taskType") == "imageUpscale"), None)
        encoded = (item or {}).get("imageBase64Data")
        url = (item or {}).get("imageURL")
        if not encoded and not url:
            return GenerationResult(
                success=False,
                error_code="NO_IMAGE",
                error_message="No upscaled image returned",
                raw_response={"response": data},
            )

        width = request.width * factor if request.width else None
        height = request.height * factor if request.height else None

        if encoded:
            if encoded.startswith("data:"):
                encoded = encoded.split(",", 1)[1]
            output = ProviderOutput(
                data=base64.b64decode(encoded),
                format=output_format.lower(),
                width=width,
                height=height,
            )
        else:
            output = ProviderOutput(url=url, format=_format_from_url(url, output_format), width=width, height=height)

        return GenerationResult(
            success=True,
            outputs=[output],
            status="completed",
            provider_cost=float(item.get("cost") or 0),
            raw_response={"response": {"taskUUID": item.get("taskUUID"), "cost": item.get("cost")}},
        )

    async def start_video(self, request: ProviderRequest) -> GenerationResult:
        descriptor = get_descriptor(request.model, OperationType.VIDEO_GENERATION)
        width, height = descriptor.fit_dimensions(request.width or 1280, request.height or 720)
        duration = descriptor.fit_duration(request.duration or DEFAULT_VIDEO_DURATION)
        task_uuid = str(uuid.uuid4())

        task = {
            "taskType": "videoInference",
            "taskUUID": task_uuid,
            "model": request.model,
            "positivePrompt": request.prompt,
            "duration": duration,
            "width": width,
            "height": height,
            "numberResults": 1,
            "outputType": "URL",
            "outputFormat": (request.output_format or "MP4").upper(),
            "deliveryMethod": "async",
            "includeCost": True,
        }

        frame_images = []
        if request.frame_start_url:
            frame_images.append({"inputImage": request.frame_start_url, "frame": "first"})
        if request.frame_end_url and descriptor.supports_last_frame:
            frame_images.append({"inputImage": request.frame_end_url, "frame": "last"})
        if frame_images:
            task["frameImages"] = frame_images

        data, failure = await self._send(task)
        if failure:
            return failure

        ack = (data.get("data") or [{}])[0] or {}
        return GenerationResult(
            success=True,
            task_id=ack.get("taskUUID") or task_uuid,
            status="pending",
            raw_response={"request": task, "response": data},
        )

    async def get_task_status(self, task_id: str) -> TaskStatusResult:
        task = {"taskType": "getResponse", "taskUUID": task_id}

        try:
            async with self._client(timeout=30.0) as client:
                response = await client.post(self.API_URL, json=self._tasks(task))
            data = response.json()
        except Exception as e:
            return TaskStatusResult(success=False, error_code="EXCEPTION", error_message=str(e))

        if data.get("errors"):
            # the job itself was rejected or crashed on the provider side
            error_code, error_message = _runware_error(response.status_code, data)
            return TaskStatusResult(
                success=True,
                status="failed",
                error_code=error_code,
                error_message=error_message,
                raw_response=data,
            )

        if response.status_code != 200:
            return TaskStatusResult(
                success=False,
                error_code=f"HTTP_{response.status_code}",
                error_message=data.get("error") or response.text,
                raw_response=data,
            )

        items = data.get("data") or []
        done = next((d for d in items if d.get("status") == "success" and (d.get("videoURL") or d.get("url"))), None)
        if done:
            return TaskStatusResult(
                success=True,
                status="completed",
                result_url=done.get("videoURL") or done.get("url"),
                raw_response=data,
            )

        item = items[0] if items else {}
        provider_status = (item.get("status") or "").lower()
        if provider_status == "error":
            return TaskStatusResult(
                success=True,
                status="failed",
                error_code="VIDEO_FAILED",
                error_message=item.get("error") or item.get("message") or "Video generation failed",
                raw_response=data,
            )
        if provider_status == "processing":
            return TaskStatusResult(success=True, status="generating", raw_response=data)
        return TaskStatusResult(success=True, status="pending", raw_response=data)
