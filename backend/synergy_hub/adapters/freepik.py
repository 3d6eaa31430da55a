import httpx

from synergy_hub.adapters.base import (
    BaseAdapter,
    GenerationResult,
    ProviderRequest,
    ProviderType,
    TaskStatusResult,
)
from synergy_hub.models.enums import OperationType

DEFAULT_SHARPEN = 0
DEFAULT_SMART_GRAIN = 2

STATUS_MAP = {
    "CREATED": "pending",
    "IN_PROGRESS": "generating",
    "COMPLETED": "completed",
    "FAILED": "failed",
}


class FreepikAdapter(BaseAdapter):
    """Freepik creative skin enhancer. Jobs are asynchronous."""

    name = "freepik"
    display_name = "Freepik"
    provider_type = ProviderType.IMAGE
    operations = (OperationType.SKIN_ENHANCE,)

    BASE_URL = "https://api.freepik.com/v1/ai/skin-enhancer"

    def _get_headers(self) -> dict:
        return {
            "x-freepik-api-key": self.api_key,
            "Content-Type": "application/json",
        }

    async def generate(self, request: ProviderRequest) -> GenerationResult:
        payload = {
            "image": request.input_image,
            "sharpen": request.sharpen if request.sharpen is not None else DEFAULT_SHARPEN,
            "smart_grain": request.smart_grain if request.smart_grain is not None else DEFAULT_SMART_GRAIN,
        }
        logged_request = {"sharpen": payload["sharpen"], "smart_grain": payload["smart_grain"]}

        try:
            async with self._client(timeout=60.0) as client:
                response = await client.post(
                    f"{self.BASE_URL}/creative",
                    headers=self._get_headers(),
                    json=payload,
                )

                if response.status_code not in (200, 201, 202):
                    return GenerationResult(
                        success=False,
                        error_code=f"HTTP_{response.status_code}",
                        error_message=f"Freepik API error: {response.status_code} - {response.text}",
                        raw_response={"request": logged_request},
                    )

                data = response.json()
                task_id = (data.get("data") or {}).get("task_id")
                if not task_id:
                    return GenerationResult(
                        success=False,
                        error_code="NO_TASK_ID",
                        error_message="No task_id returned from Freepik",
                        raw_response={"request": logged_request, "response": data},
                    )

                status = STATUS_MAP.get((data.get("data") or {}).get("status", ""), "pending")
                return GenerationResult(
                    success=True,
                    task_id=task_id,
                    status=status,
                    raw_response={"request": logged_request, "response": data},
                )

        except httpx.TimeoutException:
            return GenerationResult(
                success=False,
                error_code="TIMEOUT",
                error_message="Request timed out",
                raw_response={"request": logged_request},
            )
        except Exception as e:
            return GenerationResult(
                success=False,
                error_code="EXCEPTION",
                error_message=str(e),
                raw_response={"request": logged_request},
            )

    async def get_task_status(self, task_id: str) -> TaskStatusResult:
        try:
            async with self._client(timeout=30.0) as client:
                response = await client.get(
                    f"{self.BASE_URL}/creative/{task_id}",
                    headers=self._get_headers(),
                )

                if response.status_code != 200:
                    return TaskStatusResult(
                        success=False,
                        error_code=f"HTTP_{response.status_code}",
                        error_message=response.text,
                    )

                data = response.json()
        except Exception as e:
            return TaskStatusResult(success=False, error_code="EXCEPTION", error_message=str(e))

        task_data = data.get("data") or {}
        status = STATUS_MAP.get(task_data.get("status", ""), "pending")

        if status == "completed":
            generated = task_data.get("generated") or []
            if not generated:
                return TaskStatusResult(
                    success=True,
                    status="failed",
                    error_code="NO_IMAGE",
                    error_message="Skin enhancement finished without a result",
                    raw_response=data,
                )
            return TaskStatusResult(success=True, status="completed", result_url=generated[0], raw_response=data)

        if status == "failed":
            return TaskStatusResult(
                success=True,
                status="failed",
                error_code="TASK_FAILED",
                error_message=task_data.get("error") or "Skin enhancement task failed",
                raw_response=data,
            )

        return TaskStatusResult(success=True, status=status, raw_response=data)
