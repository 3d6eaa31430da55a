import base64
import re

import httpx

from synergy_hub.adapters.base import (
    BaseAdapter,
    GenerationResult,
    ProviderOutput,
    ProviderRequest,
    ProviderType,
)
from synergy_hub.models.enums import OperationType
from synergy_hub.services.model_catalog import DEFAULT_INPAINT_MODEL

DATA_URL_RE = re.compile(r"^data:([^;]+);base64,(.+)$", re.DOTALL)


def parse_data_url(value: str):
    """Split ``data:<mime>;base64,<payload>`` into (mime, payload), or None."""
    if not value:
        return None
    match = DATA_URL_RE.match(value)
    if not match:
        return None
    return match.group(1), match.group(2)


class GeminiAdapter(BaseAdapter):
    name = "gemini"
    display_name = "Google Gemini"
    provider_type = ProviderType.IMAGE
    operations = (OperationType.INPAINT,)

    BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

    async def generate(self, request: ProviderRequest) -> GenerationResult:
        model = request.model or DEFAULT_INPAINT_MODEL

        inline = parse_data_url(request.input_image)
        if inline is None:
            return GenerationResult(
                success=False,
                error_code="INVALID_INPUT",
                error_message="Only base64 data URL images are supported",
            )
        mime_type, encoded = inline

        request_body = {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"text": request.prompt},
                        {"inlineData": {"mimeType": mime_type, "data": encoded}},
                    ],
                }
            ],
            "generationConfig": {
                "responseModalities": ["TEXT", "IMAGE"],
                "temperature": 0.7,
                "topK": 40,
                "topP": 0.95,
            },
        }
        logged_request = {"model": model, "prompt": request.prompt, "mimeType": mime_type}

        url = f"{self.BASE_URL}/models/{model}:generateContent?key={self.api_key}"

        try:
            async with self._client() as client:
                response = await client.post(url, json=request_body)

                if response.status_code != 200:
                    try:
                        error_data = response.json()
                    except ValueError:
                        error_data = {"error": {"message": response.text}}
                    error_msg = error_data.get("error", {}).get("message", "Unknown error")
                    return GenerationResult(
                        success=False,
                        error_code=f"HTTP_{response.status_code}",
                        error_message=error_msg,
                        raw_response={"request": logged_request, "response": error_data},
                    )

                data = response.json()

                candidates = data.get("candidates", [])
                if not candidates:
                    block_reason = data.get("promptFeedback", {}).get("blockReason", "UNKNOWN")
                    return GenerationResult(
                        success=False,
                        error_code="BLOCKED",
                        error_message=f"Content blocked: {block_reason}",
                        raw_response={"request": logged_request, "response": data},
                    )

                parts = candidates[0].get("content", {}).get("parts", [])
                image_part = next(
                    (p.get("inlineData") or p.get("inline_data") for p in parts if p.get("inlineData") or p.get("inline_data")),
                    None,
                )
                if not image_part:
                    text = "".join(p.get("text", "") for p in parts if "text" in p)
                    return GenerationResult(
                        success=False,
                        error_code="NO_IMAGE",
                        error_message=text or "Model did not return an image",
                        raw_response={"request": logged_request},
                    )

                out_mime = image_part.get("mimeType") or image_part.get("mime_type") or "image/png"
                output = ProviderOutput(
                    data=base64.b64decode(image_part["data"]),
                    format=out_mime.split("/")[-1],
                    width=request.width,
                    height=request.height,
                )
                return GenerationResult(
                    success=True,
                    outputs=[output],
                    status="completed",
                    raw_response={"request": logged_request, "usage": data.get("usageMetadata")},
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
