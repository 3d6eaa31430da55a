"""Credit cost policy.

Pure functions: identical inputs always give identical costs, nothing here
touches the database or raises for unknown models.
"""

from decimal import Decimal
from typing import Optional

from synergy_hub.models.enums import OperationType

UPSCALE_REJECTED = Decimal("-1")

IMAGE_CREDIT_COST = Decimal("1")
SKIN_ENHANCE_CREDIT_COST = Decimal("1")
INPAINT_CREDIT_COST = Decimal("1")

UPSCALE_TIERS = (
    (1024, Decimal("0.005")),
    (2048, Decimal("0.01")),
    (4096, Decimal("0.02")),
)

# Checked in order; the first matching rule wins.
VIDEO_COST_RULES = (
    ("exact", ("openai:3@2",), Decimal("4.0")),
    ("contains", ("google:3@",), Decimal("3.0")),
    ("exact", ("openai:3@1",), Decimal("1.5")),
    ("contains", ("klingai:",), Decimal("1.5")),
    ("contains", ("bytedance:", "seedance"), Decimal("1.0")),
)
DEFAULT_VIDEO_COST = Decimal("0.5")

# Provider list prices in USD, for analytics on usage records only.
PROVIDER_PRICING = {
    "google:4@2": {"per_image": 0.134, "display_name": "Nano Banana Pro"},
    "google:4@1": {"per_image": 0.039, "display_name": "Nano Banana"},
    "openai:4@1": {"per_image": 0.04, "display_name": "GPT Image 1.5"},
    "ideogram:4@1": {"per_image": 0.06, "display_name": "Ideogram 3.0"},
    "runware:108@1": {"per_image": 0.0058, "display_name": "Qwen-Image"},
    "bfl:3@1": {"per_image": 0.08, "display_name": "FLUX.1 Kontext [max]"},
    "bfl:4@1": {"per_image": 0.03, "display_name": "FLUX.2 [pro]"},
    "bytedance:seedream@4.5": {"per_image": 0.04, "display_name": "Seedream 4.5"},
    "runware:100@1": {"per_image": 0.0013, "display_name": "FLUX.1 [schnell]"},
    "openai:3@2": {"per_video": 2.5, "display_name": "Sora 2 Pro"},
    "openai:3@1": {"per_video": 0.5, "display_name": "Sora 2"},
    "google:3@": {"per_video": 2.0, "display_name": "Veo 3.1"},
    "klingai:": {"per_video": 0.49, "display_name": "Kling 2.6 Pro"},
    "bytedance:": {"per_video": 0.3, "display_name": "Seedance"},
    "runware:upscale": {"per_request": 0.002, "display_name": "Runware Upscale"},
    "freepik:skin-enhancer": {"per_request": 0.1, "display_name": "Freepik Skin Enhancer"},
    "gemini-2.5-flash-image": {"per_image": 0.039, "display_name": "Gemini 2.5 Flash Image"},
}


def calculate_upscale_cost(width: int, height: int) -> Decimal:
    """Tiered by the longest side; ``UPSCALE_REJECTED`` above 4096px."""
    max_dimension = max(width, height)
    for limit, cost in UPSCALE_TIERS:
        if max_dimension <= limit:
            return cost
    return UPSCALE_REJECTED


def calculate_video_cost(model_id: str) -> Decimal:
    for kind, needles, cost in VIDEO_COST_RULES:
        if kind == "exact" and model_id in needles:
            return cost
        if kind == "contains" and any(needle in model_id for needle in needles):
            return cost
    return DEFAULT_VIDEO_COST


def calculate_image_cost(model_id: str, count: int = 1) -> Decimal:
    return IMAGE_CREDIT_COST * count


def estimate_provider_cost(model_id: str, count: int = 1) -> Optional[Decimal]:
    pricing = PROVIDER_PRICING.get(model_id)
    if pricing is None:
        # families are keyed by prefix ("google:3@", "klingai:")
        for key, candidate in PROVIDER_PRICING.items():
            if key.endswith((":", "@")) and model_id.startswith(key):
                pricing = candidate
                break
    if pricing is None:
        return None

    unit = pricing.get("per_image") or pricing.get("per_video") or pricing.get("per_request") or 0
    return Decimal(str(unit)) * count


def cost_for(request) -> Decimal:
    """Credit cost of a ``GenerationRequest``."""
    operation = OperationType(request.operation_type)

    if operation == OperationType.IMAGE_GENERATION:
        return calculate_image_cost(request.model_identifier, request.desired_count)
    if operation == OperationType.VIDEO_GENERATION:
        return calculate_video_cost(request.model_identifier)
    if operation == OperationType.UPSCALE:
        return calculate_upscale_cost(request.width or 1024, request.height or 1024)
    if operation == OperationType.SKIN_ENHANCE:
        return SKIN_ENHANCE_CREDIT_COST
    return INPAINT_CREDIT_COST
