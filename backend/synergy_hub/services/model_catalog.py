"""Per-model generation constraints.

Descriptors are populated once at import. Adapters look a model up here to
snap requested dimensions and durations to something the provider accepts.
"""

import math
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from synergy_hub.models.enums import OperationType

Size = Tuple[int, int]

MIN_SIDE = 64
DEFAULT_MAX_SIDE = 2048

DEFAULT_IMAGE_MODEL = "runware:100@1"
DEFAULT_VIDEO_MODEL = "klingai:5@3"
DEFAULT_UPSCALE_MODEL = "runware:upscale"
DEFAULT_SKIN_ENHANCE_MODEL = "freepik:skin-enhancer"
DEFAULT_INPAINT_MODEL = "gemini-2.5-flash-image"


@dataclass(frozen=True)
class ModelDescriptor:
    model_id: str
    label: str
    operation_type: OperationType
    supported_sizes: Tuple[Size, ...] = ()
    max_pixels: Optional[int] = None
    max_side: int = DEFAULT_MAX_SIDE
    supports_strength: bool = False
    max_reference_images: int = 0
    durations: Tuple[int, ...] = ()
    supports_last_frame: bool = False

    def fit_dimensions(self, width: int, height: int) -> Size:
        if self.supported_sizes:
            return snap_to_supported_size(width, height, self.supported_sizes)
        if self.max_pixels and width * height > self.max_pixels:
            width, height = scale_to_pixel_cap(width, height, self.max_pixels)
        return clamp_side(width, self.max_side), clamp_side(height, self.max_side)

    def fit_duration(self, duration: Optional[int]) -> Optional[int]:
        if duration is None or not self.durations:
            return duration
        return min(self.durations, key=lambda allowed: (abs(allowed - duration), allowed))


def clamp_side(value: int, max_side: int = DEFAULT_MAX_SIDE) -> int:
    return max(MIN_SIDE, min(max_side, int(value)))


def scale_to_pixel_cap(width: int, height: int, max_pixels: int) -> Size:
    ratio = math.sqrt(max_pixels / float(width * height))
    return max(MIN_SIDE, int(width * ratio)), max(MIN_SIDE, int(height * ratio))


def snap_to_supported_size(width: int, height: int, sizes: Tuple[Size, ...]) -> Size:
    """Pick the size with the closest aspect ratio, then the closest area."""
    if width <= 0 or height <= 0:
        return sizes[0]

    wanted_ratio = math.log(width / height)
    wanted_area = width * height

    def distance(size: Size):
        w, h = size
        return (round(abs(math.log(w / h) - wanted_ratio), 6), abs(w * h - wanted_area))

    return min(sizes, key=distance)


KONTEXT_SIZES = (
    (1024, 1024), (1568, 672), (1392, 752), (1184, 880), (1248, 832),
    (832, 1248), (880, 1184), (752, 1392), (672, 1568),
)
FLUX2_PRO_SIZES = (
    (1024, 1024), (1568, 672), (1392, 784), (1184, 888), (1248, 832),
    (832, 1248), (888, 1184), (784, 1392), (672, 1568),
)
IDEOGRAM_SIZES = (
    (1024, 1024), (1600, 762), (1024, 832), (1024, 768), (1536, 1024),
    (1024, 1536), (768, 1024), (1040, 1280), (762, 1600),
)
GEMINI_SIZES = (
    (1024, 1024), (1536, 1024), (1024, 1536), (1365, 1024), (1024, 1365),
    (1024, 1280), (1280, 1024), (576, 1024), (1820, 1024), (2389, 1024),
)
NANO_BANANA_PRO_SIZES = (
    (1024, 1024), (2048, 2048), (4096, 4096),
    (1264, 848), (2528, 1696), (5056, 3392),
    (848, 1264), (1696, 2528), (3392, 5056),
    (1200, 896), (2400, 1792), (4800, 3584),
    (896, 1200), (1792, 2400), (3584, 4800),
    (928, 1152), (1856, 2304), (3712, 4608),
    (1152, 928), (2304, 1856), (4608, 3712),
    (768, 1376), (1536, 2752), (3072, 5504),
    (1376, 768), (2752, 1536), (5504, 3072),
    (1584, 672), (3168, 1344), (6336, 2688),
)
QWEN_SIZES = ((1024, 1024), (1344, 768), (1024, 640))
GPT_IMAGE_SIZES = ((1024, 1024), (1536, 1024), (1024, 1536))

SEEDANCE_SIZES = (
    (854, 480), (640, 480), (480, 480), (480, 640), (480, 854), (1120, 480),
    (1280, 720), (960, 720), (720, 720), (720, 960), (720, 1280), (1680, 720),
)
VEO_SIZES = ((1280, 720),)
KLING_SIZES = ((1920, 1080), (1440, 1440), (1080, 1920))
SORA_SIZES = ((1080, 1920), (1920, 1080))
SORA_PRO_SIZES = ((1080, 1920), (1920, 1080), (768, 1344), (1344, 768))
MINIMAX_SIZES = ((1024, 768), (1920, 1080))

IMAGE = OperationType.IMAGE_GENERATION
VIDEO = OperationType.VIDEO_GENERATION

_DESCRIPTORS = (
    ModelDescriptor("google:4@2", "Google Nano Banana 2 Pro", IMAGE,
                    supported_sizes=NANO_BANANA_PRO_SIZES, max_side=6336, max_reference_images=14),
    ModelDescriptor("google:4@1", "Google Nano Banana", IMAGE,
                    supported_sizes=GEMINI_SIZES, max_side=2389, max_reference_images=2),
    ModelDescriptor("openai:4@1", "GPT Image 1.5", IMAGE,
                    supported_sizes=GPT_IMAGE_SIZES, max_reference_images=6),
    ModelDescriptor("ideogram:4@1", "Ideogram 3.0", IMAGE,
                    supported_sizes=IDEOGRAM_SIZES, max_reference_images=1),
    ModelDescriptor("runware:108@1", "Qwen-Image", IMAGE, supported_sizes=QWEN_SIZES),
    ModelDescriptor("bfl:3@1", "FLUX.1 Kontext [max]", IMAGE,
                    supported_sizes=KONTEXT_SIZES, max_reference_images=1),
    ModelDescriptor("bfl:4@1", "FLUX.2 [pro]", IMAGE,
                    supported_sizes=FLUX2_PRO_SIZES, max_reference_images=10),
    ModelDescriptor("bytedance:seedream@4.5", "Seedream 4.5", IMAGE,
                    max_pixels=4096 * 4096, max_side=4096, max_reference_images=2),
    ModelDescriptor("bytedance:seedance@1.5-pro", "Seedance 1.5 Pro", VIDEO,
                    supported_sizes=SEEDANCE_SIZES, durations=tuple(range(4, 13)), supports_last_frame=True),
    ModelDescriptor("google:3@3", "Google Veo 3.1 Fast", VIDEO,
                    supported_sizes=VEO_SIZES, durations=(4, 6, 8)),
    ModelDescriptor("klingai:kling-video@2.6-pro", "Kling Video 2.6 Pro", VIDEO,
                    supported_sizes=KLING_SIZES, durations=(5, 10)),
    ModelDescriptor("openai:3@1", "Sora 2", VIDEO, supported_sizes=SORA_SIZES, durations=(4, 8, 12)),
    ModelDescriptor("openai:3@2", "Sora 2 Pro", VIDEO, supported_sizes=SORA_PRO_SIZES, durations=(4, 8, 12)),
    ModelDescriptor("minimax:4@1", "MiniMax Hailuo 2.3", VIDEO,
                    supported_sizes=MINIMAX_SIZES, durations=(6, 10), supports_last_frame=True),
)

MODEL_CATALOG: Dict[str, ModelDescriptor] = {d.model_id: d for d in _DESCRIPTORS}

# (operation, id prefix) -> descriptor used for other versions of a family
FAMILY_PREFIXES = (
    (IMAGE, "bytedance:seedream", "bytedance:seedream@4.5"),
    (IMAGE, "bfl:4@", "bfl:4@1"),
    (IMAGE, "bfl:3@", "bfl:3@1"),
    (IMAGE, "ideogram:", "ideogram:4@1"),
    (IMAGE, "openai:4@", "openai:4@1"),
    (VIDEO, "bytedance:seedance", "bytedance:seedance@1.5-pro"),
    (VIDEO, "google:3@", "google:3@3"),
    (VIDEO, "klingai:kling-video", "klingai:kling-video@2.6-pro"),
    (VIDEO, "minimax:", "minimax:4@1"),
)

GENERIC_DESCRIPTORS = {
    # Plain SD/FLUX-style Runware models: free dimensions, img2img strength.
    IMAGE: ModelDescriptor(DEFAULT_IMAGE_MODEL, "Runware image model", IMAGE,
                           supports_strength=True, max_reference_images=1),
    VIDEO: ModelDescriptor(DEFAULT_VIDEO_MODEL, "Runware video model", VIDEO, supports_last_frame=True),
    OperationType.UPSCALE: ModelDescriptor(DEFAULT_UPSCALE_MODEL, "Runware upscale", OperationType.UPSCALE,
                                           max_side=4096),
    OperationType.SKIN_ENHANCE: ModelDescriptor(DEFAULT_SKIN_ENHANCE_MODEL, "Freepik Skin Enhancer",
                                                OperationType.SKIN_ENHANCE, max_side=4096),
    OperationType.INPAINT: ModelDescriptor(DEFAULT_INPAINT_MODEL, "Gemini image edit", OperationType.INPAINT,
                                           max_reference_images=1),
}

DEFAULT_MODELS = {op: d.model_id for op, d in GENERIC_DESCRIPTORS.items()}


def get_descriptor(model_id: Optional[str], operation_type: OperationType) -> ModelDescriptor:
    """Exact id, then family prefix, then the generic descriptor for the operation."""
    operation_type = OperationType(operation_type)

    descriptor = MODEL_CATALOG.get(model_id or "")
    if descriptor is not None and descriptor.operation_type == operation_type:
        return descriptor

    if model_id:
        for operation, prefix, target in FAMILY_PREFIXES:
            if operation == operation_type and model_id.startswith(prefix):
                return MODEL_CATALOG[target]

    return GENERIC_DESCRIPTORS[operation_type]


def list_models(operation_type: Optional[OperationType] = None) -> list:
    return [
        {
            "id": d.model_id,
            "label": d.label,
            "operation_type": d.operation_type.value,
            "max_reference_images": d.max_reference_images,
            "durations": list(d.durations),
        }
        for d in _DESCRIPTORS
        if operation_type is None or d.operation_type == operation_type
    ]
