from synergy_hub.adapters.base import (
    BaseAdapter,
    GenerationResult,
    ProviderOutput,
    ProviderRequest,
    ProviderType,
    TaskStatusResult,
)
from synergy_hub.adapters.registry import AdapterRegistry
from synergy_hub.adapters.runware import RunwareAdapter
from synergy_hub.adapters.gemini import GeminiAdapter
from synergy_hub.adapters.freepik import FreepikAdapter

__all__ = [
    "BaseAdapter",
    "GenerationResult",
    "ProviderOutput",
    "ProviderRequest",
    "ProviderType",
    "TaskStatusResult",
    "AdapterRegistry",
    "RunwareAdapter",
    "GeminiAdapter",
    "FreepikAdapter",
]
