from typing import Optional

from synergy_hub.adapters import AdapterRegistry
from synergy_hub.adapters.base import BaseAdapter
from synergy_hub.config import settings
from synergy_hub.exceptions import ProviderError
from synergy_hub.models.enums import OperationType

OPERATION_PROVIDERS = {
    OperationType.IMAGE_GENERATION: "runware",
    OperationType.VIDEO_GENERATION: "runware",
    OperationType.UPSCALE: "runware",
    OperationType.SKIN_ENHANCE: "freepik",
    OperationType.INPAINT: "gemini",
}


def get_api_key_for_provider(provider: str) -> Optional[str]:
    key_map = {
        "runware": settings.RUNWARE_API_KEY,
        "gemini": settings.GEMINI_API_KEY,
        "freepik": settings.FREEPIK_API_KEY,
    }
    return key_map.get(provider)


def get_provider_for_operation(operation_type: OperationType) -> str:
    return OPERATION_PROVIDERS[OperationType(operation_type)]


def get_adapter_by_name(provider: str, **kwargs) -> BaseAdapter:
    api_key = get_api_key_for_provider(provider)
    if not api_key:
        raise ProviderError(
            f"No API key configured for provider: {provider}",
            provider_code="NO_API_KEY",
            provider=provider,
        )

    adapter = AdapterRegistry.get_adapter(provider, api_key, **kwargs)
    if not adapter:
        raise ProviderError(
            f"Adapter not found for provider: {provider}",
            provider_code="UNKNOWN_PROVIDER",
            provider=provider,
        )
    return adapter


def get_adapter_for_operation(operation_type: OperationType, **kwargs) -> BaseAdapter:
    provider = get_provider_for_operation(operation_type)
    adapter = get_adapter_by_name(provider, **kwargs)
    if not adapter.supports(operation_type):
        raise ProviderError(
            f"Provider {provider} does not support {OperationType(operation_type).value}",
            provider_code="UNSUPPORTED_OPERATION",
            provider=provider,
        )
    return adapter
