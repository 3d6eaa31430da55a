from typing import Dict, Optional, Type

from synergy_hub.adapters.base import BaseAdapter
from synergy_hub.adapters.freepik import FreepikAdapter
from synergy_hub.adapters.gemini import GeminiAdapter
from synergy_hub.adapters.runware import RunwareAdapter
from synergy_hub.models.enums import OperationType


class AdapterRegistry:
    _adapters: Dict[str, Type[BaseAdapter]] = {}
    _instances: Dict[str, BaseAdapter] = {}

    @classmethod
    def register(cls, adapter_class: Type[BaseAdapter]):
        cls._adapters[adapter_class.name] = adapter_class
        return adapter_class

    @classmethod
    def get_adapter(cls, name: str, api_key: str, **kwargs) -> Optional[BaseAdapter]:
        if name not in cls._adapters:
            return None

        if kwargs:
            # custom transports/timeouts are never shared
            return cls._adapters[name](api_key, **kwargs)

        cache_key = f"{name}:{api_key[:8]}"
        if cache_key not in cls._instances:
            cls._instances[cache_key] = cls._adapters[name](api_key)

        return cls._instances[cache_key]

    @classmethod
    def list_adapters(cls, operation_type: Optional[OperationType] = None) -> list:
        adapters = []
        for adapter_class in cls._adapters.values():
            if operation_type and OperationType(operation_type) not in adapter_class.operations:
                continue
            adapters.append({
                "name": adapter_class.name,
                "display_name": adapter_class.display_name,
                "type": adapter_class.provider_type.value,
                "operations": [op.value for op in adapter_class.operations],
            })
        return adapters


AdapterRegistry.register(RunwareAdapter)
AdapterRegistry.register(GeminiAdapter)
AdapterRegistry.register(FreepikAdapter)
