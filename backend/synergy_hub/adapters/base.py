from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import httpx

from synergy_hub.config import settings
from synergy_hub.models.enums import OperationType


class ProviderType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


@dataclass
class ProviderRequest:
    """Provider-neutral description of one generation call."""

    operation_type: OperationType
    model: str
    prompt: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    count: int = 1
    output_format: Optional[str] = None
    input_image: Optional[str] = None  # data URL, base64 or http(s) URL
    reference_images: List[str] = field(default_factory=list)
    strength: Optional[float] = None
    duration: Optional[int] = None
    frame_start_url: Optional[str] = None
    frame_end_url: Optional[str] = None
    upscale_factor: Optional[int] = None
    sharpen: Optional[int] = None
    smart_grain: Optional[int] = None


@dataclass
class ProviderOutput:
    url: Optional[str] = None
    data: Optional[bytes] = None
    format: str = "webp"
    width: Optional[int] = None
    height: Optional[int] = None
    media_type: str = "image"


@dataclass
class GenerationResult:
    success: bool
    outputs: List[ProviderOutput] = field(default_factory=list)
    task_id: Optional[str] = None  # set when the provider acknowledged an async job
    status: Optional[str] = None
    provider_cost: float = 0.0
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    raw_response: Optional[dict] = None

    @property
    def is_async(self) -> bool:
        return self.success and self.task_id is not None and not self.outputs


@dataclass
class TaskStatusResult:
    """Outcome of one status query.

    ``success`` is False only when the query itself failed (network, 5xx);
    a job the provider reports as failed is ``success=True, status="failed"``.
    """

    success: bool
    status: Optional[str] = None
    result_url: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    raw_response: Optional[dict] = None


class BaseAdapter(ABC):
    """Base class for generation providers."""

    name: str
    display_name: str
    provider_type: ProviderType
    operations: tuple = ()

    def __init__(self, api_key: str, **kwargs):
        self.api_key = api_key
        self.config = kwargs
        self.timeout = kwargs.get("timeout", settings.PROVIDER_TIMEOUT_SECONDS)
        self.transport: Optional[httpx.AsyncBaseTransport] = kwargs.get("transport")

    def _client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout or self.timeout, transport=self.transport)

    @abstractmethod
    async def generate(self, request: ProviderRequest) -> GenerationResult:
        """Run (or start) one generation."""
        pass

    async def get_task_status(self, task_id: str) -> TaskStatusResult:
        raise NotImplementedError(f"{self.name} does not run asynchronous tasks")

    def supports(self, operation_type: OperationType) -> bool:
        return OperationType(operation_type) in self.operations
