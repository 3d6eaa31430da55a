from fastapi import APIRouter, Query
from typing import Optional

from synergy_hub.adapters import AdapterRegistry
from synergy_hub.exceptions import ValidationError
from synergy_hub.models.enums import OperationType
from synergy_hub.services.model_catalog import DEFAULT_MODELS, list_models

router = APIRouter()


@router.get("")
async def get_models(operation_type: Optional[str] = Query(None)):
    operation = None
    if operation_type:
        try:
            operation = OperationType(operation_type)
        except ValueError:
            raise ValidationError(f"Unknown operation type: {operation_type}")

    return {
        "models": list_models(operation),
        "defaults": {op.value: model for op, model in DEFAULT_MODELS.items()},
        "providers": AdapterRegistry.list_adapters(operation),
    }
