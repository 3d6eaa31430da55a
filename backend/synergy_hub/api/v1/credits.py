from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession

from synergy_hub.database import get_db
from synergy_hub.api.deps import get_current_user
from synergy_hub.models.profile import Profile
from synergy_hub.services.billing import credit_ledger

router = APIRouter()


class CreditsResponse(BaseModel):
    credits_remaining: float
    is_legacy_user: bool


class UsageRecordResponse(BaseModel):
    id: str
    operation_type: str
    model: str
    cost_charged: float
    description: Optional[str] = None
    is_legacy: bool = False
    created_at: Optional[datetime] = None


class UsageListResponse(BaseModel):
    usage: List[UsageRecordResponse]
    limit: int
    offset: int


@router.get("", response_model=CreditsResponse)
async def get_credits(
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    balance = await credit_ledger.get_balance(db, user.id)
    return CreditsResponse(credits_remaining=float(balance), is_legacy_user=user.is_legacy_user)


@router.get("/usage", response_model=UsageListResponse)
async def get_usage(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    records = await credit_ledger.list_usage(db, user.id, limit=limit, offset=offset)
    return UsageListResponse(
        usage=[
            UsageRecordResponse(
                id=str(r.id),
                operation_type=r.operation_type,
                model=r.model_identifier,
                cost_charged=float(r.cost_charged),
                description=r.input_description,
                is_legacy=r.is_legacy,
                created_at=r.created_at,
            )
            for r in records
        ],
        limit=limit,
        offset=offset,
    )
