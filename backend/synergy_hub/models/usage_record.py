import uuid
from decimal import Decimal
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Text, Boolean, DECIMAL, DateTime, ForeignKey, Index, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from synergy_hub.database import Base
from synergy_hub.models.base import UUIDMixin


class UsageRecord(Base, UUIDMixin):
    __tablename__ = "usage_records"

    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"))
    operation_type: Mapped[str] = mapped_column(String(30))
    model_identifier: Mapped[str] = mapped_column(String(100))
    cost_charged: Mapped[Decimal] = mapped_column(DECIMAL(12, 4), default=Decimal("0"))
    provider_cost_usd: Mapped[Optional[Decimal]] = mapped_column(DECIMAL(10, 6), nullable=True)
    input_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_legacy: Mapped[bool] = mapped_column(Boolean, default=False)
    reservation_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("credit_reservations.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, server_default=func.now())

    user: Mapped["Profile"] = relationship(back_populates="usage_records")

    __table_args__ = (
        Index("ix_usage_records_user_created", "user_id", "created_at"),
    )
