import uuid
from decimal import Decimal
from datetime import datetime
from enum import Enum
from typing import Optional
from sqlalchemy import String, Text, Boolean, DECIMAL, DateTime, ForeignKey, Index, func
from sqlalchemy.orm import Mapped, mapped_column
from synergy_hub.database import Base
from synergy_hub.models.base import UUIDMixin


class ReservationStatus(str, Enum):
    RESERVED = "reserved"
    COMMITTED = "committed"
    RELEASED = "released"


class CreditReservation(Base, UUIDMixin):
    """Credits held for an operation until it is delivered or refunded."""

    __tablename__ = "credit_reservations"

    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"))
    amount: Mapped[Decimal] = mapped_column(DECIMAL(12, 4))
    operation_type: Mapped[str] = mapped_column(String(30))
    model_identifier: Mapped[str] = mapped_column(String(100))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_legacy: Mapped[bool] = mapped_column(Boolean, default=False)
    status: Mapped[str] = mapped_column(String(20), default=ReservationStatus.RESERVED.value)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, server_default=func.now())
    settled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_credit_reservations_user_status", "user_id", "status"),
    )
