from decimal import Decimal
from typing import Optional
from sqlalchemy import String, Boolean, DECIMAL, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from synergy_hub.database import Base
from synergy_hub.models.base import UUIDMixin, TimestampMixin


class Profile(Base, UUIDMixin, TimestampMixin):
    """User account row. ``id`` is the auth subject of the access token."""

    __tablename__ = "profiles"

    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    is_legacy_user: Mapped[bool] = mapped_column(Boolean, default=False)
    credits_remaining: Mapped[Decimal] = mapped_column(DECIMAL(12, 4), default=Decimal("0"))

    usage_records: Mapped[list["UsageRecord"]] = relationship(back_populates="user")
    artifacts: Mapped[list["StoredArtifact"]] = relationship(back_populates="user")

    __table_args__ = (
        CheckConstraint("credits_remaining >= 0", name="ck_profiles_credits_non_negative"),
    )
