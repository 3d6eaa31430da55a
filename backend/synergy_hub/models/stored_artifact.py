import uuid
from datetime import datetime
from enum import Enum
from typing import Optional
from sqlalchemy import String, Text, Integer, DateTime, ForeignKey, Index, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from synergy_hub.database import Base
from synergy_hub.models.base import UUIDMixin


class Visibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class StoredArtifact(Base, UUIDMixin):
    __tablename__ = "user_images"

    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"))

    storage_path: Mapped[str] = mapped_column(String(500), unique=True)
    public_url: Mapped[str] = mapped_column(String(1000))
    prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    width: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    height: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    format: Mapped[str] = mapped_column(String(10))
    media_type: Mapped[str] = mapped_column(String(10), default="image")
    model_identifier: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    visibility: Mapped[str] = mapped_column(String(10), default=Visibility.PRIVATE.value)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, server_default=func.now())

    user: Mapped["Profile"] = relationship(back_populates="artifacts")

    __table_args__ = (
        Index("ix_user_images_user_created", "user_id", "created_at"),
    )
