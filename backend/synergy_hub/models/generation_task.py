import uuid
from datetime import datetime
from enum import Enum
from typing import Optional
from sqlalchemy import String, Text, Integer, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column
from synergy_hub.database import Base
from synergy_hub.models.base import UUIDMixin, TimestampMixin


class TaskStatus(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


class GenerationTask(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "generation_tasks"

    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"))
    reservation_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("credit_reservations.id", ondelete="SET NULL"), nullable=True
    )

    provider: Mapped[str] = mapped_column(String(50))
    operation_type: Mapped[str] = mapped_column(String(30))
    model_identifier: Mapped[str] = mapped_column(String(100))
    external_task_id: Mapped[str] = mapped_column(String(100))

    status: Mapped[str] = mapped_column(String(20), default=TaskStatus.PENDING.value)
    prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    width: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    height: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    output_format: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    poll_count: Mapped[int] = mapped_column(Integer, default=0)
    result_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    artifact_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("user_images.id", ondelete="SET NULL"), nullable=True
    )
    error_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_generation_tasks_user_created", "user_id", "created_at"),
        Index("ix_generation_tasks_external", "external_task_id"),
    )
