from synergy_hub.models.base import TimestampMixin, UUIDMixin
from synergy_hub.models.enums import OperationType, MediaType
from synergy_hub.models.profile import Profile
from synergy_hub.models.usage_record import UsageRecord
from synergy_hub.models.credit_reservation import CreditReservation, ReservationStatus
from synergy_hub.models.generation_task import GenerationTask, TaskStatus
from synergy_hub.models.stored_artifact import StoredArtifact, Visibility

__all__ = [
    "TimestampMixin",
    "UUIDMixin",
    "OperationType",
    "MediaType",
    "Profile",
    "UsageRecord",
    "CreditReservation",
    "ReservationStatus",
    "GenerationTask",
    "TaskStatus",
    "StoredArtifact",
    "Visibility",
]
