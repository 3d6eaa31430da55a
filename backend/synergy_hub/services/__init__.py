from synergy_hub.services.billing import credit_ledger, CreditLedger
from synergy_hub.services.storage import storage_service, StorageService
from synergy_hub.services.artifacts import artifact_service, ArtifactService

__all__ = [
    "credit_ledger", "CreditLedger",
    "storage_service", "StorageService",
    "artifact_service", "ArtifactService",
]
