"""Error types surfaced by the generation lifecycle.

Every error carries a machine-readable ``code`` and the HTTP status the API
layer answers with. Handlers in ``synergy_hub.main`` render them as JSON.
"""

from decimal import Decimal
from typing import Any, Optional


def _plain(value) -> str:
    return format(Decimal(value).normalize(), "f")


class SynergyError(Exception):
    code = "internal_error"
    status_code = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, "details": self.details}


class ValidationError(SynergyError):
    code = "validation_error"
    status_code = 400


class InsufficientCreditsError(SynergyError):
    code = "insufficient_credits"
    status_code = 402

    def __init__(self, credits_remaining: Decimal, cost_required: Decimal, message: Optional[str] = None):
        super().__init__(
            message
            or f"Insufficient credits. You have {_plain(credits_remaining)} credits, "
            f"but need {_plain(cost_required)}.",
        )
        self.credits_remaining = credits_remaining
        self.cost_required = cost_required

    def to_dict(self) -> dict:
        return {
            "error": self.code,
            "message": self.message,
            "creditsRemaining": float(self.credits_remaining),
            "costRequired": float(self.cost_required),
        }


class AccountNotFoundError(SynergyError):
    code = "profile_not_found"
    status_code = 404


class NotFoundError(SynergyError):
    code = "not_found"
    status_code = 404


class ProviderError(SynergyError):
    """A generation provider rejected the request or answered with nothing usable."""

    code = "provider_error"
    status_code = 502

    def __init__(
        self,
        message: str,
        provider_code: Optional[str] = None,
        provider: Optional[str] = None,
        details: Any = None,
    ):
        super().__init__(message, details=details)
        self.provider_code = provider_code
        self.provider = provider


class PersistenceError(SynergyError):
    code = "persistence_error"
    status_code = 500
