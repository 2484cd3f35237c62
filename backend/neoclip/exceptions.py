"""Errors that cross the service boundary and map onto HTTP responses."""

from typing import Any, Dict, List, Optional


class ServiceError(Exception):
    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_payload(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": self.error_code,
            "message": self.message,
            **self.extra,
        }


class InvalidInput(ServiceError):
    status_code = 400
    error_code = "invalid_input"


class UserNotFound(ServiceError):
    status_code = 404
    error_code = "user_not_found"

    def __init__(self, user_id):
        super().__init__(f"User {user_id} not found")


class GenerationNotFound(ServiceError):
    status_code = 404
    error_code = "generation_not_found"

    def __init__(self, generation_id):
        super().__init__(f"Generation {generation_id} not found")


class QuotaExceeded(ServiceError):
    status_code = 402
    error_code = "quota_exceeded"

    def __init__(self, free_used: int, free_limit: int):
        super().__init__(
            f"Free limit reached ({free_used}/{free_limit} this month). "
            "Upgrade to Pro for 120 HD clips per month.",
            freeUsed=free_used,
            freeLimit=free_limit,
        )
        self.free_used = free_used
        self.free_limit = free_limit


class QuotaReservationError(ServiceError):
    """The reservation write failed; nothing was counted."""

    status_code = 503
    error_code = "quota_unavailable"

    def __init__(self):
        super().__init__("Could not reserve usage right now, please retry")


class AllProvidersExhausted(ServiceError):
    status_code = 500
    error_code = "all_providers_exhausted"

    def __init__(
        self,
        tier: str,
        attempts: List[Dict[str, Any]],
        last_error: Optional[str],
        elapsed_ms: int = 0,
    ):
        super().__init__(
            "All fallbacks exhausted, please retry later",
            tier=tier,
            lastError=last_error,
            attempts=attempts,
            elapsed=elapsed_ms,
        )
        self.tier = tier
        self.attempts = attempts
        self.last_error = last_error
        self.elapsed_ms = elapsed_ms


class TierNotAllowed(ServiceError):
    status_code = 402
    error_code = "tier_not_allowed"

    def __init__(self, requested: str, allowed: str):
        super().__init__(
            f"Your plan is {allowed}; upgrade to use the {requested} tier.",
            tier=requested,
            allowedTier=allowed,
        )
        self.requested = requested
        self.allowed = allowed
