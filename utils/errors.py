from __future__ import annotations

from typing import Any, Dict, Optional


class AppError(Exception):
    """Base for every error that may reach a caller.

    `code` is a stable snake_case string; `message` is safe to show and never
    carries a raw upstream error body.
    """

    status_code: int = 500
    default_code: str = "internal_error"

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        err: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            err["details"] = self.details
        return {"error": err}


class ValidationError(AppError):
    status_code = 400
    default_code = "invalid_input"


class NotFoundError(AppError):
    status_code = 404
    default_code = "not_found"


class BusinessRuleError(AppError):
    status_code = 422
    default_code = "no_viable_package"


class ExternalServiceError(AppError):
    status_code = 503
    default_code = "external_service_unavailable"

    def __init__(
        self,
        message: str,
        service: str = "",
        status: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code=code, details=details)
        self.service = service
        self.status = status

    @property
    def retryable(self) -> bool:
        return self.status is None or self.status >= 500


class CacheError(AppError):
    # Raised inside the cache layer only; CacheStore turns it into a miss.
    default_code = "cache_error"


class CircuitOpenError(AppError):
    # Internal signal: the recommender falls back instead of surfacing this.
    status_code = 503
    default_code = "circuit_open"
