"""
Error taxonomy for the companion service.

Services raise these; ``companion_app.main`` maps each one to an HTTP status.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional


class CompanionAppError(Exception):
    """Base class for every error the service surfaces to a caller."""

    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/API responses."""
        return {
            "error": self.error_code,
            "message": self.message,
            "context": self.context,
        }


class ValidationError(CompanionAppError):
    """Malformed authoring input. The caller must correct and resubmit."""

    http_status = 422

    def __init__(self, fields: List[str], details: Optional[Dict[str, str]] = None):
        self.fields = list(fields)
        super().__init__(
            message=f"Invalid companion definition: {', '.join(self.fields)}",
            error_code="VALIDATION_ERROR",
            context={"fields": self.fields, "details": details or {}},
        )


class NotFound(CompanionAppError):
    http_status = 404

    def __init__(self, model: str, identifier: Any):
        super().__init__(
            message=f"{model} not found",
            error_code="NOT_FOUND",
            context={"model": model, "identifier": str(identifier)},
        )


class Forbidden(CompanionAppError):
    """Ownership violation on a companion write."""

    http_status = 403

    def __init__(self, caller_id: str, companion_id: str):
        super().__init__(
            message="Only the owner of this companion can modify it",
            error_code="FORBIDDEN",
            context={"caller_id": caller_id, "companion_id": companion_id},
        )


class QuotaExceeded(CompanionAppError):
    """Free-tier message quota used up for the current window."""

    http_status = 429

    def __init__(self, caller_id: str, quota: int, reset_at: datetime):
        self.reset_at = reset_at
        super().__init__(
            message="Free message quota exhausted. Upgrade to Pro or wait for the window to reset.",
            error_code="QUOTA_EXCEEDED",
            context={"caller_id": caller_id, "quota": quota, "reset_at": reset_at.isoformat()},
        )


class GenerationFailed(CompanionAppError):
    """The completion collaborator failed, timed out, or returned nothing usable."""

    http_status = 502

    def __init__(self, companion_id: str, reason: str):
        super().__init__(
            message="The companion could not reply. Your message was saved; please try again.",
            error_code="GENERATION_FAILED",
            context={"companion_id": companion_id, "reason": reason},
        )


class StorageError(CompanionAppError):
    http_status = 503

    def __init__(self, operation: str, reason: str):
        super().__init__(
            message=f"Storage failure during {operation}",
            error_code="STORAGE_ERROR",
            context={"operation": operation, "reason": reason},
        )


class AuthenticationRequired(CompanionAppError):
    http_status = 401

    def __init__(self):
        super().__init__(message="Authentication required", error_code="UNAUTHENTICATED")


class CompletionError(Exception):
    """Raised by the completion client; translated to GenerationFailed by the orchestrator."""
