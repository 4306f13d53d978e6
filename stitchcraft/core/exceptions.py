"""
Core exception classes for the StitchCraft API.

Every exception carries:
1. An error code (for client handling)
2. A user message (safe to show to users)
3. An HTTP status code (for API responses)

Route handlers never build error responses themselves; the API layer maps
these classes to HTTP statuses in one place.
"""

from typing import Any, Dict, List, Optional


class StitchCraftError(Exception):
    """Base exception for all platform errors."""

    def __init__(
        self,
        message: str,
        error_code: str,
        user_message: Optional[str] = None,
        http_status: int = 500,
        **kwargs: Any,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.user_message = user_message or "An error occurred. Please try again."
        self.http_status = http_status
        self.metadata = kwargs

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for API responses"""
        return {
            "success": False,
            "error": {
                "code": self.error_code,
                "message": self.user_message,
                "type": self.__class__.__name__,
            },
        }


# ============================================================================
# AUTHENTICATION / AUTHORIZATION
# ============================================================================

class UnauthorizedError(StitchCraftError):
    """No valid session."""

    def __init__(self, message: str = "Authentication required", **kwargs: Any):
        super().__init__(
            message=message,
            error_code="unauthorized",
            user_message="Unauthorized",
            http_status=401,
            **kwargs,
        )


class ForbiddenError(StitchCraftError):
    """Authenticated, but wrong role or missing permission."""

    def __init__(self, message: str = "Forbidden", **kwargs: Any):
        super().__init__(
            message=message,
            error_code="forbidden",
            user_message=message,
            http_status=403,
            **kwargs,
        )


# ============================================================================
# RESOURCE ERRORS
# ============================================================================

class NotFoundError(StitchCraftError):
    """
    Resource absent or owned by another tenant.

    Cross-tenant lookups raise this rather than ForbiddenError so that record
    existence is never confirmed across organizations.
    """

    def __init__(self, resource: str, resource_id: Optional[str] = None, **kwargs: Any):
        super().__init__(
            message=(
                f"{resource} not found: {resource_id}" if resource_id else f"{resource} not found"
            ),
            error_code="not_found",
            user_message=f"{resource} not found",
            http_status=404,
            resource=resource,
            resource_id=resource_id,
            **kwargs,
        )


class InvalidTrackingTokenError(StitchCraftError):
    """Tracking token unknown, deactivated or expired."""

    def __init__(self, reason: str = "Invalid tracking token", **kwargs: Any):
        super().__init__(
            message=reason,
            error_code="invalid_tracking_token",
            user_message=reason,
            http_status=404,
            **kwargs,
        )


class ConflictError(StitchCraftError):
    """Request clashes with existing state (duplicate phone, email, etc.)."""

    def __init__(self, message: str, **kwargs: Any):
        super().__init__(
            message=message,
            error_code="conflict",
            user_message=message,
            http_status=409,
            **kwargs,
        )


# ============================================================================
# VALIDATION ERRORS
# ============================================================================

class ValidationFailedError(StitchCraftError):
    """Schema or business-rule rejection with per-field errors."""

    def __init__(
        self,
        field_errors: Optional[Dict[str, List[str]]] = None,
        message: str = "Validation failed",
        **kwargs: Any,
    ):
        super().__init__(
            message=message,
            error_code="validation_failed",
            user_message=message,
            http_status=400,
            **kwargs,
        )
        self.field_errors = field_errors or {}

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["error"]["details"] = self.field_errors
        return body

    @classmethod
    def for_field(cls, field: str, reason: str) -> "ValidationFailedError":
        return cls({field: [reason]}, message=f"Invalid {field}: {reason}")


# ============================================================================
# RATE LIMITING
# ============================================================================

class RateLimitExceededError(StitchCraftError):
    """Too many attempts within the window."""

    def __init__(self, limit: int, window_seconds: int, retry_after_seconds: int, **kwargs: Any):
        super().__init__(
            message=f"Rate limit exceeded: {limit} requests per {window_seconds}s",
            error_code="rate_limit_exceeded",
            user_message=f"Too many requests. Please try again in {retry_after_seconds} seconds.",
            http_status=429,
            retry_after_seconds=retry_after_seconds,
            **kwargs,
        )
        self.retry_after_seconds = retry_after_seconds


# ============================================================================
# PAYMENT PROVIDER ERRORS
# ============================================================================

class PaymentProviderError(StitchCraftError):
    """Paystack rejected or failed a call."""

    def __init__(self, message: str, **kwargs: Any):
        super().__init__(
            message=message,
            error_code="payment_provider_error",
            user_message="Payment provider request failed. Please try again.",
            http_status=502,
            **kwargs,
        )


class PaymentVerificationError(StitchCraftError):
    """Provider says the transaction did not succeed."""

    def __init__(self, message: str = "Payment verification failed", **kwargs: Any):
        super().__init__(
            message=message,
            error_code="payment_verification_failed",
            user_message=message,
            http_status=400,
            **kwargs,
        )


class WebhookSignatureError(StitchCraftError):
    """Webhook signature missing or does not match the body."""

    def __init__(self, message: str = "Invalid signature", **kwargs: Any):
        super().__init__(
            message=message,
            error_code="invalid_signature",
            user_message=message,
            http_status=400,
            **kwargs,
        )
