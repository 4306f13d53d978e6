"""Core business logic: auth, guards, payments, tracking."""
from .payments import PaymentRecorder, PaymentResult
from .permissions import Permission, ROLE_PERMISSIONS, effective_permissions
from .tracking import TrackingValidation, validate_tracking_token

__all__ = [
    "PaymentRecorder",
    "PaymentResult",
    "Permission",
    "ROLE_PERMISSIONS",
    "effective_permissions",
    "TrackingValidation",
    "validate_tracking_token",
]
