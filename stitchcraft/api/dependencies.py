"""
Shared service instances for route handlers.

Exposed through getter functions so tests can swap them with
app.dependency_overrides.
"""
from typing import Optional

from fastapi import Request

from stitchcraft.core.payments import PaymentRecorder
from stitchcraft.core.rate_limit import RateLimiter
from stitchcraft.integrations.paystack_client import PaystackClient
from stitchcraft.integrations.webhook_handler import WebhookHandler
from stitchcraft.monitoring.health import HealthCheck

payment_recorder = PaymentRecorder()
paystack_client = PaystackClient()
rate_limiter = RateLimiter()
health_check = HealthCheck()

webhook_handler = WebhookHandler(payment_recorder=payment_recorder)
webhook_handler.register_handler("charge.success", webhook_handler.handle_charge_success)


def get_payment_recorder() -> PaymentRecorder:
    return payment_recorder


def get_paystack_client() -> PaystackClient:
    return paystack_client


def get_rate_limiter() -> RateLimiter:
    return rate_limiter


def get_webhook_handler() -> WebhookHandler:
    return webhook_handler


def get_health_check() -> HealthCheck:
    return health_check


def client_ip(request: Request) -> Optional[str]:
    """First X-Forwarded-For hop, falling back to the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None
