"""External integrations: Paystack API and webhooks."""
from .paystack_client import PaystackClient, PaystackTransaction
from .webhook_handler import WebhookHandler

__all__ = ["PaystackClient", "PaystackTransaction", "WebhookHandler"]
