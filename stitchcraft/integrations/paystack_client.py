"""
Paystack API client.

Implements:
- Transaction initialization (amounts converted to pesewas)
- Transaction verification with exponential backoff on transport errors
- Simulated mode for the placeholder key, so local setups work offline
"""
import json
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from stitchcraft.config import get_settings
from stitchcraft.core.exceptions import PaymentProviderError
from stitchcraft.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

SIMULATED_REFERENCE_PREFIX = "SIM-REF-"
# Simulated checkouts remembered for verification; the oldest are dropped first.
SIMULATED_CACHE_SIZE = 1000


@dataclass
class PaystackTransaction:
    """The parts of a verified transaction the application uses."""

    reference: str
    status: str
    amount_pesewas: int
    metadata: Dict[str, Any] = field(default_factory=dict)
    paid_at: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"

    @property
    def amount(self) -> Decimal:
        return Decimal(self.amount_pesewas) / 100


def extract_metadata(data: Dict[str, Any]) -> Dict[str, Any]:
    """Metadata arrives as an object, a JSON string or an empty string."""
    metadata = data.get("metadata")
    if isinstance(metadata, str):
        try:
            metadata = json.loads(metadata) if metadata else {}
        except ValueError:
            return {}
    return metadata if isinstance(metadata, dict) else {}


def to_pesewas(amount: Decimal) -> int:
    return int((Decimal(str(amount)) * 100).to_integral_value())


class PaystackClient:
    """
    Thin async wrapper over the Paystack REST API.

    Verification is idempotent on Paystack's side and is retried on
    transport errors; initialization is not retried.
    """

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        """
        Initialize Paystack client.

        Args:
            http_client: Optional preconfigured httpx client
        """
        self.settings = get_settings()
        self._http_client = http_client
        self._simulated: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()

    @property
    def simulated(self) -> bool:
        return self.settings.is_paystack_simulated

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.settings.paystack_base_url,
                timeout=self.settings.paystack_timeout_seconds,
                headers={"Authorization": f"Bearer {self.settings.paystack_secret_key}"},
            )
        return self._http_client

    @staticmethod
    def _payload(response: httpx.Response, operation: str) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            raise PaymentProviderError(
                f"Paystack {operation} returned non-JSON response ({response.status_code})"
            )
        if response.status_code >= 400 or not body.get("status"):
            raise PaymentProviderError(
                f"Paystack {operation} failed: {body.get('message', response.status_code)}"
            )
        return body["data"]

    async def initialize_transaction(
        self,
        email: str,
        amount: Decimal,
        reference: str,
        callback_url: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Start a hosted checkout.

        Args:
            email: Payer email (Paystack requires one)
            amount: Amount in GHS
            reference: Our transaction reference
            callback_url: Where Paystack redirects after payment
            metadata: Echoed back on verification and webhooks

        Returns:
            Dict with authorization_url, access_code and reference

        Raises:
            PaymentProviderError: Paystack rejected the request or is unreachable
        """
        if self.simulated:
            reference = f"{SIMULATED_REFERENCE_PREFIX}{int(time.time() * 1000)}"
            self._simulated[reference] = {
                "amount": to_pesewas(amount),
                "metadata": metadata or {},
            }
            while len(self._simulated) > SIMULATED_CACHE_SIZE:
                self._simulated.popitem(last=False)
            logger.info("paystack_initialize_simulated", reference=reference)
            return {
                "authorization_url": (
                    f"{self.settings.app_url}/track/pay/verify?reference={reference}"
                ),
                "access_code": "simulated",
                "reference": reference,
            }

        start_time = time.time()
        try:
            response = await self._client().post(
                "/transaction/initialize",
                json={
                    "email": email,
                    "amount": to_pesewas(amount),
                    "currency": self.settings.payment_currency,
                    "reference": reference,
                    "callback_url": callback_url,
                    "metadata": metadata or {},
                },
            )
        except httpx.HTTPError as e:
            metrics.record_paystack_api_call("initialize", "error", time.time() - start_time)
            logger.error("paystack_initialize_failed", reference=reference, error=str(e))
            raise PaymentProviderError(f"Paystack initialize failed: {e}")

        data = self._payload(response, "initialize")
        metrics.record_paystack_api_call("initialize", "success", time.time() - start_time)
        logger.info("paystack_transaction_initialized", reference=data.get("reference"))
        return data

    async def verify_transaction(self, reference: str) -> PaystackTransaction:
        """
        Fetch the authoritative status of a transaction.

        Raises:
            PaymentProviderError: Paystack rejected the request or stayed
                unreachable after retries
        """
        if self.simulated and reference.startswith(SIMULATED_REFERENCE_PREFIX):
            simulated = self._simulated.get(reference, {"amount": 1000, "metadata": {}})
            return PaystackTransaction(
                reference=reference,
                status="success",
                amount_pesewas=simulated["amount"],
                metadata=simulated["metadata"],
            )

        start_time = time.time()
        try:
            response = await self._get_with_retry(f"/transaction/verify/{reference}")
        except httpx.HTTPError as e:
            metrics.record_paystack_api_call("verify", "error", time.time() - start_time)
            logger.error("paystack_verify_failed", reference=reference, error=str(e))
            raise PaymentProviderError(f"Paystack verify failed: {e}")

        data = self._payload(response, "verify")
        metrics.record_paystack_api_call("verify", "success", time.time() - start_time)
        return PaystackTransaction(
            reference=data.get("reference", reference),
            status=data.get("status", ""),
            amount_pesewas=int(data.get("amount") or 0),
            metadata=extract_metadata(data),
            paid_at=data.get("paid_at"),
        )

    async def _get_with_retry(self, path: str) -> httpx.Response:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(httpx.TransportError),
            stop=stop_after_attempt(self.settings.paystack_retry_max_attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
            reraise=True,
        ):
            with attempt:
                return await self._client().get(path)
        raise PaymentProviderError("Paystack verify retries exhausted")

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
