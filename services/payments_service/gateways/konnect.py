"""Mobile and wallet payments through Konnect.

Amounts are sent in millimes (1 TND = 1000 millimes). Webhooks are
authenticated with an HMAC-SHA256 hex digest of the raw request body,
optionally prefixed with ``sha256=``.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import httpx
from libs.common.errors import GatewayError, SignatureError, ValidationError
from libs.common.logging import get_logger
from services.payments_service.gateways.base import (
    CallbackResult,
    CustomerInfo,
    InitiateResult,
    PaymentGateway,
    hmac_sha256_hex,
    normalize_status,
    parse_callback_payload,
    signatures_match,
)

logger = get_logger(__name__)

MILLIMES_PER_UNIT = 1000


def to_millimes(amount: Decimal) -> int:
    return int((amount * MILLIMES_PER_UNIT).to_integral_value(rounding=ROUND_HALF_UP))


def _first(data: dict, *paths: str):
    """First non-empty value among dotted ``paths`` in a nested payload."""
    for path in paths:
        value = data
        for part in path.split("."):
            value = value.get(part) if isinstance(value, dict) else None
        if value not in (None, ""):
            return value
    return None


class KonnectGateway(PaymentGateway):
    name = "konnect"

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str],
        wallet_id: Optional[str],
        webhook_secret: Optional[str],
        currency: str = "TND",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout=timeout, transport=transport)
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.wallet_id = wallet_id
        self.webhook_secret = webhook_secret
        self.currency = currency

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.wallet_id)

    async def initiate(
        self,
        amount: Decimal,
        order_ref: str,
        customer: CustomerInfo,
        callback_url: str,
        return_url: str,
    ) -> InitiateResult:
        if not self.configured:
            return self.sandbox_result(return_url, tag="KONNECT-")

        first_name, _, last_name = customer.full_name.strip().partition(" ")
        payload = {
            "receiverWalletId": self.wallet_id,
            "amount": to_millimes(amount),
            "token": self.currency,
            "type": "immediate",
            "firstName": first_name or "Customer",
            "lastName": last_name.strip() or first_name or "Customer",
            "email": customer.email,
            "phoneNumber": customer.phone_number,
            "orderId": order_ref,
            "successUrl": return_url,
            "failUrl": return_url,
            "webhook": callback_url,
        }

        logger.info("Initiating Konnect payment for order %s", order_ref)
        data = await self._post(
            f"{self.api_url}/v2/payments/init-payment",
            payload,
            headers={"x-api-key": self.api_key},
        )

        payment_url = _first(data, "payUrl", "paymentUrl", "url")
        if not payment_url:
            raise GatewayError(
                "Konnect did not return a payment URL", gateway=self.name, response=data
            )
        external_ref = _first(data, "paymentRef", "paymentRefId", "id")
        return InitiateResult(
            payment_url=payment_url,
            external_ref=str(external_ref) if external_ref else None,
        )

    def verify_callback(
        self, raw_payload: bytes, signature: Optional[str]
    ) -> CallbackResult:
        if not self.webhook_secret:
            raise SignatureError("KONNECT_WEBHOOK_SECRET is not configured")

        if signature and signature.startswith("sha256="):
            signature = signature[len("sha256="):]
        expected = hmac_sha256_hex(self.webhook_secret, raw_payload or b"")
        if not signatures_match(expected, signature):
            raise SignatureError("Invalid Konnect webhook signature")

        data = parse_callback_payload(raw_payload)
        order_ref = _first(
            data, "orderId", "orderNumber", "payment.orderId", "payment.orderNumber"
        )
        if not order_ref:
            raise ValidationError("Konnect callback has no order reference")

        status = _first(data, "status", "paymentStatus", "payment.status", "state")
        transaction_id = _first(data, "paymentRef", "id", "paymentId", "payment.id")
        return CallbackResult(
            order_ref=str(order_ref),
            status=normalize_status(status),
            external_ref=str(transaction_id) if transaction_id else None,
            payload=data,
        )
