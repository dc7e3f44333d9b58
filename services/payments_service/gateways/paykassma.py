"""Card payments through Paykassma.

Requests and callbacks are signed with HMAC-SHA256 over the payload's fields
sorted by key and joined as ``key=value&key=value`` (``signature`` excluded).
"""

from decimal import Decimal, InvalidOperation
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


def _field_value(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def signing_string(data: dict) -> str:
    return "&".join(
        f"{key}={_field_value(data[key])}"
        for key in sorted(data)
        if key != "signature"
    )


class PaykassmaGateway(PaymentGateway):
    name = "paykassma"

    def __init__(
        self,
        api_url: str,
        merchant_id: Optional[str],
        secret_key: Optional[str],
        currency: str = "TND",
        test_mode: bool = False,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout=timeout, transport=transport)
        self.api_url = api_url.rstrip("/")
        self.merchant_id = merchant_id
        self.secret_key = secret_key
        self.currency = currency
        self.test_mode = test_mode

    @property
    def configured(self) -> bool:
        return bool(self.merchant_id and self.secret_key)

    def sign(self, data: dict) -> str:
        return hmac_sha256_hex(self.secret_key or "", signing_string(data))

    async def initiate(
        self,
        amount: Decimal,
        order_ref: str,
        customer: CustomerInfo,
        callback_url: str,
        return_url: str,
    ) -> InitiateResult:
        if not self.configured:
            return self.sandbox_result(return_url)

        payload = {
            "merchant_id": self.merchant_id,
            "amount": f"{amount:.2f}",
            "currency": self.currency,
            "order_id": order_ref,
            "order_description": f"Order {order_ref}",
            "customer_email": customer.email,
            "customer_name": customer.full_name,
            "callback_url": callback_url,
            "return_url": return_url,
            "test_mode": "1" if self.test_mode else "0",
        }
        payload["signature"] = self.sign(payload)

        logger.info("Initiating Paykassma payment for order %s", order_ref)
        data = await self._post(f"{self.api_url}/api/v1/payment/initiate", payload)

        payment_url = data.get("payment_url") or data.get("paymentUrl")
        if not payment_url:
            raise GatewayError(
                data.get("error") or data.get("message") or "Payment initiation failed",
                gateway=self.name,
                response=data,
            )
        external_ref = data.get("transaction_id") or data.get("transactionId")
        return InitiateResult(
            payment_url=payment_url,
            external_ref=str(external_ref) if external_ref else None,
        )

    def verify_callback(
        self, raw_payload: bytes, signature: Optional[str]
    ) -> CallbackResult:
        if not self.secret_key:
            raise SignatureError("Paykassma secret key is not configured")

        data = parse_callback_payload(raw_payload)
        received = data.get("signature") or signature
        if not signatures_match(self.sign(data), received):
            raise SignatureError("Invalid signature in Paykassma callback")

        order_ref = data.get("order_id")
        if not order_ref:
            raise ValidationError("Paykassma callback has no order_id")

        amount = None
        if data.get("amount") not in (None, ""):
            try:
                amount = Decimal(str(data["amount"]))
            except InvalidOperation:
                logger.warning("Unparseable amount in Paykassma callback: %r", data["amount"])

        transaction_id = data.get("transaction_id")
        return CallbackResult(
            order_ref=str(order_ref),
            status=normalize_status(data.get("status")),
            external_ref=str(transaction_id) if transaction_id else None,
            amount=amount,
            payload=data,
        )
