"""Payment gateway contract shared by all adapters.

An adapter knows how to start a payment with its provider (``initiate``) and
how to authenticate and read the provider's asynchronous result
(``verify_callback``). Everything else, including persistence and state
transitions, lives in the orchestrator.
"""

import hashlib
import hmac
import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

import httpx
from libs.common.errors import GatewayError, ValidationError
from libs.common.logging import get_logger
from services.payments_service.models.enums import PaymentStatus

logger = get_logger(__name__)

# Provider statuses that mean the money moved.
SUCCESS_STATUSES = frozenset({"success", "paid", "completed", "approved"})


@dataclass
class CustomerInfo:
    """Who is paying, as forwarded to the provider."""

    full_name: str
    email: str
    phone_number: str


@dataclass
class InitiateResult:
    """Where to send the customer, and the provider's reference."""

    payment_url: str
    external_ref: Optional[str] = None


@dataclass
class CallbackResult:
    """Authenticated, normalised content of a provider callback."""

    order_ref: str
    status: PaymentStatus
    external_ref: Optional[str] = None
    amount: Optional[Decimal] = None
    payload: dict = field(default_factory=dict)


def normalize_status(raw: Optional[str]) -> PaymentStatus:
    """Map a provider status string onto SUCCESS or FAILED."""
    if raw and str(raw).strip().lower() in SUCCESS_STATUSES:
        return PaymentStatus.SUCCESS
    return PaymentStatus.FAILED


def hmac_sha256_hex(secret: str, message: str | bytes) -> str:
    if isinstance(message, str):
        message = message.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def signatures_match(expected: str, received: Optional[str]) -> bool:
    if not received:
        return False
    return hmac.compare_digest(expected.lower(), received.strip().lower())


def parse_callback_payload(raw_payload: bytes) -> dict:
    """Decode a JSON callback body into a dict."""
    try:
        data = json.loads(raw_payload or b"{}")
    except (ValueError, UnicodeDecodeError) as e:
        raise ValidationError("Callback payload is not valid JSON") from e
    if not isinstance(data, dict):
        raise ValidationError("Callback payload must be a JSON object")
    return data


class PaymentGateway(ABC):
    """Base class for provider adapters.

    ``transport`` lets tests plug an ``httpx.MockTransport`` in place of the
    network.
    """

    name: str = ""

    def __init__(
        self,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.transport = transport

    @property
    @abstractmethod
    def configured(self) -> bool:
        """Whether live credentials are present. If not, runs in sandbox mode."""

    @abstractmethod
    async def initiate(
        self,
        amount: Decimal,
        order_ref: str,
        customer: CustomerInfo,
        callback_url: str,
        return_url: str,
    ) -> InitiateResult:
        """Start a payment. Raises GatewayError if the provider fails."""

    @abstractmethod
    def verify_callback(
        self, raw_payload: bytes, signature: Optional[str]
    ) -> CallbackResult:
        """Authenticate and parse a callback. Raises SignatureError."""

    def sandbox_result(self, return_url: str, tag: str = "") -> InitiateResult:
        """Mock payment URL used while credentials are not configured."""
        logger.warning(
            "%s credentials not configured. Using mock payment URL for testing.",
            self.name,
        )
        external_ref = f"MOCK-{tag}{int(time.time() * 1000)}"
        separator = "&" if "?" in return_url else "?"
        extra = f"&gateway={self.name}" if tag else ""
        return InitiateResult(
            payment_url=f"{return_url}{separator}mock=true{extra}&transactionId={external_ref}",
            external_ref=external_ref,
        )

    async def _post(
        self, url: str, payload: dict, headers: Optional[dict] = None
    ) -> dict:
        """POST JSON to the provider and return the decoded response body."""
        request_headers = {"Content-Type": "application/json", **(headers or {})}
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.post(url, json=payload, headers=request_headers)
        except httpx.HTTPError as e:
            raise GatewayError(
                f"{self.name} request failed: {e}", gateway=self.name
            ) from e

        try:
            data = response.json()
        except ValueError:
            data = {"raw": response.text}

        if not response.is_success:
            raise GatewayError(
                f"{self.name} API error: {response.status_code}",
                gateway=self.name,
                status_code=response.status_code,
                response=data,
            )
        if not isinstance(data, dict):
            raise GatewayError(
                f"{self.name} returned an unexpected response", gateway=self.name
            )
        return data
