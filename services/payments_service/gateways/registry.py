"""Payment method to gateway routing, built once from settings."""

from functools import lru_cache
from typing import Mapping, Optional

from libs.common.config import Settings, get_settings
from libs.common.errors import NotFoundError, ValidationError
from services.payments_service.gateways.base import PaymentGateway
from services.payments_service.gateways.konnect import KonnectGateway
from services.payments_service.gateways.paykassma import PaykassmaGateway
from services.payments_service.models.enums import PaymentMethod


class GatewayRegistry:
    """Resolves a gateway by payment method or by name.

    Cash on delivery has no gateway; every other method must map to one.
    """

    def __init__(self, by_method: Mapping[PaymentMethod, PaymentGateway]):
        missing = [m for m in PaymentMethod if m.uses_gateway and m not in by_method]
        if missing:
            raise ValueError(f"No gateway registered for {', '.join(m.value for m in missing)}")
        self._by_method = dict(by_method)
        self._by_name = {gateway.name: gateway for gateway in by_method.values()}

    def for_method(self, method: PaymentMethod) -> Optional[PaymentGateway]:
        """Gateway for ``method``, or None for cash on delivery."""
        if not method.uses_gateway:
            return None
        gateway = self._by_method.get(method)
        if gateway is None:
            raise ValidationError(f"Unsupported payment method: {method.value}")
        return gateway

    def by_name(self, name: str) -> PaymentGateway:
        gateway = self._by_name.get(name)
        if gateway is None:
            raise NotFoundError(f"Unknown payment gateway: {name}", gateway=name)
        return gateway

    @property
    def names(self) -> list[str]:
        return sorted(self._by_name)


def build_gateway_registry(settings: Settings) -> GatewayRegistry:
    paykassma = PaykassmaGateway(
        api_url=settings.PAYKASSMA_API_URL,
        merchant_id=settings.PAYKASSMA_MERCHANT_ID,
        secret_key=settings.PAYKASSMA_SECRET_KEY,
        currency=settings.CURRENCY,
        test_mode=settings.PAYKASSMA_TEST_MODE,
        timeout=settings.GATEWAY_HTTP_TIMEOUT,
    )
    konnect = KonnectGateway(
        api_url=settings.KONNECT_API_URL,
        api_key=settings.KONNECT_API_KEY,
        wallet_id=settings.KONNECT_WALLET_ID,
        webhook_secret=settings.KONNECT_WEBHOOK_SECRET,
        currency=settings.CURRENCY,
        timeout=settings.GATEWAY_HTTP_TIMEOUT,
    )
    return GatewayRegistry(
        {
            PaymentMethod.CARD: paykassma,
            PaymentMethod.MOBILE_WALLET: konnect,
        }
    )


@lru_cache
def get_gateway_registry() -> GatewayRegistry:
    """FastAPI dependency: the process-wide gateway registry."""
    return build_gateway_registry(get_settings())
