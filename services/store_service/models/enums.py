"""Enum definitions for store service models."""

import enum

from libs.common.state_machine import Lifecycle


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"


class PaymentMethod(str, enum.Enum):
    CASH_ON_DELIVERY = "cash_on_delivery"
    CARD = "card"
    MOBILE_WALLET = "mobile_wallet"

    @property
    def uses_gateway(self) -> bool:
        return self is not PaymentMethod.CASH_ON_DELIVERY


# Fulfillment states beyond CONFIRMED belong to downstream services.
ORDER_LIFECYCLE = Lifecycle(
    "order",
    {
        OrderStatus.PENDING: {OrderStatus.CONFIRMED},
        OrderStatus.CONFIRMED: set(),
    },
)
