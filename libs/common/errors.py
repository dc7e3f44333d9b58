"""Error vocabulary shared by the store and payments services.

Services raise these; ``libs.common.error_handler`` turns them into HTTP
responses. ``public_message`` is what the client sees, ``str(exc)`` and
``context`` are for the logs.
"""

from typing import Any, Optional


class CommerceError(Exception):
    status_code = 500
    code = "internal_error"
    public_message: Optional[str] = None

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context = context
        super().__init__(message)

    @property
    def detail(self) -> str:
        return self.public_message or self.message


class ValidationError(CommerceError):
    """Rejected before any side effect (empty cart, bad customer details)."""

    status_code = 400
    code = "validation_error"


class NotFoundError(CommerceError):
    """Missing, or owned by someone else. The two are never distinguished."""

    status_code = 404
    code = "not_found"


class ConflictError(CommerceError):
    status_code = 409
    code = "conflict"


class InsufficientStockError(ConflictError):
    code = "insufficient_stock"


class StockChangedError(ConflictError):
    """A concurrent purchase took the stock between read and write."""

    code = "stock_changed"


class OrderNumberCollisionError(ConflictError):
    code = "order_number_collision"


class PaymentAlreadyExistsError(ConflictError):
    code = "payment_exists"


class IllegalTransitionError(ConflictError):
    code = "illegal_transition"

    def __init__(self, entity: str, current: Any, target: Any):
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(
            f"Illegal {entity} transition {_label(current)} -> {_label(target)}",
            entity=entity,
            current=_label(current),
            target=_label(target),
        )


class GatewayError(CommerceError):
    """Upstream payment provider failure during initiation."""

    status_code = 502
    code = "gateway_error"
    public_message = "The payment provider could not be reached. Please try again."


class SignatureError(CommerceError):
    """Callback could not be authenticated."""

    status_code = 401
    code = "invalid_signature"
    public_message = "Invalid signature"


class TransactionTimeoutError(CommerceError):
    """The transaction could not start or finish in time. Safe to retry."""

    status_code = 503
    code = "transaction_timeout"
    public_message = "The store is busy right now. Please retry."


def _label(value: Any) -> str:
    return getattr(value, "value", None) or str(value)
