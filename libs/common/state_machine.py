"""Legal status transitions for orders and payments.

Each service declares its lifecycle next to its status enum, e.g.::

    PAYMENT_LIFECYCLE = Lifecycle(
        "payment",
        {
            PaymentStatus.PENDING: {PaymentStatus.SUCCESS, PaymentStatus.FAILED},
            PaymentStatus.SUCCESS: set(),
            PaymentStatus.FAILED: set(),
        },
    )

and calls ``ensure`` before writing a new status.
"""

import enum
from typing import Generic, Mapping, TypeVar

from libs.common.errors import IllegalTransitionError

S = TypeVar("S", bound=enum.Enum)


class Lifecycle(Generic[S]):
    def __init__(self, entity: str, transitions: Mapping[S, set[S]]):
        self.entity = entity
        self._transitions = {state: frozenset(targets) for state, targets in transitions.items()}

    def can(self, current: S, target: S) -> bool:
        return target in self._transitions.get(current, frozenset())

    def ensure(self, current: S, target: S) -> None:
        if not self.can(current, target):
            raise IllegalTransitionError(self.entity, current, target)

    def is_terminal(self, state: S) -> bool:
        return not self._transitions.get(state)
