"""Эфемерная сессия оплаты одного экрана"""
from enum import Enum
from decimal import Decimal
from typing import Optional

from membership.constants import PROVIDER_PAYPAL


class SessionState(str, Enum):
    CREATED = "created"
    CAPTURING = "capturing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


TERMINAL_STATES = frozenset({SessionState.COMPLETED, SessionState.CANCELLED, SessionState.FAILED})

_TRANSITIONS = {
    SessionState.CREATED: frozenset({SessionState.CAPTURING, SessionState.CANCELLED, SessionState.FAILED}),
    SessionState.CAPTURING: TERMINAL_STATES,
}


class InvalidTransition(RuntimeError):
    pass


class PaymentSession:
    """
    Одна попытка оплаты у провайдера

    Состояние меняется только вперед: CREATED -> CAPTURING -> терминальное.
    Флаг cancel_requested одноразовый: запрос отмены уходит не больше одного раза.
    """

    def __init__(
        self,
        order_id: str,
        payment_id: str,
        package_id: str,
        package_name: str,
        amount: Decimal,
        approval_url: Optional[str] = None,
        provider: str = PROVIDER_PAYPAL
    ):
        self.order_id = order_id
        self.payment_id = payment_id
        self.package_id = package_id
        self.package_name = package_name
        self.amount = amount
        self.approval_url = approval_url
        self.provider = provider
        self.state = SessionState.CREATED
        self.cancel_requested = False
        self.error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def is_live(self) -> bool:
        return not self.is_terminal

    def transition(self, new_state: SessionState) -> None:
        if new_state not in _TRANSITIONS.get(self.state, frozenset()):
            raise InvalidTransition(f"{self.state.value} -> {new_state.value}")
        self.state = new_state

    def claim_cancellation(self) -> bool:
        """True только для первого вызова"""
        if self.cancel_requested:
            return False
        self.cancel_requested = True
        return True

    def __repr__(self) -> str:
        return (
            f"PaymentSession(order_id={self.order_id!r}, payment_id={self.payment_id!r}, "
            f"package_id={self.package_id!r}, state={self.state.value})"
        )
