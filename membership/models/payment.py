"""Модели для платежей"""
from typing import TypedDict, Optional
from datetime import datetime
from decimal import Decimal


class PaymentEvent(TypedDict, total=False):
    """Событие жизненного цикла платежа из payment_details"""
    type: str  # purchase, upgrade
    previous_package: Optional[str]
    target_package: Optional[str]
    baseline_price: float
    target_price: float
    difference_paid: float
    timestamp: Optional[str]


class Complaint(TypedDict):
    """Жалоба пользователя на платеж"""
    package_type: str
    message: str
    created_at: str  # ISO-8601 UTC


class PaymentRecord(TypedDict):
    """Запись платежа из базы данных"""
    id: str
    user_id: str
    package_type: Optional[str]
    package_name: Optional[str]
    amount: Decimal
    status: str  # pending, completed, failed, cancelled
    payment_details: list[PaymentEvent]
    complaints: list[Complaint]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
