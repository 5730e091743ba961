"""Производное состояние экрана членства"""
from enum import Enum
from typing import NamedTuple, TypedDict, Optional
from decimal import Decimal

from membership.models.package import Package
from membership.models.payment import PaymentRecord


class Classification(str, Enum):
    """Как выбранный тариф соотносится с текущим"""
    CURRENT = "current"
    PENDING = "pending"
    DOWNGRADE = "downgrade"
    UPGRADE = "upgrade"
    PURCHASE = "purchase"


class Baseline(NamedTuple):
    """Тариф, который считается купленным, и его цена"""
    package_id: Optional[str]
    price: Decimal


class Eligibility(NamedTuple):
    classification: Classification
    payable_amount: Decimal
    is_selectable: bool


class Offer(TypedDict):
    """Тариф каталога вместе с результатом классификации"""
    package: Package
    eligibility: Eligibility


class MembershipSnapshot(TypedDict):
    """Снимок данных пользователя после одного обновления"""
    user_id: str
    packages: list[Package]
    records: list[PaymentRecord]
    baseline: Baseline
    pending: frozenset[str]
    entitlement_package: Optional[str]
    offers: list[Offer]
    checkout_blocked: bool  # Пока есть ожидающий платеж, оплата любых тарифов скрыта
