"""Модели тарифов и активных пакетов"""
from typing import TypedDict, Optional
from datetime import datetime
from decimal import Decimal


class Package(TypedDict):
    """Тариф из каталога (неизменяем во время работы)"""
    id: str  # premium, vip_premium, golden_premium
    name: str
    price: Decimal
    features: list[str]
    is_lifetime: bool
    sort_order: int


class UserPackageEntitlement(TypedDict):
    """Активный пакет пользователя (пишется только доверенным бэкендом)"""
    user_id: str
    package_type: str
    is_active: bool
    activated_at: Optional[datetime]
