"""Классификация смены тарифа и расчет суммы к оплате"""
from typing import AbstractSet, Iterable

from membership.constants import STATUS_COMPLETED, STATUS_PENDING, ZERO
from membership.models.membership import Baseline, Classification, Eligibility, Offer
from membership.models.package import Package
from membership.models.payment import PaymentRecord
from membership.services.entitlements import payment_events


def pending_package_types(records: Iterable[PaymentRecord]) -> frozenset[str]:
    """Тарифы, по которым у пользователя есть неразрешенный платеж"""
    return frozenset(
        r['package_type'] for r in records
        if r.get('status') == STATUS_PENDING and r.get('package_type')
    )


def has_completed_for(records: Iterable[PaymentRecord], package_id: str) -> bool:
    """Есть ли завершенная запись, которая покупала или повышала до этого тарифа"""
    for r in records:
        if r.get('status') != STATUS_COMPLETED:
            continue
        if r.get('package_type') == package_id:
            return True
        if any(ev.get('target_package') == package_id for ev in payment_events(r)):
            return True
    return False


def classify(
    package: Package,
    baseline: Baseline,
    pending: AbstractSet[str],
    has_completed: bool
) -> Eligibility:
    """
    Классифицирует выбор тарифа относительно базового

    Порядок проверок важен: первая сработавшая побеждает.
    Чистая функция, без ввода-вывода.
    """
    price = package['price']

    if package['id'] == baseline.package_id and has_completed:
        return Eligibility(Classification.CURRENT, ZERO, False)

    if package['id'] in pending:
        return Eligibility(Classification.PENDING, ZERO, False)

    if baseline.price > 0 and price <= baseline.price:
        return Eligibility(Classification.DOWNGRADE, ZERO, False)

    if baseline.price > 0:
        return Eligibility(Classification.UPGRADE, max(price - baseline.price, ZERO), True)

    return Eligibility(Classification.PURCHASE, max(price, ZERO), True)


def build_offers(
    packages: Iterable[Package],
    records: list[PaymentRecord],
    baseline: Baseline,
    pending: AbstractSet[str]
) -> list[Offer]:
    """Классификация для каждого тарифа каталога"""
    return [
        {
            'package': pkg,
            'eligibility': classify(pkg, baseline, pending, has_completed_for(records, pkg['id'])),
        }
        for pkg in packages
    ]
