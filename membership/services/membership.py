import asyncio
import logging
from typing import Iterable, Optional

from membership.db.repositories.packages import EntitlementRepository, PackageRepository
from membership.db.repositories.payments import PaymentRepository
from membership.models.membership import MembershipSnapshot
from membership.models.package import Package, UserPackageEntitlement
from membership.models.payment import PaymentRecord
from membership.services.entitlements import resolve_baseline
from membership.services.pricing import build_offers, pending_package_types

logger = logging.getLogger(__name__)


def build_snapshot(
    user_id: str,
    packages: Iterable[Package],
    records: Iterable[PaymentRecord],
    entitlement: Optional[UserPackageEntitlement] = None
) -> MembershipSnapshot:
    """Собирает производное состояние из одного среза данных. Без ввода-вывода"""
    packages = list(packages)
    records = list(records)
    baseline = resolve_baseline(records, packages)
    pending = pending_package_types(records)

    return {
        'user_id': user_id,
        'packages': packages,
        'records': records,
        'baseline': baseline,
        'pending': pending,
        'entitlement_package': entitlement['package_type'] if entitlement else None,
        'offers': build_offers(packages, records, baseline, pending),
        'checkout_blocked': bool(pending),
    }


class MembershipService:
    """Загрузка каталога, платежей и активного пакета пользователя"""

    def __init__(
        self,
        packages: PackageRepository,
        payments: PaymentRepository,
        entitlements: EntitlementRepository
    ):
        self.packages = packages
        self.payments = payments
        self.entitlements = entitlements

    async def load_snapshot(self, user_id: str) -> MembershipSnapshot:
        """Читает все три источника и пересчитывает базовый тариф и предложения"""
        packages, records, entitlement = await asyncio.gather(
            self.packages.get_active(),
            self.payments.get_user_payments(user_id),
            self.entitlements.get_active(user_id),
        )
        snapshot = build_snapshot(user_id, packages, records, entitlement)

        baseline = snapshot['baseline']
        if snapshot['entitlement_package'] and snapshot['entitlement_package'] != baseline.package_id:
            # Бэкенд еще не догнал историю платежей (или наоборот)
            logger.info(
                f"Активный пакет {snapshot['entitlement_package']} расходится "
                f"с базовым по платежам {baseline.package_id} (user_id={user_id})"
            )
        return snapshot
