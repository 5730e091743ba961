"""Определение текущего тарифа по истории завершенных платежей"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from membership.constants import EPOCH, STATUS_COMPLETED, ZERO
from membership.models.membership import Baseline
from membership.models.package import Package
from membership.models.payment import PaymentEvent, PaymentRecord
from membership.utils.parsing import parse_timestamp

logger = logging.getLogger(__name__)


def payment_events(record: PaymentRecord) -> list[PaymentEvent]:
    """payment_details как список событий (одиночный объект тоже допустим)"""
    details = record.get('payment_details')
    if isinstance(details, dict):
        return [details]  # type: ignore[list-item]
    if isinstance(details, list):
        return [ev for ev in details if isinstance(ev, dict)]
    return []


def _record_time(record: PaymentRecord) -> Optional[datetime]:
    return parse_timestamp(record.get('updated_at')) or parse_timestamp(record.get('created_at'))


def resolve_record_target(record: PaymentRecord) -> tuple[Optional[str], datetime]:
    """
    Возвращает (целевой тариф, время) для одной записи

    Время события: его timestamp, иначе updated_at записи, иначе created_at,
    иначе эпоха. При равном времени побеждает событие, стоящее позже в списке.
    """
    fallback = _record_time(record)
    events = payment_events(record)

    if not events:
        return record.get('package_type') or None, fallback or EPOCH

    newest: Optional[PaymentEvent] = None
    newest_ts = EPOCH
    for ev in events:
        ts = parse_timestamp(ev.get('timestamp')) or fallback or EPOCH
        if newest is None or ts >= newest_ts:
            newest, newest_ts = ev, ts

    target = newest.get('target_package') or record.get('package_type') or None
    return target, newest_ts


def package_price(packages: Iterable[Package], package_id: Optional[str]) -> Decimal:
    """Цена тарифа из каталога, неизвестный тариф стоит 0"""
    if not package_id:
        return ZERO
    for pkg in packages:
        if pkg['id'] == package_id:
            return pkg['price']
    logger.warning(f"Тариф {package_id} отсутствует в каталоге, базовая цена 0")
    return ZERO


def resolve_baseline(records: Iterable[PaymentRecord], packages: Iterable[Package]) -> Baseline:
    """
    Определяет базовый тариф пользователя

    Берется целевой тариф завершенной записи с самым поздним временем события.
    При точном совпадении времени выигрывает запись с большим id, так что
    результат не зависит от порядка строк в выборке.
    """
    best: Optional[tuple[datetime, str, str]] = None

    for record in records:
        if record.get('status') != STATUS_COMPLETED:
            continue
        target, ts = resolve_record_target(record)
        if not target:
            continue
        key = (ts, str(record.get('id', '')), target)
        if best is None or key[:2] > best[:2]:
            best = key

    if best is None:
        return Baseline(None, ZERO)

    package_id = best[2]
    return Baseline(package_id, package_price(packages, package_id))
