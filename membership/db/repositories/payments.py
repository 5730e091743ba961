"""Репозиторий для работы с платежами"""
import asyncpg
from typing import Any, Optional

from membership.models.payment import Complaint, PaymentRecord
from membership.utils.parsing import to_decimal

_COLUMNS = """
    id, user_id, package_type, package_name, amount, status,
    payment_details, complaints, created_at, updated_at
"""


def _to_record(row: Any) -> PaymentRecord:
    data = dict(row)
    data['id'] = str(data['id'])
    data['user_id'] = str(data['user_id'])
    data['amount'] = to_decimal(data.get('amount'))
    data['payment_details'] = data.get('payment_details') or []
    complaints = data.get('complaints')
    data['complaints'] = complaints if isinstance(complaints, list) else []
    return data  # type: ignore[return-value]


class PaymentRepository:
    """Репозиторий для работы с платежами"""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def get_user_payments(self, user_id: str) -> list[PaymentRecord]:
        """Получить все платежи пользователя (новые первыми)"""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_COLUMNS}
                FROM payment_records
                WHERE user_id = $1
                ORDER BY created_at DESC
                """,
                user_id
            )
            return [_to_record(row) for row in rows]

    async def get_latest_for_package(
        self,
        user_id: str,
        package_type: str,
        status: Optional[str] = None
    ) -> Optional[PaymentRecord]:
        """
        Последний платеж пользователя по тарифу

        Args:
            user_id: ID пользователя
            package_type: Тариф (premium, vip_premium, ...)
            status: Если задан, учитываются только записи с этим статусом

        Returns:
            Самая новая по created_at запись или None
        """
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_COLUMNS}
                FROM payment_records
                WHERE user_id = $1
                  AND package_type = $2
                  AND ($3::text IS NULL OR status = $3)
                ORDER BY created_at DESC, id DESC
                LIMIT 1
                """,
                user_id, package_type, status
            )
            return _to_record(row) if row else None

    async def update_complaints(self, record_id: str, complaints: list[Complaint]) -> None:
        """Перезаписать список жалоб у платежа"""
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE payment_records
                SET complaints = $2::jsonb
                WHERE id::text = $1
                """,
                record_id, complaints
            )
