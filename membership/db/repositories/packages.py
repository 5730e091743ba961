"""Репозиторий каталога тарифов и активных пакетов"""
import asyncpg
from typing import Optional

from membership.models.package import Package, UserPackageEntitlement
from membership.utils.parsing import to_decimal


class PackageRepository:
    """Каталог тарифов"""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def get_active(self) -> list[Package]:
        """Активные тарифы в порядке отображения"""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT package_id, name, price, features, is_lifetime, sort_order
                FROM packages
                WHERE is_active = TRUE
                ORDER BY sort_order
                """
            )
        return [
            {
                'id': row['package_id'],
                'name': row['name'],
                'price': to_decimal(row['price']),
                'features': list(row['features'] or []),
                'is_lifetime': row['is_lifetime'] if row['is_lifetime'] is not None else True,
                'sort_order': row['sort_order'] or 0,
            }
            for row in rows
        ]


class EntitlementRepository:
    """Активные пакеты пользователей (только чтение)"""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def get_active(self, user_id: str) -> Optional[UserPackageEntitlement]:
        """Активный пакет пользователя, если он есть"""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT user_id, package_type, is_active, activated_at
                FROM user_packages
                WHERE user_id = $1 AND is_active = TRUE
                ORDER BY activated_at DESC NULLS LAST
                LIMIT 1
                """,
                user_id
            )
        if not row:
            return None
        data = dict(row)
        data['user_id'] = str(data['user_id'])
        return data  # type: ignore[return-value]
