"""Привязка Telegram-аккаунтов к пользователям приложения"""
import asyncpg
from typing import Optional


class AccountLinkRepository:
    """Связь telegram_user_id -> user_id и bearer-токен сессии"""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def get_user_id(self, telegram_user_id: int) -> Optional[str]:
        """ID пользователя приложения или None, если аккаунт не привязан"""
        async with self.pool.acquire() as conn:
            user_id = await conn.fetchval(
                "SELECT user_id FROM account_links WHERE telegram_user_id = $1",
                telegram_user_id
            )
            return str(user_id) if user_id else None

    async def get_access_token(self, telegram_user_id: int) -> Optional[str]:
        """Актуальный токен сессии. Читается при каждом вызове, не кэшируется"""
        async with self.pool.acquire() as conn:
            token = await conn.fetchval(
                """
                SELECT access_token
                FROM account_links
                WHERE telegram_user_id = $1
                  AND (token_expires_at IS NULL OR token_expires_at > NOW())
                """,
                telegram_user_id
            )
            return token or None
