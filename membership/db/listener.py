"""Подписка на изменения строк через PostgreSQL LISTEN/NOTIFY"""
import json
import logging
from typing import AbstractSet, Callable, Optional

import asyncpg

from membership.constants import CHANGE_EVENTS, NOTIFY_CHANNEL

logger = logging.getLogger(__name__)

# (table, event, payload)
ChangeCallback = Callable[[str, str, dict], None]


class Subscription:
    """Хэндл подписки. unsubscribe() синхронный и идемпотентный"""

    def __init__(
        self,
        listener: "ChangeListener",
        tables: AbstractSet[str],
        user_id: str,
        callback: ChangeCallback,
        events: AbstractSet[str] = CHANGE_EVENTS
    ):
        self._listener = listener
        self.tables = frozenset(tables)
        self.user_id = user_id
        self.events = frozenset(e.upper() for e in events)
        self.callback = callback
        self.active = True

    def matches(self, table: str, event: str, user_id: Optional[str]) -> bool:
        return (
            self.active
            and table in self.tables
            and event in self.events
            and user_id == self.user_id
        )

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._listener.discard(self)


class ChangeListener:
    """
    Одно выделенное соединение LISTEN на весь процесс

    Триггер из schema.sql шлет в канал JSON вида
    {"table": "payment_records", "event": "UPDATE", "user_id": "..."}.
    Уведомление доставляется только подпискам с тем же user_id.
    """

    def __init__(self, database_url: str, channel: str = NOTIFY_CHANNEL):
        self.database_url = database_url
        self.channel = channel
        self._conn: Optional[asyncpg.Connection] = None
        self._subscriptions: list[Subscription] = []

    async def start(self) -> None:
        """Открывает соединение и начинает слушать канал"""
        if self._conn is not None:
            return
        self._conn = await asyncpg.connect(self.database_url)
        await self._conn.add_listener(self.channel, self._on_notify)
        logger.info(f"👂 Подписка на канал {self.channel} активна")

    async def stop(self) -> None:
        """Закрывает соединение LISTEN"""
        conn, self._conn = self._conn, None
        for sub in list(self._subscriptions):
            sub.unsubscribe()
        if conn is None:
            return
        try:
            await conn.remove_listener(self.channel, self._on_notify)
        finally:
            await conn.close()
        logger.info(f"🔇 Канал {self.channel} больше не слушается")

    def subscribe(
        self,
        tables: AbstractSet[str],
        user_id: str,
        callback: ChangeCallback,
        events: AbstractSet[str] = CHANGE_EVENTS
    ) -> Subscription:
        """Регистрирует обработчик изменений строк пользователя"""
        sub = Subscription(self, tables, user_id, callback, events)
        self._subscriptions.append(sub)
        return sub

    def discard(self, sub: Subscription) -> None:
        try:
            self._subscriptions.remove(sub)
        except ValueError:
            pass

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    def _on_notify(self, conn, pid: int, channel: str, payload: str) -> None:
        try:
            data = json.loads(payload)
            table = str(data['table'])
            event = str(data['event']).upper()
        except (ValueError, KeyError, TypeError):
            logger.warning(f"Некорректное уведомление в канале {channel}: {payload!r}")
            return

        user_id = data.get('user_id')
        user_id = str(user_id) if user_id is not None else None
        self.dispatch(table, event, user_id, data)

    def dispatch(self, table: str, event: str, user_id: Optional[str], payload: dict) -> None:
        """Передает изменение всем подходящим подпискам"""
        for sub in list(self._subscriptions):
            if not sub.matches(table, event, user_id):
                continue
            try:
                sub.callback(table, event, payload)
            except Exception as e:
                logger.error(f"Ошибка в обработчике изменений {table}/{event}: {e}")
