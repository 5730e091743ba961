"""Синхронизация экрана членства с данными в базе"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from membership.constants import SYNC_POLL_INTERVAL_SECONDS, TABLE_PAYMENT_RECORDS, TABLE_USER_PACKAGES
from membership.db.listener import ChangeListener, Subscription
from membership.models.membership import MembershipSnapshot

logger = logging.getLogger(__name__)

SnapshotLoader = Callable[[str], Awaitable[MembershipSnapshot]]
SnapshotCallback = Callable[[MembershipSnapshot], Awaitable[None]]


class ReconciliationSync:
    """
    Держит состояние экрана членства свежим

    Три триггера обновления: уведомление об изменении строк пользователя,
    резервный опрос раз в poll_interval секунд и возврат фокуса на экран.
    Обновления не пересекаются: пока одно идет, новые триггеры сливаются
    в ровно один повторный проход.
    """

    def __init__(
        self,
        user_id: str,
        loader: SnapshotLoader,
        on_update: SnapshotCallback,
        listener: Optional[ChangeListener] = None,
        poll_interval: float = SYNC_POLL_INTERVAL_SECONDS
    ):
        self.user_id = user_id
        self.loader = loader
        self.on_update = on_update
        self.listener = listener
        self.poll_interval = poll_interval

        self.snapshot: Optional[MembershipSnapshot] = None
        self._subscription: Optional[Subscription] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._triggered: set[asyncio.Task] = set()
        self._refreshing = False
        self._rerun = False
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Подписка, запуск опроса и первое обновление"""
        if self._running:
            return
        self._running = True

        if self.listener is not None:
            self._subscription = self.listener.subscribe(
                {TABLE_PAYMENT_RECORDS, TABLE_USER_PACKAGES},
                self.user_id,
                self._on_change
            )
        self._poll_task = asyncio.create_task(self._poll_loop())
        logger.info(f"🔄 Синхронизация членства запущена (user_id={self.user_id})")

        await self.refresh("start")

    def stop(self) -> None:
        """Отписка и остановка таймера. Синхронно, ничего не остается висеть"""
        if not self._running:
            return
        self._running = False

        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None

        for task in list(self._triggered):
            task.cancel()
        self._triggered.clear()

        logger.info(f"🛑 Синхронизация членства остановлена (user_id={self.user_id})")

    def request_refresh(self, reason: str = "manual") -> Optional[asyncio.Task]:
        """Запланировать обновление, не дожидаясь опроса"""
        if not self._running:
            return None
        task = asyncio.create_task(self.refresh(reason))
        self._triggered.add(task)
        task.add_done_callback(self._triggered.discard)
        return task

    def on_focus(self) -> Optional[asyncio.Task]:
        """Экран снова в фокусе"""
        return self.request_refresh("focus")

    def _on_change(self, table: str, event: str, payload: dict) -> None:
        logger.debug(f"Изменение {table}/{event} для user_id={self.user_id}")
        self.request_refresh(f"{table}:{event}")

    async def refresh(self, reason: str = "manual") -> Optional[MembershipSnapshot]:
        """
        Перечитывает данные и передает снимок экрану

        Если обновление уже идет, вызов только отмечает, что после него
        нужен еще один проход, и сразу возвращает None.
        """
        if not self._running:
            return None
        if self._refreshing:
            self._rerun = True
            return None

        self._refreshing = True
        try:
            while True:
                self._rerun = False
                try:
                    snapshot = await self.loader(self.user_id)
                except Exception as e:
                    logger.error(f"Ошибка обновления членства ({reason}): {e}")
                    break

                if not self._running:
                    break
                self.snapshot = snapshot
                try:
                    await self.on_update(snapshot)
                except Exception as e:
                    logger.error(f"Ошибка отображения снимка членства: {e}")

                if not self._rerun or not self._running:
                    break
                reason = "coalesced"
        finally:
            self._refreshing = False

        return self.snapshot

    async def _poll_loop(self) -> None:
        try:
            while True:
                try:
                    await asyncio.sleep(self.poll_interval)
                    await self.refresh("poll")

                except asyncio.CancelledError:
                    raise

                except Exception as e:
                    logger.error(f"Ошибка в опросе членства: {e}")
                    # Продолжаем работу даже после ошибки

        except asyncio.CancelledError:
            logger.debug(f"Опрос членства завершен (user_id={self.user_id})")
            raise
