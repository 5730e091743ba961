"""Оркестрация сессии оплаты: создание, подтверждение, отмена, ошибка"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from membership.clients.checkout_api import CheckoutApiClient
from membership.constants import ERROR_REDIRECT_DELAY_SECONDS, GENERIC_PAYMENT_ERROR
from membership.errors import CheckoutError, ConfigError, ErrorCode, MembershipError
from membership.models.session import PaymentSession, SessionState

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Awaitable[Optional[str]]]
RedirectCallback = Callable[[PaymentSession], Awaitable[None]]


class CheckoutOrchestrator:
    """
    Сессия оплаты одного экрана

    Экземпляр принадлежит экрану, который его создал, и держит не больше
    одной живой сессии. Автоматических повторов нет: после отмены или ошибки
    нужен новый initiate().
    """

    def __init__(
        self,
        api: Optional[CheckoutApiClient],
        token_provider: TokenProvider,
        on_completed: Optional[Callable[[], Any]] = None,
        on_redirect: Optional[RedirectCallback] = None,
        error_redirect_delay: float = ERROR_REDIRECT_DELAY_SECONDS
    ):
        self.api = api
        self.token_provider = token_provider
        self.on_completed = on_completed
        self.on_redirect = on_redirect
        self.error_redirect_delay = error_redirect_delay
        self.session: Optional[PaymentSession] = None
        self.redirect_task: Optional[asyncio.Task] = None
        self._closed = False

    def _require_api(self) -> CheckoutApiClient:
        if self.api is None:
            raise ConfigError()
        return self.api

    async def _require_token(self) -> str:
        token = await self.token_provider()
        if not token:
            raise CheckoutError(ErrorCode.AUTH_REQUIRED)
        return token

    async def initiate(self, package_id: str) -> PaymentSession:
        """
        Создает заказ у провайдера

        Сумму считает сервер по ID тарифа. Живая сессия этого экрана
        перед созданием новой отменяется.

        Raises:
            ConfigError: не настроен провайдер (сеть не трогаем)
            CheckoutError: AUTH_REQUIRED, NETWORK_ERROR или PROVIDER_REJECTED
        """
        api = self._require_api()

        if self.session is not None and self.session.is_live:
            logger.info(f"Новая оплата поверх живой сессии {self.session.order_id}, отменяем старую")
            await self.finalize(self.session, SessionState.CANCELLED)

        token = await self._require_token()
        created = await api.create_checkout(token, package_id)

        self.session = PaymentSession(
            order_id=created['order_id'],
            payment_id=created['payment_id'],
            package_id=package_id,
            package_name=created['package_name'],
            amount=created['amount'],
            approval_url=created['approval_url'],
        )
        logger.info(
            f"Создан заказ {self.session.order_id} (платеж {self.session.payment_id}, "
            f"{package_id}, {self.session.amount}$)"
        )
        return self.session

    async def on_approve(self, order_id: str) -> Optional[PaymentSession]:
        """Покупатель одобрил заказ у провайдера: подтверждаем оплату"""
        session = self.session
        if session is None or session.order_id != order_id:
            logger.warning(f"Одобрение для чужого или устаревшего заказа {order_id}, пропускаем")
            return None
        if session.state != SessionState.CREATED:
            logger.warning(f"Повторное одобрение заказа {order_id} в состоянии {session.state.value}")
            return session

        session.transition(SessionState.CAPTURING)

        try:
            api = self._require_api()
            token = await self._require_token()
            await api.capture_payment(token, session.order_id, session.payment_id)
        except MembershipError as e:
            await self._fail(session, e.message)
            return session
        except Exception as e:
            logger.error(f"Ошибка подтверждения заказа {order_id}: {e}")
            await self._fail(session, GENERIC_PAYMENT_ERROR)
            return session

        if session.is_terminal:
            # Экран закрылся, пока шло подтверждение. Итог покажет синхронизация
            logger.warning(f"Заказ {order_id} подтвержден после завершения сессии ({session.state.value})")
        else:
            session.transition(SessionState.COMPLETED)
            logger.info(f"💰 Оплата заказа {order_id} подтверждена")

        self._signal_completed()
        return session

    async def on_cancel(self) -> Optional[PaymentSession]:
        """Покупатель отменил оплату"""
        session = self.session
        if session is None:
            return None
        if session.is_terminal:
            return session
        await self.finalize(session, SessionState.CANCELLED)
        logger.info(f"Оплата заказа {session.order_id} отменена пользователем")
        await self._redirect(session)
        return session

    async def on_error(self, err: Any = None) -> Optional[PaymentSession]:
        """Провайдер сообщил об ошибке на интерактивном шаге"""
        session = self.session
        if session is None:
            return None
        if session.is_terminal:
            return session
        logger.error(f"Провайдер сообщил об ошибке по заказу {session.order_id}: {err}")
        await self._fail(session, GENERIC_PAYMENT_ERROR)
        return session

    async def close(self) -> None:
        """Экран закрыт: незавершенная сессия отменяется, переходов больше нет"""
        self._closed = True
        if self.redirect_task is not None and not self.redirect_task.done():
            self.redirect_task.cancel()
        self.redirect_task = None

        session = self.session
        if session is not None and session.is_live:
            logger.info(f"Экран закрыт при живой сессии {session.order_id}, отменяем")
            await self.finalize(session, SessionState.CANCELLED)

    async def finalize(self, session: PaymentSession, state: SessionState) -> None:
        """
        Компенсирующая отмена

        Общая точка для отмены, ошибки и закрытия экрана. Запрос cancel
        уходит не больше одного раза за сессию, его сбои только логируются,
        локальное состояние переходит в любом случае.
        """
        if session.claim_cancellation():
            await self._send_cancel(session)

        if not session.is_terminal:
            session.transition(state)

    async def _send_cancel(self, session: PaymentSession) -> None:
        if self.api is None:
            return
        try:
            token = await self.token_provider()
        except Exception as e:
            logger.warning(f"Не удалось получить токен для отмены {session.payment_id}: {e}")
            return
        if not token:
            logger.warning(f"Нет токена, отмена платежа {session.payment_id} пропущена")
            return

        try:
            await self.api.cancel_payment(token, session.payment_id)
            logger.info(f"🗑️ Платеж {session.payment_id} отменен у провайдера")
        except Exception as e:
            logger.warning(f"Отмена платежа {session.payment_id} не удалась: {e}")

    async def _fail(self, session: PaymentSession, message: Optional[str]) -> None:
        was_live = session.is_live
        await self.finalize(session, SessionState.FAILED)
        # Пока шла отмена, экран могли закрыть: тогда сессия уже CANCELLED
        if not was_live or session.state != SessionState.FAILED or self._closed:
            return
        session.error = message or GENERIC_PAYMENT_ERROR
        self._schedule_redirect(session, self.error_redirect_delay)

    def _signal_completed(self) -> None:
        if self.on_completed is None:
            return
        try:
            self.on_completed()
        except Exception as e:
            logger.error(f"Ошибка при запросе обновления после оплаты: {e}")

    def _schedule_redirect(self, session: PaymentSession, delay: float) -> None:
        if self.on_redirect is None or self._closed:
            return
        if self.redirect_task is not None and not self.redirect_task.done():
            self.redirect_task.cancel()
        self.redirect_task = asyncio.create_task(self._redirect_later(session, delay))

    async def _redirect_later(self, session: PaymentSession, delay: float) -> None:
        await asyncio.sleep(delay)
        await self._redirect(session)

    async def _redirect(self, session: PaymentSession) -> None:
        if self.on_redirect is None or self._closed:
            return
        try:
            await self.on_redirect(session)
        except Exception as e:
            logger.error(f"Ошибка перехода к истории платежей: {e}")
