"""Экран членства в чате: синхронизация + оплата с общим временем жизни"""
import logging
from functools import partial
from typing import Optional

from aiogram import Bot
from aiogram.exceptions import TelegramBadRequest
from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from membership.clients.checkout_api import CheckoutApiClient
from membership.constants import ERROR_REDIRECT_DELAY_SECONDS, SYNC_POLL_INTERVAL_SECONDS
from membership.db.listener import ChangeListener
from membership.db.repositories.accounts import AccountLinkRepository
from membership.models.membership import Classification, MembershipSnapshot
from membership.models.session import PaymentSession
from membership.services.checkout import CheckoutOrchestrator
from membership.services.membership import MembershipService
from membership.services.reconciliation import ReconciliationSync
from membership.utils.text import format_price, render_history, render_overview, render_session, split_message

logger = logging.getLogger(__name__)


def overview_keyboard(snapshot: MembershipSnapshot) -> InlineKeyboardMarkup:
    """Кнопки оплаты для доступных тарифов, жалобы для ожидающих"""
    rows = []
    for offer in snapshot['offers']:
        pkg = offer['package']
        eligibility = offer['eligibility']
        if eligibility.classification == Classification.PENDING:
            rows.append([InlineKeyboardButton(
                text=f"📝 Жалоба: {pkg['name']}", callback_data=f"complain:{pkg['id']}"
            )])
        elif eligibility.is_selectable and not snapshot['checkout_blocked']:
            rows.append([InlineKeyboardButton(
                text=f"{pkg['name']} — {format_price(eligibility.payable_amount)}",
                callback_data=f"pay:{pkg['id']}"
            )])
    rows.append([
        InlineKeyboardButton(text="🔄 Обновить", callback_data="refresh"),
        InlineKeyboardButton(text="🧾 Платежи", callback_data="payments"),
    ])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def session_keyboard(session: PaymentSession) -> Optional[InlineKeyboardMarkup]:
    if not session.is_live:
        return None
    rows = []
    if session.approval_url:
        rows.append([InlineKeyboardButton(text="💳 Оплатить", url=session.approval_url)])
    rows.append([InlineKeyboardButton(text="❌ Отменить", callback_data="cancel")])
    return InlineKeyboardMarkup(inline_keyboard=rows)


class MembershipScreen:
    """
    Экран членства одного чата

    Владеет одной синхронизацией и одним оркестратором оплаты.
    close() освобождает оба: подписку и таймер сразу, живую сессию
    через компенсирующую отмену.
    """

    def __init__(
        self,
        chat_id: int,
        user_id: str,
        bot: Bot,
        membership: MembershipService,
        checkout: CheckoutOrchestrator,
        listener: Optional[ChangeListener] = None,
        poll_interval: float = SYNC_POLL_INTERVAL_SECONDS
    ):
        self.chat_id = chat_id
        self.user_id = user_id
        self.bot = bot
        self.message_id: Optional[int] = None
        self._last_text: Optional[str] = None

        self.sync = ReconciliationSync(
            user_id,
            membership.load_snapshot,
            self.render,
            listener=listener,
            poll_interval=poll_interval
        )
        self.checkout = checkout
        self.checkout.on_completed = self.sync.request_refresh
        self.checkout.on_redirect = self.show_payments

    async def start(self) -> None:
        await self.sync.start()

    async def close(self) -> None:
        self.sync.stop()
        await self.checkout.close()

    async def render(self, snapshot: MembershipSnapshot) -> None:
        """Показывает или обновляет сообщение с тарифами"""
        text = render_overview(snapshot)
        keyboard = overview_keyboard(snapshot)

        if self.message_id is not None:
            if text == self._last_text:
                return
            try:
                await self.bot.edit_message_text(
                    text, chat_id=self.chat_id, message_id=self.message_id,
                    reply_markup=keyboard, parse_mode="HTML"
                )
                self._last_text = text
                return
            except TelegramBadRequest as e:
                # Сообщение удалено или устарело: отправим новое
                logger.warning(f"Не удалось обновить экран в чате {self.chat_id}: {e}")

        message = await self.bot.send_message(self.chat_id, text, reply_markup=keyboard, parse_mode="HTML")
        self.message_id = message.message_id
        self._last_text = text

    async def show_session(self, session: PaymentSession) -> None:
        await self.bot.send_message(
            self.chat_id,
            render_session(session),
            reply_markup=session_keyboard(session),
            parse_mode="HTML"
        )

    async def show_payments(self, session: Optional[PaymentSession] = None) -> None:
        """Переход к истории платежей (после отмены или ошибки оплаты)"""
        snapshot = self.sync.snapshot
        if snapshot is None:
            snapshot = await self.sync.refresh("payments")
        records = snapshot['records'] if snapshot else []
        for chunk in split_message(render_history(records)):
            await self.bot.send_message(self.chat_id, chunk, parse_mode="HTML")


class ScreenRegistry:
    """Не больше одного экрана на чат. Новый экран закрывает старый"""

    def __init__(
        self,
        bot: Bot,
        membership: MembershipService,
        accounts: AccountLinkRepository,
        api: Optional[CheckoutApiClient],
        listener: Optional[ChangeListener] = None,
        poll_interval: float = SYNC_POLL_INTERVAL_SECONDS,
        error_redirect_delay: float = ERROR_REDIRECT_DELAY_SECONDS
    ):
        self.bot = bot
        self.membership = membership
        self.accounts = accounts
        self.api = api
        self.listener = listener
        self.poll_interval = poll_interval
        self.error_redirect_delay = error_redirect_delay
        self._screens: dict[int, MembershipScreen] = {}

    def __len__(self) -> int:
        return len(self._screens)

    async def open(self, chat_id: int, telegram_user_id: int, user_id: str) -> MembershipScreen:
        await self.close(chat_id)

        checkout = CheckoutOrchestrator(
            self.api,
            partial(self.accounts.get_access_token, telegram_user_id),
            error_redirect_delay=self.error_redirect_delay
        )
        screen = MembershipScreen(
            chat_id, user_id, self.bot, self.membership, checkout,
            listener=self.listener, poll_interval=self.poll_interval
        )
        self._screens[chat_id] = screen
        await screen.start()
        return screen

    def get(self, chat_id: int) -> Optional[MembershipScreen]:
        return self._screens.get(chat_id)

    def find_by_order(self, order_id: str) -> Optional[MembershipScreen]:
        """Экран, которому принадлежит заказ провайдера"""
        for screen in self._screens.values():
            session = screen.checkout.session
            if session is not None and session.order_id == order_id:
                return screen
        return None

    async def close(self, chat_id: int) -> None:
        screen = self._screens.pop(chat_id, None)
        if screen is not None:
            await screen.close()

    async def close_all(self) -> None:
        for chat_id in list(self._screens):
            try:
                await self.close(chat_id)
            except Exception as e:
                logger.error(f"Ошибка закрытия экрана в чате {chat_id}: {e}")
