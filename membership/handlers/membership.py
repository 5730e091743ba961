import logging
from typing import Optional

from aiogram import F, Router
from aiogram.filters import Command, CommandObject
from aiogram.types import CallbackQuery, Message

from membership.db.repositories.accounts import AccountLinkRepository
from membership.errors import ErrorCode, MembershipError
from membership.services.complaints import ComplaintService
from membership.services.screens import MembershipScreen, ScreenRegistry

logger = logging.getLogger(__name__)

membership_router = Router()

NOT_LINKED_TEXT = (
    "❌ Аккаунт не привязан.\n\n"
    "Войдите в приложение и привяжите Telegram в настройках профиля."
)
COMPLAINT_USAGE = (
    "📝 Использование: /complaint &lt;тариф&gt; &lt;текст&gt;\n\n"
    "Пример: /complaint golden_premium Деньги списаны, тариф не активирован"
)


async def _open_screen(
    chat_id: int,
    telegram_user_id: int,
    screens: ScreenRegistry,
    accounts: AccountLinkRepository
) -> Optional[MembershipScreen]:
    user_id = await accounts.get_user_id(telegram_user_id)
    if not user_id:
        return None
    return await screens.open(chat_id, telegram_user_id, user_id)


async def _current_screen(
    callback: CallbackQuery,
    screens: ScreenRegistry,
    accounts: AccountLinkRepository
) -> Optional[MembershipScreen]:
    """Экран чата; если его нет (например, после перезапуска), открываем заново"""
    chat_id = callback.message.chat.id
    screen = screens.get(chat_id)
    if screen is None:
        screen = await _open_screen(chat_id, callback.from_user.id, screens, accounts)
    return screen


@membership_router.message(Command("start"))
async def cmd_start(message: Message):
    """Команда /start - приветствие"""
    await message.answer(
        "👋 Привет! Здесь можно управлять членством.\n\n"
        "• /membership - тарифы и оплата\n"
        "• /payments - история платежей\n"
        "• /complaint &lt;тариф&gt; &lt;текст&gt; - жалоба на платеж",
        parse_mode="HTML"
    )


@membership_router.message(Command("membership"))
async def cmd_membership(message: Message, screens: ScreenRegistry, accounts: AccountLinkRepository):
    """Открывает экран тарифов (предыдущий экран чата закрывается)"""
    if not message.from_user:
        return

    try:
        screen = await _open_screen(message.chat.id, message.from_user.id, screens, accounts)
    except Exception as e:
        logger.error(f"Ошибка открытия экрана членства: {e}")
        await message.answer("❌ Не удалось загрузить тарифы. Попробуйте позже.")
        return

    if screen is None:
        await message.answer(NOT_LINKED_TEXT)


@membership_router.message(Command("payments"))
async def cmd_payments(message: Message, screens: ScreenRegistry, accounts: AccountLinkRepository):
    """История платежей"""
    if not message.from_user:
        return

    screen = screens.get(message.chat.id)
    if screen is None:
        screen = await _open_screen(message.chat.id, message.from_user.id, screens, accounts)
    if screen is None:
        await message.answer(NOT_LINKED_TEXT)
        return
    await screen.show_payments()


@membership_router.message(Command("complaint"))
async def cmd_complaint(
    message: Message,
    command: CommandObject,
    screens: ScreenRegistry,
    accounts: AccountLinkRepository,
    complaints: ComplaintService
):
    """Жалоба на последний платеж по тарифу"""
    if not message.from_user:
        return

    parts = (command.args or "").split(maxsplit=1)
    if len(parts) != 2:
        await message.answer(COMPLAINT_USAGE, parse_mode="HTML")
        return
    package_type, text = parts

    user_id = await accounts.get_user_id(message.from_user.id)
    if not user_id:
        await message.answer(NOT_LINKED_TEXT)
        return

    try:
        await complaints.attach(user_id, package_type, text)
    except ValueError:
        await message.answer(COMPLAINT_USAGE, parse_mode="HTML")
        return
    except MembershipError as e:
        await message.answer(f"❌ {e.message}")
        return
    except Exception as e:
        logger.error(f"Ошибка сохранения жалобы: {e}")
        await message.answer("❌ Не удалось отправить жалобу. Попробуйте позже.")
        return

    await message.answer("✅ Жалоба отправлена. Поддержка свяжется с вами.")
    screen = screens.get(message.chat.id)
    if screen is not None:
        screen.sync.request_refresh("complaint")


@membership_router.callback_query(F.data == "refresh")
async def on_refresh(callback: CallbackQuery, screens: ScreenRegistry, accounts: AccountLinkRepository):
    """Экран снова в фокусе"""
    await callback.answer()
    screen = screens.get(callback.message.chat.id)
    if screen is not None:
        screen.sync.on_focus()
        return
    if await _current_screen(callback, screens, accounts) is None:
        await callback.message.answer(NOT_LINKED_TEXT)


@membership_router.callback_query(F.data == "payments")
async def on_payments(callback: CallbackQuery, screens: ScreenRegistry, accounts: AccountLinkRepository):
    await callback.answer()
    screen = await _current_screen(callback, screens, accounts)
    if screen is None:
        await callback.message.answer(NOT_LINKED_TEXT)
        return
    await screen.show_payments()


@membership_router.callback_query(F.data.startswith("pay:"))
async def on_pay(callback: CallbackQuery, screens: ScreenRegistry, accounts: AccountLinkRepository):
    """Выбор тарифа: создаем заказ у провайдера"""
    await callback.answer()
    package_id = callback.data.split(":", 1)[1]

    screen = await _current_screen(callback, screens, accounts)
    if screen is None:
        await callback.message.answer(NOT_LINKED_TEXT)
        return

    snapshot = screen.sync.snapshot
    if snapshot is not None:
        offer = next((o for o in snapshot['offers'] if o['package']['id'] == package_id), None)
        if offer is None or not offer['eligibility'].is_selectable or snapshot['checkout_blocked']:
            await callback.message.answer("❌ Этот тариф сейчас недоступен для оплаты.")
            return

    try:
        session = await screen.checkout.initiate(package_id)
    except MembershipError as e:
        if e.code == ErrorCode.CONFIG_MISSING:
            logger.error(f"Оплата недоступна: {e.message}")
        await callback.message.answer(f"❌ {e.message}")
        return

    await screen.show_session(session)


@membership_router.callback_query(F.data == "cancel")
async def on_cancel(callback: CallbackQuery, screens: ScreenRegistry):
    """Пользователь отменил оплату в чате"""
    await callback.answer()
    screen = screens.get(callback.message.chat.id)
    if screen is None:
        return
    # После отмены оркестратор сам переводит к истории платежей
    await screen.checkout.on_cancel()


@membership_router.callback_query(F.data.startswith("complain:"))
async def on_complain(callback: CallbackQuery):
    await callback.answer()
    package_id = callback.data.split(":", 1)[1]
    await callback.message.answer(
        f"📝 Опишите проблему одной командой:\n"
        f"<code>/complaint {package_id} текст жалобы</code>",
        parse_mode="HTML"
    )
