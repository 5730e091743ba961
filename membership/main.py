import asyncio
import logging
from typing import Optional
from aiogram import Bot, Dispatcher
from aiohttp import web

from membership.config import Config, setup_logging
from membership.clients.checkout_api import CheckoutApiClient
from membership.db.pool import init_pool, close_pool
from membership.db.listener import ChangeListener
from membership.db.repositories.accounts import AccountLinkRepository
from membership.db.repositories.packages import EntitlementRepository, PackageRepository
from membership.db.repositories.payments import PaymentRepository
from membership.errors import ConfigError
from membership.handlers.membership import membership_router
from membership.services.complaints import ComplaintService
from membership.services.membership import MembershipService
from membership.services.screens import ScreenRegistry
from membership.webhook.paypal_webhook import create_webhook_app

logger = logging.getLogger(__name__)


async def main():
    """Главная функция запуска бота"""
    config = Config.from_env()
    setup_logging(config.log_level)
    logger.info("🚀 Запуск бота членства...")

    # Инициализация базы данных
    pool = await init_pool(config.database_url)
    listener = ChangeListener(config.database_url)
    await listener.start()

    # Клиент оплаты. Без настроек бот работает, но оплату не предлагает
    api: Optional[CheckoutApiClient] = None
    try:
        api = CheckoutApiClient(config.checkout_settings())
    except ConfigError as e:
        logger.error(f"⚠️ {e.message}")

    payments = PaymentRepository(pool)
    accounts = AccountLinkRepository(pool)
    membership = MembershipService(PackageRepository(pool), payments, EntitlementRepository(pool))

    # Создание бота и диспетчера
    bot = Bot(token=config.telegram_bot_token)
    screens = ScreenRegistry(
        bot,
        membership,
        accounts,
        api,
        listener=listener,
        poll_interval=config.sync_poll_interval,
        error_redirect_delay=config.error_redirect_delay
    )

    dp = Dispatcher()
    dp["screens"] = screens
    dp["accounts"] = accounts
    dp["complaints"] = ComplaintService(payments)
    dp.include_router(membership_router)

    # Сервер для возвратов покупателя от PayPal
    runner = web.AppRunner(create_webhook_app(screens))
    await runner.setup()
    site = web.TCPSite(runner, config.webhook_host, config.webhook_port)
    await site.start()

    logger.info(f"✅ Бот инициализирован, возвраты PayPal на {config.public_base_url}/membership")

    try:
        # Запуск long polling
        await dp.start_polling(bot, skip_updates=True)
    finally:
        # Очистка ресурсов: сначала экраны (отмена незавершенных оплат)
        await screens.close_all()
        await runner.cleanup()
        if api is not None:
            await api.close()
        await listener.stop()
        await close_pool()
        await bot.session.close()
        logger.info("👋 Бот остановлен")


if __name__ == "__main__":
    asyncio.run(main())
