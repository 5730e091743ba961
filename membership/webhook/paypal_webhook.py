"""Возвраты покупателя от PayPal после одобрения или отмены заказа"""
import logging
from aiohttp import web

from membership.models.session import SessionState
from membership.services.screens import ScreenRegistry

logger = logging.getLogger(__name__)

SCREENS_KEY = web.AppKey("screens", ScreenRegistry)

RESULT_PAGES = {
    SessionState.COMPLETED: "✅ Оплата прошла успешно! Вернитесь в Telegram.",
    SessionState.CANCELLED: "❌ Оплата отменена. Вернитесь в Telegram.",
    SessionState.FAILED: "❌ Оплата не прошла. Вернитесь в Telegram и попробуйте снова.",
}


def _page(text: str, status: int = 200) -> web.Response:
    return web.Response(text=text, status=status, content_type='text/html', charset='utf-8')


async def handle_return(request: web.Request) -> web.Response:
    """
    Обработчик return_url / cancel_url

    PayPal возвращает покупателя на один и тот же адрес:
    - token: ID заказа (order_id)
    - PayerID: есть только если покупатель одобрил оплату
    """
    order_id = request.query.get('token', '')
    payer_id = request.query.get('PayerID')

    logger.info(f"Возврат от PayPal: token={order_id}, одобрено={bool(payer_id)}")

    if not order_id:
        return _page("Неизвестный заказ", status=400)

    screen = request.app[SCREENS_KEY].find_by_order(order_id)
    if screen is None:
        logger.warning(f"Заказ {order_id} не принадлежит ни одному открытому экрану")
        return _page("Сессия оплаты устарела. Откройте /membership в Telegram.", status=404)

    if payer_id:
        session = await screen.checkout.on_approve(order_id)
    else:
        session = await screen.checkout.on_cancel()

    if session is None:
        return _page("Сессия оплаты устарела. Откройте /membership в Telegram.", status=404)

    try:
        await screen.show_session(session)
    except Exception as e:
        logger.error(f"Ошибка уведомления чата {screen.chat_id} о заказе {order_id}: {e}")

    return _page(RESULT_PAGES.get(session.state, "⏳ Оплата обрабатывается."))


async def handle_error(request: web.Request) -> web.Response:
    """Провайдер сообщил об ошибке на шаге оплаты"""
    order_id = request.query.get('token', '')
    message = request.query.get('message', '')

    screen = request.app[SCREENS_KEY].find_by_order(order_id) if order_id else None
    if screen is None:
        return _page("Сессия оплаты устарела.", status=404)

    session = await screen.checkout.on_error(message or None)
    if session is not None:
        try:
            await screen.show_session(session)
        except Exception as e:
            logger.error(f"Ошибка уведомления чата {screen.chat_id} о заказе {order_id}: {e}")

    return _page(RESULT_PAGES[SessionState.FAILED])


def create_webhook_app(screens: ScreenRegistry) -> web.Application:
    """Создает aiohttp приложение для возвратов от провайдера"""
    app = web.Application()
    app[SCREENS_KEY] = screens

    app.router.add_get('/membership', handle_return)
    app.router.add_get('/membership/error', handle_error)

    return app
