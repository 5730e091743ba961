"""Клиент доверенных функций оплаты (PayPal через бэкенд)"""
import asyncio
import logging
from decimal import Decimal
from typing import Any, Optional, TypedDict

import aiohttp

from membership.config import CheckoutSettings
from membership.constants import (
    CANCEL_PAYMENT_PATH,
    CAPTURE_PAYMENT_PATH,
    CREATE_CHECKOUT_PATH,
    HTTP_TIMEOUT_SECONDS,
)
from membership.errors import CheckoutError, ErrorCode
from membership.utils.parsing import to_decimal

logger = logging.getLogger(__name__)


class CheckoutResponse(TypedDict):
    """Ответ create_checkout. Сумму считает сервер, клиент ее не передает"""
    order_id: str
    payment_id: str
    package_name: str
    amount: Decimal
    approval_url: Optional[str]


class CheckoutApiClient:
    """Клиент для create / capture / cancel"""

    def __init__(
        self,
        settings: CheckoutSettings,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = HTTP_TIMEOUT_SECONDS
    ):
        self.settings = settings
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Закрывает HTTP-сессию, если клиент ее создал сам"""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _post(self, path: str, token: str, payload: dict) -> dict:
        """
        POST к доверенной функции с bearer-токеном

        Raises:
            CheckoutError(NETWORK_ERROR): транспортная ошибка или таймаут
            CheckoutError(PROVIDER_REJECTED): неуспешный ответ; сообщение
                сервера передается как есть
        """
        url = f"{self.settings.api_base_url}/{path}"
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            # По Origin сервер строит return_url / cancel_url для PayPal
            "Origin": self.settings.public_base_url,
        }

        try:
            async with self._get_session().post(url, json=payload, headers=headers) as resp:
                try:
                    data: Any = await resp.json(content_type=None)
                except ValueError:
                    data = None
                status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Сетевая ошибка при вызове {path}: {e}")
            raise CheckoutError(ErrorCode.NETWORK_ERROR) from e

        server_error = data.get("error") if isinstance(data, dict) else None
        if status >= 400 or server_error:
            logger.error(f"{path} вернул {status}: {server_error or 'без сообщения'}")
            raise CheckoutError(ErrorCode.PROVIDER_REJECTED, str(server_error) if server_error else None)

        return data if isinstance(data, dict) else {}

    async def create_checkout(self, token: str, package_id: str) -> CheckoutResponse:
        """Создает заказ. Передается только ID тарифа"""
        data = await self._post(CREATE_CHECKOUT_PATH, token, {"package_id": package_id})

        order_id = data.get("order_id")
        payment_id = data.get("payment_id")
        if not order_id or not payment_id:
            raise CheckoutError(ErrorCode.PROVIDER_REJECTED, "Сервер не вернул идентификаторы заказа")

        return {
            "order_id": str(order_id),
            "payment_id": str(payment_id),
            "package_name": str(data.get("package_name") or package_id),
            "amount": to_decimal(data.get("amount")),
            "approval_url": data.get("approval_url"),
        }

    async def capture_payment(self, token: str, order_id: str, payment_id: str) -> dict:
        """Подтверждает оплату после одобрения покупателем"""
        data = await self._post(
            CAPTURE_PAYMENT_PATH, token, {"order_id": order_id, "payment_id": payment_id}
        )
        if data.get("success") is False:
            raise CheckoutError(ErrorCode.PROVIDER_REJECTED, data.get("message"))
        return data

    async def cancel_payment(self, token: str, payment_id: str) -> None:
        """Отменяет платеж. Идемпотентно на стороне сервера"""
        await self._post(CANCEL_PAYMENT_PATH, token, {"payment_id": payment_id})
