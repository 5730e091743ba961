"""Ошибки ядра членства и оплаты"""
from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Классы ошибок, которые видит пользователь или лог"""
    CONFIG_MISSING = "config_missing"
    AUTH_REQUIRED = "auth_required"
    NETWORK_ERROR = "network_error"
    PROVIDER_REJECTED = "provider_rejected"
    NOT_FOUND = "not_found"
    MALFORMED_DATA = "malformed_data"


DEFAULT_MESSAGES = {
    ErrorCode.CONFIG_MISSING: "Оплата временно недоступна: платежный сервис не настроен.",
    ErrorCode.AUTH_REQUIRED: "Сессия не найдена. Войдите в приложение и привяжите аккаунт.",
    ErrorCode.NETWORK_ERROR: "Платежный сервис недоступен. Проверьте соединение.",
    ErrorCode.PROVIDER_REJECTED: "Платежный сервис отклонил запрос.",
    ErrorCode.NOT_FOUND: "Платеж для этого тарифа не найден.",
    ErrorCode.MALFORMED_DATA: "Некорректные данные платежа.",
}


class MembershipError(Exception):
    """Базовая ошибка с кодом и сообщением для пользователя"""

    def __init__(self, code: ErrorCode, message: Optional[str] = None):
        self.code = code
        self.message = message or DEFAULT_MESSAGES[code]
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code.value!r}, {self.message!r})"


class ConfigError(MembershipError):
    """Не заданы client id провайдера или базовый URL API"""

    def __init__(self, message: Optional[str] = None):
        super().__init__(ErrorCode.CONFIG_MISSING, message)


class CheckoutError(MembershipError):
    """Ошибка одного из удаленных вызовов оплаты"""
