"""Безопасный разбор значений из базы и JSON"""
import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from membership.constants import ZERO
from membership.errors import ErrorCode

logger = logging.getLogger(__name__)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Приводит время к aware datetime в UTC

    Пустое или нераспознанное значение дает None, исключений нет:
    вызывающий код сам решает, на что откатиться.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        text = value.strip()
        # fromisoformat до 3.11 не понимает суффикс Z
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            logger.warning(f"[{ErrorCode.MALFORMED_DATA.value}] Не удалось разобрать время: {value!r}")
            return None
    else:
        logger.warning(f"[{ErrorCode.MALFORMED_DATA.value}] Неожиданный тип времени: {type(value).__name__}")
        return None

    # БД возвращает naive datetime (UTC)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    try:
        return dt.astimezone(timezone.utc)
    except OverflowError:
        # Смещение выводит дату за пределы диапазона datetime
        logger.warning(f"[{ErrorCode.MALFORMED_DATA.value}] Время вне допустимого диапазона: {value!r}")
        return None


def to_decimal(value: Any) -> Decimal:
    """Цена или сумма в Decimal, некорректное значение превращается в 0"""
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        return value if value.is_finite() else ZERO
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        logger.warning(f"[{ErrorCode.MALFORMED_DATA.value}] Некорректная цена: {value!r}")
        return ZERO
    return result if result.is_finite() else ZERO
