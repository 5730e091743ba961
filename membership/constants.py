from datetime import datetime, timezone
from decimal import Decimal

# Статусы платежных записей
STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_CANCELLED = "cancelled"

# Типы событий в payment_details
EVENT_PURCHASE = "purchase"
EVENT_UPGRADE = "upgrade"

# Таблицы, за изменениями которых следит синхронизация
TABLE_PAYMENT_RECORDS = "payment_records"
TABLE_USER_PACKAGES = "user_packages"
CHANGE_EVENTS = frozenset({"INSERT", "UPDATE", "DELETE"})

# Канал PostgreSQL NOTIFY (см. schema.sql)
NOTIFY_CHANNEL = "membership_changes"

# Провайдер платежей и пути доверенных функций
PROVIDER_PAYPAL = "paypal"
CREATE_CHECKOUT_PATH = "secure-paypal-checkout"
CAPTURE_PAYMENT_PATH = "capture-paypal-payment"
CANCEL_PAYMENT_PATH = "cancel-paypal-payment"

# Тайминги
SYNC_POLL_INTERVAL_SECONDS = 15  # Резервный опрос на случай пропущенных уведомлений
ERROR_REDIRECT_DELAY_SECONDS = 3  # Пауза перед возвратом к истории платежей после ошибки
HTTP_TIMEOUT_SECONDS = 30

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
ZERO = Decimal("0")

# Сообщения по умолчанию
GENERIC_PAYMENT_ERROR = "Не удалось завершить оплату. Попробуйте ещё раз."
GENERIC_CANCEL_MESSAGE = "Оплата отменена."

MAX_MESSAGE_LENGTH = 4096  # Максимальная длина сообщения в Telegram
