import os
import logging
from typing import Optional
from pydantic import BaseModel, Field, field_validator
from dotenv import load_dotenv

from membership.constants import ERROR_REDIRECT_DELAY_SECONDS, SYNC_POLL_INTERVAL_SECONDS
from membership.errors import ConfigError

# Загружаем переменные из .env файла (для локального запуска)
load_dotenv()


class CheckoutSettings(BaseModel):
    """Настройки, без которых оплата невозможна"""

    client_id: str = Field(..., description="PayPal client ID")
    api_base_url: str = Field(..., description="Base URL of the trusted payment functions")
    public_base_url: str = Field(default="http://localhost:8080", description="URL the provider redirects back to")

    @field_validator('api_base_url', 'public_base_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class Config(BaseModel):
    """Конфигурация бота с валидацией"""

    telegram_bot_token: str = Field(..., description="Telegram Bot API Token")
    database_url: str = Field(..., description="PostgreSQL connection URL")

    # PayPal / доверенные функции. Отсутствие не роняет бота, а отключает оплату
    paypal_client_id: Optional[str] = Field(default=None, description="PayPal client ID")
    api_base_url: Optional[str] = Field(default=None, description="Trusted functions base URL")
    public_base_url: str = Field(default="http://localhost:8080", description="Public URL of the redirect server")

    webhook_host: str = Field(default="0.0.0.0", description="Redirect server bind host")
    webhook_port: int = Field(default=8080, description="Redirect server bind port")

    sync_poll_interval: float = Field(default=SYNC_POLL_INTERVAL_SECONDS, gt=0)
    error_redirect_delay: float = Field(default=ERROR_REDIRECT_DELAY_SECONDS, ge=0)

    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator('paypal_client_id', 'api_base_url', mode='before')
    @classmethod
    def empty_to_none(cls, v):
        """Пустая строка в .env считается отсутствующим значением"""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def checkout_settings(self) -> CheckoutSettings:
        """Возвращает настройки оплаты или ConfigError, если их нет"""
        missing = []
        if not self.paypal_client_id:
            missing.append("PAYPAL_CLIENT_ID")
        if not self.api_base_url:
            missing.append("API_BASE_URL")
        if missing:
            raise ConfigError(f"Оплата недоступна: не заданы {', '.join(missing)}")

        return CheckoutSettings(
            client_id=self.paypal_client_id,
            api_base_url=self.api_base_url,
            public_base_url=self.public_base_url,
        )

    @classmethod
    def from_env(cls) -> "Config":
        """Создает конфиг из переменных окружения с валидацией"""
        telegram_token = os.getenv("TELEGRAM_BOT_TOKEN")
        db_url = os.getenv("DATABASE_URL")

        if not telegram_token:
            raise ValueError("TELEGRAM_BOT_TOKEN не установлен")
        if not db_url:
            raise ValueError("DATABASE_URL не установлен")

        return cls(
            telegram_bot_token=telegram_token,
            database_url=db_url,
            paypal_client_id=os.getenv("PAYPAL_CLIENT_ID"),
            api_base_url=os.getenv("API_BASE_URL"),
            public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:8080"),
            webhook_host=os.getenv("WEBHOOK_HOST", "0.0.0.0"),
            webhook_port=int(os.getenv("WEBHOOK_PORT", "8080")),
            sync_poll_interval=float(os.getenv("SYNC_POLL_INTERVAL", SYNC_POLL_INTERVAL_SECONDS)),
            error_redirect_delay=float(os.getenv("ERROR_REDIRECT_DELAY", ERROR_REDIRECT_DELAY_SECONDS)),
            log_level=os.getenv("LOG_LEVEL", "INFO")
        )


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Настраивает логирование для приложения"""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    return logging.getLogger(__name__)
