import logging
import os
from dataclasses import dataclass
from typing import Optional


def _optional(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


@dataclass
class Settings:
    """Service configuration, read once from the environment."""

    database_url: str = "sqlite:///./shop.db"

    # Alfa-Bank payment gateway.
    payment_url: Optional[str] = None
    gateway_username: Optional[str] = None
    gateway_password: Optional[str] = None
    return_url: Optional[str] = None
    failure_url: Optional[str] = None
    gateway_order_offset: int = 100000

    # Client side pages the payment redirects end on.
    base_client_url: str = "http://localhost:3000"

    # Telegram operator chat.
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    telegram_webhook_url: Optional[str] = None

    # Resend transactional email.
    resend_api_key: Optional[str] = None
    email_from: Optional[str] = None

    # RabbitMQ event bus, disabled when no host is given.
    rabbitmq_host: Optional[str] = None

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            payment_url=_optional("PAYMENT_URL"),
            gateway_username=_optional("ALPHA_USERNAME"),
            gateway_password=_optional("ALPHA_PASSWORD"),
            return_url=_optional("RETURN_URL"),
            failure_url=_optional("FAILURE_URL"),
            gateway_order_offset=int(os.getenv("GATEWAY_ORDER_OFFSET", cls.gateway_order_offset)),
            base_client_url=os.getenv("BASE_CLIENT_URL", cls.base_client_url).rstrip("/"),
            telegram_bot_token=_optional("TELEGRAM_BOT_TOKEN"),
            telegram_chat_id=_optional("TELEGRAM_CHAT_ID"),
            telegram_webhook_url=_optional("TELEGRAM_WEBHOOK_URL"),
            resend_api_key=_optional("RESEND_API_KEY"),
            email_from=_optional("EMAIL_FROM"),
            rabbitmq_host=_optional("RABBITMQ_HOST"),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    """Installs one stream handler on the root logger."""
    root = logging.getLogger()
    if any(getattr(handler, "_shop_service", False) for handler in root.handlers):
        root.setLevel(level)
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
    handler._shop_service = True
    root.addHandler(handler)
    root.setLevel(level)
