"""Outbound notifications: the operator's Telegram chat, customer email and
the event bus.

The clients raise on failure. ``Notifier`` is what the rest of the service
talks to: it never raises, a failed delivery is only logged.
"""

import logging
from typing import List, Optional, Sequence, Tuple

import requests

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"
RESEND_API_URL = "https://api.resend.com/emails"

# Rows of (button text, callback data).
Buttons = Sequence[Sequence[Tuple[str, str]]]


class NotificationError(Exception):
    pass


class TelegramClient:
    """Minimal Telegram Bot API client."""

    def __init__(self, bot_token: str, chat_id: Optional[str] = None, http=None, timeout: float = 10):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.http = http or requests.Session()
        self.timeout = timeout

    def _call(self, method: str, payload: Optional[dict] = None) -> dict:
        response = self.http.post(
            f"{TELEGRAM_API_URL}/bot{self.bot_token}/{method}",
            json=payload or {},
            timeout=self.timeout,
        )
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not response.ok or not data.get("ok"):
            raise NotificationError(
                f"Telegram {method} failed ({response.status_code}): {data.get('description', response.text)}"
            )
        return data

    def send_message(self, text: str, buttons: Optional[Buttons] = None, chat_id: Optional[str] = None) -> dict:
        target = chat_id or self.chat_id
        if not target:
            raise NotificationError("TELEGRAM_CHAT_ID is not set")
        payload = {"chat_id": target, "text": text, "parse_mode": "HTML"}
        if buttons:
            payload["reply_markup"] = {
                "inline_keyboard": [
                    [{"text": label, "callback_data": data} for label, data in row] for row in buttons
                ]
            }
        return self._call("sendMessage", payload)

    def answer_callback_query(self, callback_query_id: str, text: str) -> dict:
        return self._call("answerCallbackQuery", {"callback_query_id": callback_query_id, "text": text})

    def set_webhook(self, url: str) -> dict:
        return self._call("setWebhook", {"url": url})


class EmailClient:
    """Sends transactional email through the Resend HTTP API."""

    def __init__(self, api_key: str, from_address: str, http=None, timeout: float = 10):
        self.api_key = api_key
        self.from_address = from_address
        self.http = http or requests.Session()
        self.timeout = timeout

    def send(self, to: str, subject: str, html: str) -> str:
        response = self.http.post(
            RESEND_API_URL,
            json={"from": self.from_address, "to": [to], "subject": subject, "html": html},
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
        )
        if not response.ok:
            raise NotificationError(f"Resend API error ({response.status_code}): {response.text}")
        return response.json().get("id", "")


class Notifier:
    """Fire-and-forget facade over the notification clients."""

    def __init__(self, telegram: Optional[TelegramClient] = None, email: Optional[EmailClient] = None, events=None):
        self.telegram_client = telegram
        self.email_client = email
        self.events = events

    def telegram(self, text: str, buttons: Optional[Buttons] = None) -> bool:
        if self.telegram_client is None:
            logger.warning("Telegram is not configured, notification skipped")
            return False
        try:
            self.telegram_client.send_message(text, buttons=buttons)
        except Exception as e:
            logger.warning("Failed to send Telegram notification: %s", e)
            return False
        return True

    def answer_callback(self, callback_query_id: Optional[str], text: str) -> bool:
        if self.telegram_client is None or not callback_query_id:
            return False
        try:
            self.telegram_client.answer_callback_query(callback_query_id, text)
        except Exception as e:
            logger.warning("Failed to answer Telegram callback %s: %s", callback_query_id, e)
            return False
        return True

    def email(self, to: Optional[str], subject: str, html: str) -> bool:
        if self.email_client is None:
            logger.warning("Email is not configured, notification skipped")
            return False
        if not to:
            logger.warning("Recipient email is not provided, notification skipped")
            return False
        try:
            message_id = self.email_client.send(to, subject, html)
        except Exception as e:
            logger.warning("Failed to send email to %s: %s", to, e)
            return False
        logger.info("Email %r sent to %s (id=%s)", subject, to, message_id)
        return True

    def event(self, routing_key: str, payload: dict) -> bool:
        if self.events is None:
            return False
        try:
            self.events.publish(routing_key, payload)
        except Exception as e:
            logger.warning("Failed to publish event %s: %s", routing_key, e)
            return False
        return True


def build_notifier(settings) -> Notifier:
    """Wires up whichever clients the settings configure."""
    from .messaging.producer import EventPublisher

    telegram = None
    if settings.telegram_bot_token:
        telegram = TelegramClient(settings.telegram_bot_token, settings.telegram_chat_id)
    else:
        logger.warning("TELEGRAM_BOT_TOKEN is not set, Telegram notifications are disabled")

    email = None
    if settings.resend_api_key and settings.email_from:
        email = EmailClient(settings.resend_api_key, settings.email_from)
    else:
        logger.warning("RESEND_API_KEY or EMAIL_FROM is not set, email notifications are disabled")

    events = None
    if settings.rabbitmq_host:
        events = EventPublisher(host=settings.rabbitmq_host)

    return Notifier(telegram=telegram, email=email, events=events)


def operator_buttons(order_id: int) -> List[List[Tuple[str, str]]]:
    """Inline buttons the operator uses to settle an order by hand."""
    return [[("✅ Оплачено", f"success:{order_id}"), ("❌ Отклонить", f"declined:{order_id}")]]
