from __future__ import annotations

import logging
from typing import Protocol

import httpx
from telegram import Bot
from telegram.error import TelegramError

from birthday_scheduler.errors import DeliveryFailure
from birthday_scheduler.settings import Settings

LOGGER = logging.getLogger(__name__)


class DeliveryTransport(Protocol):
    async def send(self, text: str) -> None: ...


class WebhookDelivery:
    """POSTs ``{"text": ...}`` to a fixed URL; any non-2xx status is a failure."""

    def __init__(
        self,
        url: str,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._url = url
        self._http = http_client
        self._timeout = timeout

    async def send(self, text: str) -> None:
        try:
            if self._http is not None:
                response = await self._http.post(self._url, json={"text": text}, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._url, json={"text": text})
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise DeliveryFailure(f"Webhook delivery to {self._url} failed: {exc}") from exc
        LOGGER.info("Delivered message to %s", self._url)


class TelegramDelivery:
    def __init__(self, *, bot: Bot, chat_id: int) -> None:
        self._bot = bot
        self._chat_id = chat_id

    async def send(self, text: str) -> None:
        try:
            async with self._bot:
                await self._bot.send_message(chat_id=self._chat_id, text=text)
        except TelegramError as exc:
            raise DeliveryFailure(f"Telegram delivery to chat {self._chat_id} failed: {exc}") from exc
        LOGGER.info("Delivered message to Telegram chat %s", self._chat_id)


def build_delivery(settings: Settings) -> DeliveryTransport:
    if settings.delivery_backend == "telegram":
        return TelegramDelivery(bot=Bot(settings.telegram_bot_token), chat_id=settings.telegram_chat_id)
    return WebhookDelivery(settings.delivery_url, timeout=settings.request_timeout_seconds)
