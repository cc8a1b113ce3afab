import asyncio
import logging
import time

import requests

logger = logging.getLogger("LiqbotAlerts")

ERROR_ALERT_COOLDOWN = 300  # seconds


class TelegramAlerts:
    """Fire-and-forget Telegram notifications. Disabled when token or chat id is missing."""

    def __init__(self, bot_token=None, chat_id=None, cooldown=ERROR_ALERT_COOLDOWN):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.cooldown = cooldown
        self._last_errors = {}

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    def _post(self, msg):
        url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"
        payload = {"chat_id": self.chat_id, "text": msg, "parse_mode": "HTML"}
        response = requests.post(url, json=payload, timeout=10)
        response.raise_for_status()

    async def send(self, msg, is_error=False):
        if not self.enabled:
            return

        # Anti-spam: skip duplicate error alerts within the cooldown
        if is_error:
            error_key = msg[:100]
            now = time.time()
            if error_key in self._last_errors and (now - self._last_errors[error_key]) < self.cooldown:
                return
            self._last_errors[error_key] = now

        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._post, msg)
        except Exception as e:
            logger.warning(f"⚠️ Telegram alert failed: {e}")
