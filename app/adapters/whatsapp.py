"""
WhatsApp notification adapter backed by the WASender HTTP API.

POST {base_url}/send-message with {"to": <digits>, "text": <message>} and a
bearer API key.
"""

from __future__ import annotations

import re
from typing import Optional

import requests

from app.adapters.base import BaseNotificationAdapter, NotificationResult
from app.infra.logging_config import get_logger

logger = get_logger("whatsapp")

DEFAULT_BASE_URL = "https://wasenderapi.com/api"
TIMEOUT_SECONDS = 30

_PHONE_NOISE_RE = re.compile(r"[+\s\-()]")


def format_phone_number(phone_number: str) -> str:
    """Strip '+', spaces, dashes and parentheses: '+91 98765-43210' -> '919876543210'."""
    return _PHONE_NOISE_RE.sub("", phone_number)


class WhatsAppAdapter(BaseNotificationAdapter):
    channel = "whatsapp"

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: int = TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def send_text(self, phone_number: str, text: str) -> NotificationResult:
        if not phone_number or not text:
            return NotificationResult(
                success=False, error="Phone number and message are required"
            )
        to = format_phone_number(phone_number)
        try:
            resp = self._session.post(
                f"{self._base_url}/send-message",
                json={"to": to, "text": text},
                headers=self._headers(),
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.warning("WhatsApp send to %s failed: %s", to, e)
            return NotificationResult(success=False, error=str(e))

        if resp.status_code >= 400:
            error = f"HTTP {resp.status_code}: {resp.text[:500] if resp.text else 'no body'}"
            logger.warning("WhatsApp send to %s rejected: %s", to, error)
            return NotificationResult(success=False, error=error)

        message_id = None
        try:
            data = resp.json()
        except ValueError:
            data = {}
        if isinstance(data, dict):
            inner = data.get("data") if isinstance(data.get("data"), dict) else data
            raw_id = inner.get("msgId") or inner.get("messageId") or inner.get("id")
            message_id = str(raw_id) if raw_id is not None else None
        logger.info("WhatsApp notice sent to %s", to)
        return NotificationResult(success=True, provider_message_id=message_id)
