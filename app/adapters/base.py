"""
Notification adapter interface.

Adapters deliver short text notices to a user's phone through an external
provider. They report failures in the result instead of raising.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel


class NotificationResult(BaseModel):
    """Result of a delivery attempt (success + optional provider message id)."""

    success: bool
    provider_message_id: Optional[str] = None
    error: Optional[str] = None


class BaseNotificationAdapter(ABC):
    """Contract for notification providers. New providers implement this interface."""

    channel: str = "unknown"

    @abstractmethod
    def send_text(self, phone_number: str, text: str) -> NotificationResult:
        """Send a plain text notice to an E.164 phone number."""
        ...
