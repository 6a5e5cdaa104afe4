"""Notification adapters for out-of-band notices."""

from app.adapters.base import BaseNotificationAdapter, NotificationResult
from app.adapters.whatsapp import WhatsAppAdapter

__all__ = ["BaseNotificationAdapter", "NotificationResult", "WhatsAppAdapter"]
