"""Shared column mixins."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CreatedAtMixin:
    """Adds an immutable created_at column populated on insert."""

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
