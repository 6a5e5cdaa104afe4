"""Authenticated caller identity carried by chat tokens."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from app.schemas.chat import Role


class CurrentUser(BaseModel):
    user_id: UUID
    role: Role
    phone_number: Optional[str] = None
