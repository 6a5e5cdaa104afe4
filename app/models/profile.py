"""Buyer and manufacturer profiles.

Owned by the onboarding flow; chat only reads them for peer display names
and notification phone numbers.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, String, Uuid

from app.db import Base
from app.models.mixins import CreatedAtMixin


class BuyerProfile(Base, CreatedAtMixin):
    __tablename__ = "buyer_profiles"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    phone_number = Column(String(20), unique=True, nullable=False)
    buyer_identifier = Column(String(50), unique=True, nullable=True)
    full_name = Column(String(255), nullable=True)

    @property
    def display_name(self) -> str:
        return self.buyer_identifier or self.full_name or "Buyer"


class ManufacturerProfile(Base, CreatedAtMixin):
    __tablename__ = "manufacturer_profiles"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    phone_number = Column(String(20), unique=True, nullable=False)
    manufacturer_code = Column(String(50), unique=True, nullable=True)
    unit_name = Column(String(255), nullable=True)
    is_verified = Column(Boolean, nullable=False, default=False)

    @property
    def display_name(self) -> str:
        return self.manufacturer_code or self.unit_name or "Manufacturer"
