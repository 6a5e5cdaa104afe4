"""Read-only lookups of buyer and manufacturer profiles."""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Union
from uuid import UUID

from sqlalchemy.orm import Session

from app.db import store_errors
from app.models.profile import BuyerProfile, ManufacturerProfile

Profile = Union[BuyerProfile, ManufacturerProfile]

_MODELS = {
    "buyer": BuyerProfile,
    "manufacturer": ManufacturerProfile,
}


class ProfileService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def _model(self, role: str):
        model = _MODELS.get(role)
        if model is None:
            raise ValueError(f"Unknown role: {role}")
        return model

    def get_buyer(self, buyer_id: UUID) -> Optional[BuyerProfile]:
        return self.get_profile("buyer", buyer_id)

    def get_manufacturer(self, manufacturer_id: UUID) -> Optional[ManufacturerProfile]:
        return self.get_profile("manufacturer", manufacturer_id)

    def get_profile(self, role: str, profile_id: UUID) -> Optional[Profile]:
        model = self._model(role)
        with store_errors(self.db, f"fetch {role} profile"):
            return self.db.query(model).filter(model.id == profile_id).first()

    def get_profiles_by_ids(self, role: str, ids: Iterable[UUID]) -> Dict[UUID, Profile]:
        """Fetch many profiles of one role in a single query, keyed by id."""
        model = self._model(role)
        id_list = list(set(ids))
        if not id_list:
            return {}
        with store_errors(self.db, f"fetch {role} profiles"):
            rows = self.db.query(model).filter(model.id.in_(id_list)).all()
        return {row.id: row for row in rows}
