# backend/app/models/activity.py
# Événements d'activité (check-in, avis, scan de tampon, commande) : entrée API et document Mongo.

from __future__ import annotations

import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from app.core.bson_utils import MongoBaseModel, PyObjectId
from app.core.utils import ensure_utc, utcnow
from app.models.requirement import ActivityType


class ActivityIn(BaseModel):
    """Événement émis par un service source.

    Attributes:
        event_id (str | None): Identifiant côté source ; un doublon n'est enregistré qu'une fois.
        activity_type (str): check_in | review | scan | order.
        venue_id (PyObjectId | None): Lieu concerné (obligatoire pour check_in/scan/order).
        items (list[str]): Items de menu commandés (commande uniquement).
        occurred_at (datetime): Horodatage de l'activité (UTC).
    """
    event_id: Optional[str] = Field(default=None, max_length=200)
    activity_type: ActivityType
    venue_id: Optional[PyObjectId] = None
    items: List[str] = Field(default_factory=list)
    occurred_at: dt.datetime = Field(default_factory=utcnow)

    @field_validator("occurred_at")
    @classmethod
    def _to_utc(cls, v: dt.datetime) -> dt.datetime:
        return ensure_utc(v)

    @model_validator(mode="after")
    def _check_payload(self) -> "ActivityIn":
        if self.activity_type in ("check_in", "scan", "order") and self.venue_id is None:
            raise ValueError(f"venue_id is required for {self.activity_type}")
        if self.activity_type == "order" and not self.items:
            raise ValueError("an order must contain at least one item")
        return self


class Activity(MongoBaseModel):
    """Document Mongo d'une activité (append-only)."""
    user_id: PyObjectId
    event_id: Optional[str] = None
    activity_type: ActivityType
    venue_id: Optional[PyObjectId] = None
    items: List[str] = Field(default_factory=list)
    occurred_at: dt.datetime
    recorded_at: dt.datetime = Field(default_factory=utcnow)
    # posé une seule fois, quand l'XP d'activité a été créditée
    xp_credited_at: Optional[dt.datetime] = None

    @field_validator("occurred_at", "recorded_at", "xp_credited_at")
    @classmethod
    def _to_utc(cls, v: dt.datetime) -> dt.datetime:
        return ensure_utc(v)
