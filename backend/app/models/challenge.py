# backend/app/models/challenge.py
# Représentation d'un challenge : exigence typée, récompense, XP et métadonnées d'événement.

from __future__ import annotations

import datetime as dt
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from app.core.bson_utils import MongoBaseModel
from app.core.utils import ensure_utc, utcnow
from app.models.requirement import EventWindow, Requirement

ChallengeType = Literal["khachapuri_trail", "wine_challenge", "regional", "custom", "combo"]
RewardKind = Literal["badge", "discount", "free_tasting", "souvenir"]
EventType = Literal["halloween", "new_year", "christmas", "easter", "summer", "winter", "spring", "autumn"]


class RewardSpec(BaseModel):
    """Récompense débloquée à la complétion.

    Attributes:
        kind (str): badge | discount | free_tasting | souvenir.
        value (str): Libellé (nom du badge, « -10% », …).
        valid_days (int | None): Durée de validité après attribution (None : sans expiration).
    """
    kind: RewardKind
    value: str
    valid_days: Optional[int] = Field(default=None, ge=1)


class ChallengeBase(BaseModel):
    """Champs de base d'un challenge.

    Description:
        L'exigence (`requirement`) est une variante étiquetée fixée à la création ;
        la catégorie d'affichage en découle via le classifieur.

    Attributes:
        name (str): Nom du challenge.
        description (str | None): Description textuelle.
        type (str): Famille éditoriale (trail, wine, regional, custom, combo).
        requirement (Requirement): Exigence typée.
        xp_reward (int): XP accordée à la complétion.
        reward (RewardSpec): Récompense débloquée.
        badge_id (str | None): Badge accordé ; par défaut `reward.value` si la récompense est un badge.
        is_active (bool): Challenge publié.
        is_special (bool): Challenge événementiel.
        event_type (str | None): Type d'événement (halloween, …).
        start_date / end_date (datetime | None): Bornes de l'événement.
    """
    name: str
    description: Optional[str] = None
    type: ChallengeType = "custom"
    requirement: Requirement
    xp_reward: int = Field(default=50, ge=0)
    reward: RewardSpec
    badge_id: Optional[str] = None
    is_active: bool = True
    is_special: bool = False
    event_type: Optional[EventType] = None
    start_date: Optional[dt.datetime] = None
    end_date: Optional[dt.datetime] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def _to_utc(cls, v: Optional[dt.datetime]) -> Optional[dt.datetime]:
        return ensure_utc(v)

    @property
    def granted_badge(self) -> Optional[str]:
        """Badge effectivement accordé (explicite, sinon valeur d'une récompense badge)."""
        if self.badge_id:
            return self.badge_id
        if self.reward.kind == "badge":
            return self.reward.value
        return None

    @property
    def effective_window(self) -> Optional[EventWindow]:
        """Fenêtre qualifiante : celle de l'exigence, sinon les dates de l'événement."""
        if self.requirement.window is not None:
            return self.requirement.window
        if self.start_date or self.end_date:
            return EventWindow(start=self.start_date, end=self.end_date)
        return None


class Challenge(MongoBaseModel, ChallengeBase):
    """Document Mongo d'un challenge.

    Description:
        Étend `ChallengeBase` avec _id, created_at, updated_at. Lecture seule pour le moteur.
    """
    created_at: dt.datetime = Field(default_factory=utcnow)
    updated_at: Optional[dt.datetime] = None
