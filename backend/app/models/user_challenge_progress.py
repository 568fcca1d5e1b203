# backend/app/models/user_challenge_progress.py
# État d'un challenge pour un utilisateur : compteurs, pourcentage, complétion et marqueur de récompense.

from __future__ import annotations

import datetime as dt
from typing import Literal, Optional

from pydantic import Field, field_validator

from app.core.bson_utils import MongoBaseModel, PyObjectId
from app.core.utils import ensure_utc, utcnow

ProgressState = Literal["not_started", "in_progress", "completed", "rewarded"]


class UserChallengeProgress(MongoBaseModel):
    """Document Mongo « user_challenge_progress » (paire (user_id, challenge_id) unique).

    Description:
        Créé paresseusement à la première activité pertinente. `completed_at` ne repasse
        jamais à None ; `reward_granted_at` reste None tant que la distribution n'a pas réussi.

    Attributes:
        user_id (PyObjectId): Réf. utilisateur.
        challenge_id (PyObjectId): Réf. challenge.
        current (int): Mesure courante.
        required (int): Objectif (> 0).
        percentage (int): Avancement 0–100, non décroissant pour une exigence fixée.
        completed_at (datetime | None): Date de complétion.
        reward_granted_at (datetime | None): Date de distribution de la récompense.
        requirement_signature (str | None): Empreinte de l'exigence évaluée.
        version (int): Compteur de concurrence optimiste.
    """
    user_id: PyObjectId
    challenge_id: PyObjectId
    current: int = 0
    required: int = 1
    percentage: int = 0
    completed_at: Optional[dt.datetime] = None
    reward_granted_at: Optional[dt.datetime] = None
    requirement_signature: Optional[str] = None
    version: int = 0
    created_at: dt.datetime = Field(default_factory=utcnow)
    updated_at: Optional[dt.datetime] = None

    @field_validator("completed_at", "reward_granted_at", "created_at", "updated_at")
    @classmethod
    def _to_utc(cls, v: Optional[dt.datetime]) -> Optional[dt.datetime]:
        return ensure_utc(v)

    @property
    def state(self) -> ProgressState:
        if self.reward_granted_at is not None:
            return "rewarded"
        if self.completed_at is not None:
            return "completed"
        return "in_progress"
