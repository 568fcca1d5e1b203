# backend/app/models/user_progression.py
# Progression globale d'un utilisateur (XP cumulée, badges) et audit des récompenses accordées.

from __future__ import annotations

import datetime as dt
from typing import List, Optional

from pydantic import Field

from app.core.bson_utils import MongoBaseModel, PyObjectId
from app.core.utils import utcnow
from app.models.challenge import RewardKind


class UserProgression(MongoBaseModel):
    """Document Mongo « user_progressions » (un par utilisateur).

    Description:
        Le niveau n'est pas stocké : il est toujours dérivé de `xp`.
        `granted_challenge_ids` sert de garde atomique à l'attribution d'XP.

    Attributes:
        user_id (PyObjectId): Réf. utilisateur.
        xp (int): XP cumulée (jamais décrémentée).
        badges (list[str]): Badges détenus (sémantique d'ensemble).
        granted_challenge_ids (list[PyObjectId]): Challenges déjà récompensés.
    """
    user_id: PyObjectId
    xp: int = 0
    badges: List[str] = Field(default_factory=list)
    granted_challenge_ids: List[PyObjectId] = Field(default_factory=list)
    created_at: dt.datetime = Field(default_factory=utcnow)
    updated_at: Optional[dt.datetime] = None


class RewardGrant(MongoBaseModel):
    """Trace d'une récompense accordée (unique par (user_id, challenge_id)).

    Description:
        Utilisable une seule fois : `redeemed` passe de False à True par compare-and-set.
        Une récompense dont `expires_at` est passé n'est plus listée ni utilisable.
    """
    user_id: PyObjectId
    challenge_id: PyObjectId
    kind: RewardKind
    value: str
    xp: int = 0
    badge_id: Optional[str] = None
    redeemed: bool = False
    redeemed_at: Optional[dt.datetime] = None
    expires_at: Optional[dt.datetime] = None
    granted_at: dt.datetime = Field(default_factory=utcnow)
