# backend/app/models/progress_dto.py
# Objets de transfert (sortie) : progression par challenge, statut global, résultat d'activité, administration.

from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.core.bson_utils import PyObjectId
from app.models.challenge import EventType, RewardSpec


class ChallengeProgressOut(BaseModel):
    """Progression d'un challenge renvoyée par l'API.

    Description:
        Vue « client », prête à afficher : catégorie issue du classifieur, compteurs,
        pourcentage entier et dates de complétion / récompense.

    Attributes:
        challenge_id (PyObjectId): Identifiant du challenge.
        name (str): Nom.
        description (str | None): Description.
        category (str): special | menu_combo | venue | combo | regular.
        state (str): not_started | in_progress | completed | rewarded.
        current (int): Mesure courante.
        required (int): Objectif.
        percentage (int): Avancement 0–100.
        completed_at (datetime | None): Date de complétion.
        reward_granted_at (datetime | None): Date de distribution.
        xp_reward (int): XP du challenge.
        reward (RewardSpec): Récompense.
        badge_id (str | None): Badge accordé.
        event_type (str | None): Événement (challenges spéciaux).
        start_date / end_date (datetime | None): Bornes de l'événement.
    """
    challenge_id: PyObjectId
    name: str
    description: Optional[str] = None
    category: str
    state: str
    current: int = Field(default=0, ge=0)
    required: int = Field(default=1, gt=0)
    percentage: int = Field(default=0, ge=0, le=100)
    completed_at: Optional[dt.datetime] = None
    reward_granted_at: Optional[dt.datetime] = None
    xp_reward: int = 0
    reward: RewardSpec
    badge_id: Optional[str] = None
    event_type: Optional[EventType] = None
    start_date: Optional[dt.datetime] = None
    end_date: Optional[dt.datetime] = None


class MyChallengesOut(BaseModel):
    """Challenges de l'utilisateur regroupés par catégorie (ordre de priorité du classifieur)."""
    groups: Dict[str, List[ChallengeProgressOut]]
    total: int = 0
    completed: int = 0


class ProgressionOut(BaseModel):
    """Statut global : XP, niveau dérivé et badges.

    Attributes:
        xp (int): XP cumulée.
        level (int): Niveau 1–10.
        level_name (str): Libellé du niveau.
        next_level_xp (int | None): Seuil du niveau suivant (None au maximum).
        progress_to_next (int): Avancement vers le niveau suivant (0–100).
        max_level (int): Niveau maximal.
        badges (list[str]): Badges détenus.
    """
    user_id: PyObjectId
    xp: int = 0
    level: int = 1
    level_name: str
    next_level_xp: Optional[int] = None
    progress_to_next: int = 0
    max_level: int
    badges: List[str] = Field(default_factory=list)


class CompletedChallengeOut(BaseModel):
    challenge_id: PyObjectId
    name: str
    xp_reward: int
    reward_pending: bool = False


class RewardOut(BaseModel):
    challenge_id: PyObjectId
    kind: str
    value: str
    xp: int
    badge_id: Optional[str] = None
    granted_at: dt.datetime


class ActivityResultOut(BaseModel):
    """Résultat du traitement d'une activité.

    Attributes:
        activity_id (PyObjectId): Activité enregistrée.
        duplicate (bool): Événement déjà reçu (aucun effet).
        xp_gained (int): XP gagnée (activité + challenges complétés).
        challenges_completed (list): Challenges complétés par cette activité.
        rewards_unlocked (list): Récompenses accordées (y compris reprises).
        progression (ProgressionOut): Statut global après traitement.
    """
    activity_id: PyObjectId
    duplicate: bool = False
    xp_gained: int = 0
    challenges_completed: List[CompletedChallengeOut] = Field(default_factory=list)
    rewards_unlocked: List[RewardOut] = Field(default_factory=list)
    progression: ProgressionOut


class ConfigIssueOut(BaseModel):
    """Anomalie de configuration consignée pour un challenge."""
    challenge_id: PyObjectId
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    first_seen_at: Optional[dt.datetime] = None
    last_seen_at: Optional[dt.datetime] = None


class ReprocessOut(BaseModel):
    """Bilan d'un retraitement des activités parquées."""
    processed: int = 0
    still_parked: int = 0


class RewardRetryOut(BaseModel):
    """Bilan d'une reprise des récompenses en attente."""
    user_id: PyObjectId
    rewards_unlocked: List[RewardOut] = Field(default_factory=list)


class RecomputeOut(BaseModel):
    """Bilan d'une réévaluation complète des challenges d'un utilisateur."""
    user_id: PyObjectId
    evaluated: int = 0
    challenges_completed: List[CompletedChallengeOut] = Field(default_factory=list)
    progression: ProgressionOut


class MyRewardOut(BaseModel):
    """Récompense détenue par l'utilisateur.

    Attributes:
        id (PyObjectId): Identifiant de la récompense (à utiliser pour `redeem`).
        challenge_name (str | None): Nom du challenge d'origine, s'il existe encore.
        redeemed (bool): Déjà utilisée.
        expires_at (datetime | None): Fin de validité.
    """
    id: PyObjectId
    challenge_id: PyObjectId
    challenge_name: Optional[str] = None
    kind: str
    value: str
    xp: int = 0
    badge_id: Optional[str] = None
    redeemed: bool = False
    redeemed_at: Optional[dt.datetime] = None
    expires_at: Optional[dt.datetime] = None
    granted_at: dt.datetime
