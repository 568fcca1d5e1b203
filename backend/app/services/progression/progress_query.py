# backend/app/services/progression/progress_query.py
# API de lecture : progression par challenge (regroupée par catégorie) et statut global. Aucune écriture.

from __future__ import annotations

from typing import Any

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError

from app.core.exceptions import ConfigurationError
from app.core.logging_config import get_loggers
from app.db.mongodb import transient_errors
from app.models.challenge import Challenge
from app.models.progress_dto import ChallengeProgressOut, MyChallengesOut, ProgressionOut
from app.models.user_challenge_progress import UserChallengeProgress
from app.models.user_progression import UserProgression
from app.shared.constants import CATEGORIES, COLL_CHALLENGES, COLL_PROGRESS, COLL_PROGRESSIONS

from .catalog import Catalog
from .challenge_classifier import ChallengeClassifier
from .challenge_validator import ChallengeValidator
from .level_calculator import LevelCalculator, default_level_calculator
from .requirement_evaluator import RequirementEvaluator

logger, _, _ = get_loggers()


def build_progression_out(progression: UserProgression, calculator: LevelCalculator = default_level_calculator) -> ProgressionOut:
    """Statut global d'affichage (niveau toujours dérivé de l'XP)."""
    xp = progression.xp
    return ProgressionOut(
        user_id=progression.user_id,
        xp=xp,
        level=calculator.level(xp),
        level_name=calculator.level_name(xp),
        next_level_xp=calculator.next_level_xp(xp),
        progress_to_next=calculator.progress_to_next(xp),
        max_level=calculator.max_level,
        badges=sorted(set(progression.badges)),
    )


class ProgressQuery:
    """Service de lecture de la progression.

    Description:
        Ne fait que lire les enregistrements produits par le moteur : les challenges
        mal configurés sont exclus, sans être consignés ni réévalués.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        """Initialiser le service.

        Args:
            db: Instance de base de données MongoDB.
        """
        self.db = db
        self.classifier = ChallengeClassifier()
        self.validator = ChallengeValidator(db, Catalog(db))

    async def get_progression(self, user_id: ObjectId) -> ProgressionOut:
        """Statut global (XP, niveau, badges) de l'utilisateur."""
        with transient_errors("progression read"):
            doc = await self.db[COLL_PROGRESSIONS].find_one({"user_id": user_id})
        progression = UserProgression.model_validate(doc) if doc else UserProgression(user_id=user_id)
        return build_progression_out(progression)

    async def _usable_challenges(self, query: dict[str, Any]) -> list[Challenge]:
        with transient_errors("challenge list"):
            rows = await self.db[COLL_CHALLENGES].find(query).sort("name", 1).to_list(length=None)

        out: list[Challenge] = []
        for row in rows:
            try:
                challenge = Challenge.model_validate(row)
                await self.validator.validate(challenge)
            except ValidationError as e:
                logger.warning("Skipping malformed challenge %s: %s", row.get("_id"), e.errors()[:3])
                continue
            except ConfigurationError as e:
                logger.warning("Skipping misconfigured challenge %s: %s", row.get("_id"), e.message)
                continue
            out.append(challenge)
        return out

    def _to_out(self, challenge: Challenge, progress: UserChallengeProgress | None) -> ChallengeProgressOut:
        if progress is None:
            current, required, percentage = 0, RequirementEvaluator.required_for(challenge.requirement), 0
            state, completed_at, rewarded_at = "not_started", None, None
        else:
            current, required, percentage = progress.current, progress.required, progress.percentage
            state, completed_at, rewarded_at = progress.state, progress.completed_at, progress.reward_granted_at

        return ChallengeProgressOut(
            challenge_id=challenge.id,
            name=challenge.name,
            description=challenge.description,
            category=self.classifier.classify(challenge),
            state=state,
            current=current,
            required=required,
            percentage=percentage,
            completed_at=completed_at,
            reward_granted_at=rewarded_at,
            xp_reward=challenge.xp_reward,
            reward=challenge.reward,
            badge_id=challenge.granted_badge,
            event_type=challenge.event_type,
            start_date=challenge.start_date,
            end_date=challenge.end_date,
        )

    async def list_my_challenges(self, user_id: ObjectId, category: str | None = None) -> MyChallengesOut:
        """Challenges actifs avec la progression de l'utilisateur, regroupés par catégorie.

        Args:
            user_id: Utilisateur.
            category: Filtre optionnel sur une catégorie.

        Returns:
            MyChallengesOut: Groupes dans l'ordre de priorité du classifieur.
        """
        challenges = await self._usable_challenges({"is_active": True})

        with transient_errors("progress list"):
            rows = await self.db[COLL_PROGRESS].find({"user_id": user_id}).to_list(length=None)
        by_challenge = {row["challenge_id"]: UserChallengeProgress.model_validate(row) for row in rows}

        groups: dict[str, list[ChallengeProgressOut]] = {c: [] for c in CATEGORIES}
        for challenge in challenges:
            item = self._to_out(challenge, by_challenge.get(challenge.id))
            groups[item.category].append(item)

        if category is not None:
            groups = {category: groups.get(category, [])}

        items = [i for group in groups.values() for i in group]
        return MyChallengesOut(
            groups=groups,
            total=len(items),
            completed=sum(1 for i in items if i.completed_at is not None),
        )

    async def get_my_challenge(self, user_id: ObjectId, challenge_id: ObjectId) -> ChallengeProgressOut | None:
        """Détail d'un challenge actif pour l'utilisateur (None si introuvable ou mal configuré)."""
        found = await self._usable_challenges({"_id": challenge_id, "is_active": True})
        if not found:
            return None
        with transient_errors("progress read"):
            row = await self.db[COLL_PROGRESS].find_one({"user_id": user_id, "challenge_id": challenge_id})
        progress = UserChallengeProgress.model_validate(row) if row else None
        return self._to_out(found[0], progress)
