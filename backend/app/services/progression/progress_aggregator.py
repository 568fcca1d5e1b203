# backend/app/services/progression/progress_aggregator.py
# Agrégation (current, required) -> pourcentage et fusion monotone dans `user_challenge_progress` (verrou optimiste).

from __future__ import annotations

import hashlib
import json

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.core.bson_utils import dump_mongo
from app.core.exceptions import ConcurrencyConflict, InvariantViolation
from app.core.logging_config import get_loggers
from app.core.retry import retry_async
from app.core.utils import utcnow
from app.db.mongodb import transient_errors
from app.models._shared import ProgressSnapshot, RequirementProgress
from app.models.challenge import Challenge
from app.models.requirement import Requirement
from app.models.user_challenge_progress import UserChallengeProgress
from app.shared.constants import COLL_PROGRESS

_, error_logger, _ = get_loggers()


def compute_percentage(current: int, required: int) -> int:
    """Pourcentage entier borné : floor(100 * current / required), plafonné à 100.

    Raises:
        InvariantViolation: Objectif nul ou résultat hors [0, 100].
    """
    if required <= 0:
        raise InvariantViolation("required must be strictly positive", current=current, required=required)
    percentage = min(100, (100 * max(0, current)) // required)
    if not 0 <= percentage <= 100:
        raise InvariantViolation("percentage out of bounds", percentage=percentage)
    return percentage


def requirement_signature(requirement: Requirement) -> str:
    """Empreinte stable d'une exigence (détecte une modification administrative)."""
    payload = json.dumps(requirement.model_dump(mode="json"), sort_keys=True)
    return hashlib.sha1(payload.encode("utf-8")).hexdigest()


class ProgressAggregator:
    """Service d'agrégation et de persistance de la progression par challenge.

    Description:
        Un challenge porte une seule exigence : l'agrégation se réduit au calcul du
        pourcentage. La fusion avec l'enregistrement stocké est monotone (max) tant que
        l'exigence ne change pas ; elle est remplacée si sa signature a changé.
        L'écriture est conditionnée par `version` ; la transition vers « complété » se fait
        dans la même écriture, uniquement si `completed_at` est encore nul.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        """Initialiser le service.

        Args:
            db: Instance de base de données MongoDB.
        """
        self.db = db
        self.collection = db[COLL_PROGRESS]

    @staticmethod
    def aggregate(progress: RequirementProgress) -> ProgressSnapshot:
        """Snapshot (current, required, percentage) d'une mesure."""
        return ProgressSnapshot(
            current=progress.current,
            required=progress.required,
            percentage=compute_percentage(progress.current, progress.required),
        )

    async def get(self, user_id: ObjectId, challenge_id: ObjectId) -> UserChallengeProgress | None:
        with transient_errors("progress read"):
            doc = await self.collection.find_one({"user_id": user_id, "challenge_id": challenge_id})
        return UserChallengeProgress.model_validate(doc) if doc else None

    async def load_or_create(
        self,
        user_id: ObjectId,
        challenge_id: ObjectId,
        *,
        required: int,
        signature: str,
    ) -> UserChallengeProgress:
        """Lire l'enregistrement, en le créant (version 0) s'il n'existe pas.

        Description:
            Création paresseuse par upsert `$setOnInsert` : deux créations concurrentes
            convergent vers un seul document (index unique (user_id, challenge_id)).
        """
        existing = await self.get(user_id, challenge_id)
        if existing:
            return existing

        seed = UserChallengeProgress(
            user_id=user_id,
            challenge_id=challenge_id,
            required=required,
            requirement_signature=signature,
        )
        doc = dump_mongo(seed)
        doc.pop("user_id", None)
        doc.pop("challenge_id", None)
        try:
            with transient_errors("progress create"):
                await self.collection.update_one(
                    {"user_id": user_id, "challenge_id": challenge_id},
                    {"$setOnInsert": doc},
                    upsert=True,
                )
        except DuplicateKeyError:
            # créé entre-temps par une requête concurrente
            pass

        created = await self.get(user_id, challenge_id)
        if created is None:
            raise ConcurrencyConflict("progress record vanished after upsert", challenge_id=str(challenge_id))
        return created

    async def apply(
        self,
        user_id: ObjectId,
        challenge: Challenge,
        progress: RequirementProgress,
    ) -> tuple[UserChallengeProgress, bool]:
        """Une tentative de fusion + écriture conditionnelle.

        Args:
            user_id: Utilisateur.
            challenge: Challenge évalué.
            progress: Mesure fraîche de l'exigence.

        Returns:
            tuple: (enregistrement à jour, newly_completed).

        Raises:
            ConcurrencyConflict: `version` modifiée depuis la lecture.
            InvariantViolation: Pourcentage hors bornes ou régression de complétion.
        """
        signature = requirement_signature(challenge.requirement)
        snapshot = self.aggregate(progress)
        stored = await self.load_or_create(user_id, challenge.id, required=snapshot.required, signature=signature)

        if stored.requirement_signature == signature:
            current = max(stored.current, snapshot.current)
            percentage = max(stored.percentage, compute_percentage(current, snapshot.required))
        else:
            current = snapshot.current
            percentage = snapshot.percentage

        newly_completed = stored.completed_at is None and current >= snapshot.required
        completed_at = stored.completed_at or (utcnow() if newly_completed else None)
        if completed_at is not None:
            percentage = 100

        if stored.completed_at is not None and completed_at is None:
            error_logger.critical("completed_at regression on %s/%s", user_id, challenge.id)
            raise InvariantViolation("completed_at regression", challenge_id=str(challenge.id))
        if not 0 <= percentage <= 100:
            error_logger.critical("percentage %s out of bounds on %s/%s", percentage, user_id, challenge.id)
            raise InvariantViolation("percentage out of bounds", percentage=percentage)

        unchanged = (
            current == stored.current
            and snapshot.required == stored.required
            and percentage == stored.percentage
            and signature == stored.requirement_signature
            and not newly_completed
        )
        if unchanged:
            return stored, False

        fields = {
            "current": current,
            "required": snapshot.required,
            "percentage": percentage,
            "requirement_signature": signature,
            "updated_at": utcnow(),
        }
        if newly_completed:
            fields["completed_at"] = completed_at

        with transient_errors("progress write"):
            doc = await self.collection.find_one_and_update(
                {"_id": stored.id, "version": stored.version},
                {"$set": fields, "$inc": {"version": 1}},
                return_document=ReturnDocument.AFTER,
            )
        if doc is None:
            raise ConcurrencyConflict(
                "progress record modified concurrently",
                challenge_id=str(challenge.id),
                version=stored.version,
            )
        return UserChallengeProgress.model_validate(doc), newly_completed

    async def record(
        self,
        user_id: ObjectId,
        challenge: Challenge,
        progress: RequirementProgress,
    ) -> tuple[UserChallengeProgress, bool]:
        """`apply` avec retry borné sur conflit (TransientDependencyError au-delà)."""
        return await retry_async(
            lambda: self.apply(user_id, challenge, progress),
            label=f"progress {user_id}/{challenge.id}",
        )
