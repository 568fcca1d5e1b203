# backend/app/services/progression/reward_dispenser.py
# Distribution exactement-une-fois des récompenses : XP et badge gardés atomiquement, audit, émission externe.

from __future__ import annotations

import datetime as dt

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError

from app.core.bson_utils import dump_mongo
from app.core.exceptions import TransientDependencyError
from app.core.logging_config import get_loggers
from app.core.retry import retry_async
from app.core.utils import utcnow
from app.db.mongodb import transient_errors
from app.models.challenge import Challenge
from app.models.user_progression import RewardGrant, UserProgression
from app.shared.constants import COLL_CHALLENGES, COLL_PROGRESS, COLL_PROGRESSIONS, COLL_REWARD_GRANTS

from .reward_issuer import LoggingRewardIssuer, RewardIssuer

logger, error_logger, data_logger = get_loggers()


class RewardDispenser:
    """Service de distribution des récompenses.

    Description:
        L'XP et le badge sont accordés par une seule mise à jour atomique de
        `user_progressions`, conditionnée par l'absence du challenge dans
        `granted_challenge_ids` : rejouer la distribution n'accorde jamais deux fois.
        Viennent ensuite la trace `reward_grants`, l'appel au service de récompenses, puis
        le marquage `reward_granted_at` (compare-and-set sur valeur nulle).
    """

    def __init__(self, db: AsyncIOMotorDatabase, issuer: RewardIssuer | None = None):
        """Initialiser le service.

        Args:
            db: Instance de base de données MongoDB.
            issuer: Émetteur externe (défaut : journalisé).
        """
        self.db = db
        self.issuer = issuer or LoggingRewardIssuer()

    async def ensure_progression(self, user_id: ObjectId) -> None:
        """Créer la progression globale de l'utilisateur si besoin (upsert idempotent)."""
        doc = dump_mongo(UserProgression(user_id=user_id))
        doc.pop("user_id", None)
        with transient_errors("progression create"):
            await self.db[COLL_PROGRESSIONS].update_one(
                {"user_id": user_id},
                {"$setOnInsert": doc},
                upsert=True,
            )

    async def get_progression(self, user_id: ObjectId) -> UserProgression:
        """Progression globale (valeurs par défaut si l'utilisateur n'a encore rien gagné)."""
        with transient_errors("progression read"):
            doc = await self.db[COLL_PROGRESSIONS].find_one({"user_id": user_id})
        return UserProgression.model_validate(doc) if doc else UserProgression(user_id=user_id)

    async def add_activity_xp(self, user_id: ObjectId, amount: int) -> int:
        """Créditer l'XP d'une activité (incrément atomique).

        Returns:
            int: XP créditée.
        """
        if amount <= 0:
            return 0
        await self.ensure_progression(user_id)
        with transient_errors("activity xp"):
            await self.db[COLL_PROGRESSIONS].update_one(
                {"user_id": user_id},
                {"$inc": {"xp": amount}, "$set": {"updated_at": utcnow()}},
            )
        return amount

    async def dispense(self, user_id: ObjectId, challenge: Challenge) -> tuple[RewardGrant, bool]:
        """Distribuer la récompense d'un challenge complété.

        Args:
            user_id: Utilisateur.
            challenge: Challenge complété.

        Returns:
            tuple: (trace d'attribution, newly_granted). `newly_granted` est faux si
            l'XP avait déjà été accordée (reprise).

        Raises:
            TransientDependencyError: Base ou service de récompenses indisponible ;
                `reward_granted_at` reste nul et la distribution sera reprise.
        """
        cid = challenge.id
        badge = challenge.granted_badge
        now = utcnow()

        await self.ensure_progression(user_id)

        add_to_set: dict = {"granted_challenge_ids": cid}
        if badge:
            add_to_set["badges"] = badge
        with transient_errors("reward grant"):
            result = await self.db[COLL_PROGRESSIONS].update_one(
                {"user_id": user_id, "granted_challenge_ids": {"$ne": cid}},
                {"$inc": {"xp": challenge.xp_reward}, "$addToSet": add_to_set, "$set": {"updated_at": now}},
            )
        newly_granted = result.modified_count == 1

        grant = RewardGrant(
            user_id=user_id,
            challenge_id=cid,
            kind=challenge.reward.kind,
            value=challenge.reward.value,
            xp=challenge.xp_reward,
            badge_id=badge,
            granted_at=now,
        )
        if challenge.reward.valid_days:
            grant.expires_at = now + dt.timedelta(days=challenge.reward.valid_days)
        audit = dump_mongo(grant)
        audit.pop("user_id", None)
        audit.pop("challenge_id", None)
        with transient_errors("reward audit"):
            await self.db[COLL_REWARD_GRANTS].update_one(
                {"user_id": user_id, "challenge_id": cid},
                {"$setOnInsert": audit},
                upsert=True,
            )
            stored = await self.db[COLL_REWARD_GRANTS].find_one({"user_id": user_id, "challenge_id": cid})
        if stored:
            grant = RewardGrant.model_validate(stored)

        if newly_granted:
            data_logger.log_data(
                "reward_grant",
                {"challenge_id": cid, "xp": challenge.xp_reward, "badge": badge, "reward": challenge.reward.model_dump()},
                user_id=user_id,
            )

        await retry_async(
            lambda: self.issuer.issue(grant),
            retry_on=(TransientDependencyError,),
            label=f"reward issue {user_id}/{cid}",
        )

        with transient_errors("reward mark"):
            await self.db[COLL_PROGRESS].update_one(
                {"user_id": user_id, "challenge_id": cid, "reward_granted_at": None},
                {"$set": {"reward_granted_at": utcnow()}, "$inc": {"version": 1}},
            )
        logger.info("Reward for challenge %s dispensed to %s (new=%s)", cid, user_id, newly_granted)
        return grant, newly_granted

    async def retry_pending_rewards(self, user_id: ObjectId) -> list[RewardGrant]:
        """Reprendre les distributions interrompues (complété mais non récompensé).

        Returns:
            list[RewardGrant]: Attributions nouvellement accordées lors de la reprise.
        """
        with transient_errors("pending rewards"):
            rows = await self.db[COLL_PROGRESS].find(
                {"user_id": user_id, "completed_at": {"$ne": None}, "reward_granted_at": None},
                {"challenge_id": 1},
            ).to_list(length=None)
        if not rows:
            return []

        ids = [row["challenge_id"] for row in rows]
        with transient_errors("pending rewards challenges"):
            challenges = await self.db[COLL_CHALLENGES].find({"_id": {"$in": ids}}).to_list(length=None)

        granted: list[RewardGrant] = []
        for doc in challenges:
            try:
                challenge = Challenge.model_validate(doc)
            except ValidationError as e:
                error_logger.error("Pending reward on malformed challenge %s: %s", doc.get("_id"), e.errors()[:3])
                continue
            try:
                grant, newly_granted = await self.dispense(user_id, challenge)
            except TransientDependencyError as e:
                logger.warning("Pending reward %s/%s still failing: %s", user_id, challenge.id, e)
                continue
            if newly_granted:
                granted.append(grant)
        return granted
