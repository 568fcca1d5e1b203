# backend/app/services/progression/reward_wallet.py
# Récompenses détenues par un utilisateur : liste (hors expirées) et utilisation unique.

from __future__ import annotations

import datetime as dt

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from app.core.exceptions import RewardAlreadyRedeemed, RewardExpired
from app.core.logging_config import get_loggers
from app.core.utils import ensure_utc, utcnow
from app.db.mongodb import transient_errors
from app.models.progress_dto import MyRewardOut
from app.models.user_progression import RewardGrant
from app.shared.constants import COLL_CHALLENGES, COLL_REWARD_GRANTS

logger, _, data_logger = get_loggers()


def is_expired(grant: RewardGrant, now: dt.datetime) -> bool:
    return grant.expires_at is not None and ensure_utc(grant.expires_at) <= now


class RewardWallet:
    """Service des récompenses utilisateur (collection `reward_grants`).

    Description:
        L'expiration est comparée en UTC côté service, comme les fenêtres d'événement.
        L'utilisation est un compare-and-set sur `redeemed` : deux requêtes concurrentes
        ne peuvent pas utiliser la même récompense.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def list_rewards(self, user_id: ObjectId, redeemed: bool | None = None) -> list[MyRewardOut]:
        """Lister les récompenses non expirées, les plus récentes d'abord.

        Args:
            user_id: Utilisateur concerné.
            redeemed: Filtre optionnel sur l'état d'utilisation.

        Returns:
            list[MyRewardOut]: Récompenses avec le nom du challenge d'origine.
        """
        query: dict = {"user_id": user_id}
        if redeemed is not None:
            query["redeemed"] = redeemed
        with transient_errors("reward list"):
            rows = await self.db[COLL_REWARD_GRANTS].find(query).sort("granted_at", -1).to_list(length=None)

        now = utcnow()
        grants = [g for g in (RewardGrant.model_validate(row) for row in rows) if not is_expired(g, now)]
        if not grants:
            return []

        with transient_errors("reward challenge names"):
            cursor = self.db[COLL_CHALLENGES].find({"_id": {"$in": list({g.challenge_id for g in grants})}}, {"name": 1})
            names = {c["_id"]: c.get("name") for c in await cursor.to_list(length=None)}

        return [
            MyRewardOut(**g.model_dump(exclude={"user_id"}), challenge_name=names.get(g.challenge_id))
            for g in grants
        ]

    async def redeem(self, user_id: ObjectId, reward_id: ObjectId) -> MyRewardOut | None:
        """Utiliser une récompense.

        Args:
            user_id: Détenteur.
            reward_id: Récompense à utiliser.

        Returns:
            MyRewardOut | None: Récompense utilisée, ou None si introuvable pour cet utilisateur.

        Raises:
            RewardAlreadyRedeemed: Déjà utilisée (y compris par une requête concurrente).
            RewardExpired: Validité dépassée.
        """
        coll = self.db[COLL_REWARD_GRANTS]
        with transient_errors("reward read"):
            doc = await coll.find_one({"_id": reward_id, "user_id": user_id})
        if doc is None:
            return None

        grant = RewardGrant.model_validate(doc)
        now = utcnow()
        if grant.redeemed:
            raise RewardAlreadyRedeemed("This reward has already been redeemed")
        if is_expired(grant, now):
            raise RewardExpired("This reward has expired")

        with transient_errors("reward redeem"):
            updated = await coll.find_one_and_update(
                {"_id": reward_id, "user_id": user_id, "redeemed": False},
                {"$set": {"redeemed": True, "redeemed_at": now}},
                return_document=ReturnDocument.AFTER,
            )
        if updated is None:
            raise RewardAlreadyRedeemed("This reward has already been redeemed")

        logger.info("Reward %s redeemed by user %s", reward_id, user_id)
        data_logger.log_data("reward_redeem", {"reward_id": reward_id, "value": grant.value}, user_id=user_id)
        return MyRewardOut(**RewardGrant.model_validate(updated).model_dump(exclude={"user_id"}))
