# backend/app/services/progression/activity_view.py
# Journal d'activités (append-only) et vue en lecture de l'historique d'un utilisateur.

from __future__ import annotations

from typing import Any, Iterable

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from app.core.bson_utils import dump_mongo
from app.core.utils import ensure_utc, utcnow
from app.db.mongodb import transient_errors
from app.models.activity import Activity, ActivityIn
from app.models.requirement import EventWindow
from app.shared.constants import COLL_ACTIVITIES, COLL_PROGRESS


class ActivityLog:
    """Enregistrement des activités.

    Description:
        Les activités ne sont jamais modifiées ni supprimées par le moteur. Un `event_id`
        déjà vu (rejeu côté source) renvoie l'activité existante sans nouvelle écriture.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def record(self, user_id: ObjectId, payload: ActivityIn) -> tuple[Activity, bool]:
        """Enregistrer une activité.

        Args:
            user_id: Utilisateur auteur.
            payload: Événement reçu.

        Returns:
            tuple: (activité, is_duplicate).
        """
        coll = self.db[COLL_ACTIVITIES]

        if payload.event_id:
            with transient_errors("activity lookup"):
                existing = await coll.find_one({"event_id": payload.event_id})
            if existing:
                return Activity.model_validate(existing), True

        activity = Activity(user_id=user_id, **payload.model_dump())
        doc = dump_mongo(activity)
        try:
            with transient_errors("activity insert"):
                result = await coll.insert_one(doc)
        except DuplicateKeyError:
            # course entre deux livraisons du même event_id
            existing = await coll.find_one({"event_id": payload.event_id})
            return Activity.model_validate(existing), True

        activity.id = result.inserted_id
        return activity, False

    async def claim_xp(self, activity_id: ObjectId) -> bool:
        """Réserver le crédit d'XP d'une activité (compare-and-set sur `xp_credited_at`).

        Returns:
            bool: True si l'appelant doit créditer l'XP (au plus une fois par activité).
        """
        with transient_errors("activity xp claim"):
            result = await self.db[COLL_ACTIVITIES].update_one(
                {"_id": activity_id, "xp_credited_at": None},
                {"$set": {"xp_credited_at": utcnow()}},
            )
        return result.modified_count == 1

    async def get(self, activity_id: ObjectId) -> Activity | None:
        with transient_errors("activity read"):
            doc = await self.db[COLL_ACTIVITIES].find_one({"_id": activity_id})
        return Activity.model_validate(doc) if doc else None


class UserActivityView:
    """Vue de l'historique d'activité d'un utilisateur.

    Description:
        Charge une seule fois les activités de l'utilisateur puis répond aux requêtes
        des évaluateurs (filtrage par type et par fenêtre en mémoire). La complétion des
        challenges référencés par un combo est relue à chaque appel : elle évolue pendant
        le traitement d'une même activité.
    """

    def __init__(self, db: AsyncIOMotorDatabase, user_id: ObjectId):
        self.db = db
        self.user_id = user_id
        self._activities: list[dict[str, Any]] | None = None

    async def _load(self) -> list[dict[str, Any]]:
        if self._activities is None:
            projection = {"activity_type": 1, "venue_id": 1, "items": 1, "occurred_at": 1}
            with transient_errors("activity history"):
                cursor = self.db[COLL_ACTIVITIES].find({"user_id": self.user_id}, projection)
                self._activities = await cursor.to_list(length=None)
        return self._activities

    async def qualifying(
        self,
        activity_types: Iterable[str],
        window: EventWindow | None = None,
    ) -> list[dict[str, Any]]:
        """Activités des types donnés, dans la fenêtre si elle est définie.

        Args:
            activity_types: Types acceptés.
            window: Fenêtre d'événement optionnelle.

        Returns:
            list[dict]: Documents d'activité (projection).
        """
        types = set(activity_types)
        out = []
        for doc in await self._load():
            if doc.get("activity_type") not in types:
                continue
            if window is not None and not window.contains(ensure_utc(doc["occurred_at"])):
                continue
            out.append(doc)
        return out

    async def completed_challenges(
        self,
        challenge_ids: Iterable[ObjectId],
        window: EventWindow | None = None,
    ) -> set[ObjectId]:
        """Challenges référencés dont la progression de l'utilisateur est complétée.

        Args:
            challenge_ids: Challenges à examiner.
            window: Si définie, seules les complétions dans la fenêtre comptent.

        Returns:
            set[ObjectId]: Challenges complétés.
        """
        ids = list(set(challenge_ids))
        if not ids:
            return set()
        with transient_errors("dependency progress"):
            cursor = self.db[COLL_PROGRESS].find(
                {"user_id": self.user_id, "challenge_id": {"$in": ids}, "completed_at": {"$ne": None}},
                {"challenge_id": 1, "completed_at": 1},
            )
            rows = await cursor.to_list(length=None)
        return {
            row["challenge_id"]
            for row in rows
            if window is None or window.contains(ensure_utc(row["completed_at"]))
        }
