# backend/app/services/progression/progression_engine.py
# Orchestrateur : activité -> challenges concernés -> évaluation -> agrégation -> complétion/récompense -> combos.

from __future__ import annotations

from typing import Iterable

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError

from app.core.exceptions import ConfigurationError, TransientDependencyError
from app.core.logging_config import get_loggers
from app.core.settings import get_settings
from app.core.utils import utcnow
from app.db.mongodb import transient_errors
from app.models.activity import Activity, ActivityIn
from app.models.challenge import Challenge
from app.models.progress_dto import (
    ActivityResultOut,
    CompletedChallengeOut,
    RecomputeOut,
    ReprocessOut,
    RewardOut,
)
from app.models.user_progression import RewardGrant
from app.shared.constants import (
    ACTIVITY_ORDER,
    ACTIVITY_REVIEW,
    ACTIVITY_SCAN,
    COLL_CHALLENGES,
    COLL_PARKED_ACTIVITIES,
    COLL_PROGRESS,
)

from .activity_view import ActivityLog, UserActivityView
from .catalog import Catalog
from .challenge_validator import ChallengeValidator
from .completion_detector import ChallengeOutcome, CompletionDetector
from .progress_aggregator import ProgressAggregator
from .progress_query import ProgressQuery
from .requirement_evaluator import RequirementEvaluator
from .reward_dispenser import RewardDispenser
from .reward_issuer import RewardIssuer, build_reward_issuer

logger, error_logger, data_logger = get_loggers()


def is_affected_by(challenge: Challenge, activity_type: str) -> bool:
    """Vrai si une activité de ce type peut faire progresser le challenge (hors combos)."""
    req = challenge.requirement
    if req.kind == "count":
        return req.activity_type == activity_type
    if req.kind == "required_venues":
        return activity_type in req.activity_types
    if req.kind == "menu_combo":
        return activity_type == ACTIVITY_ORDER
    return False


def _completed_out(outcome: ChallengeOutcome) -> CompletedChallengeOut:
    return CompletedChallengeOut(
        challenge_id=outcome.challenge.id,
        name=outcome.challenge.name,
        xp_reward=outcome.challenge.xp_reward,
        reward_pending=outcome.reward_pending,
    )


def _reward_out(grant: RewardGrant) -> RewardOut:
    return RewardOut(
        challenge_id=grant.challenge_id,
        kind=grant.kind,
        value=grant.value,
        xp=grant.xp,
        badge_id=grant.badge_id,
        granted_at=grant.granted_at,
    )


class ProgressionEngine:
    """Moteur de challenges et de progression.

    Description:
        Point d'entrée des services sources. Chaque activité est enregistrée (idempotent
        sur `event_id`), puis réévalue de façon synchrone les challenges qu'elle concerne.
        Les combos dépendant d'un challenge complété par l'utilisateur sont réévalués ensuite,
        jusqu'à ce qu'aucune nouvelle complétion n'apparaisse. Une activité dont le
        traitement échoue sur une dépendance transitoire est parquée pour retraitement.
    """

    def __init__(self, db: AsyncIOMotorDatabase, issuer: RewardIssuer | None = None):
        """Initialiser le moteur.

        Args:
            db: Instance de base de données MongoDB.
            issuer: Émetteur de récompenses (défaut : selon la configuration).
        """
        self.db = db
        self.settings = get_settings()
        self.activity_log = ActivityLog(db)
        self.aggregator = ProgressAggregator(db)
        self.dispenser = RewardDispenser(db, issuer or build_reward_issuer(self.settings))
        self.detector = CompletionDetector(self.aggregator, self.dispenser)
        self.query = ProgressQuery(db)

    def activity_xp(self, activity_type: str) -> int:
        """XP forfaitaire d'une activité (scan de tampon, avis)."""
        if activity_type == ACTIVITY_SCAN:
            return self.settings.scan_xp
        if activity_type == ACTIVITY_REVIEW:
            return self.settings.review_xp
        return 0

    async def handle_activity(self, user_id: ObjectId, payload: ActivityIn) -> ActivityResultOut:
        """Traiter une activité.

        Args:
            user_id: Utilisateur auteur.
            payload: Événement reçu.

        Returns:
            ActivityResultOut: XP gagnée, challenges complétés, récompenses et statut.

        Raises:
            TransientDependencyError: Traitement impossible pour l'instant (activité parquée).
        """
        activity, duplicate = await self.activity_log.record(user_id, payload)
        if duplicate:
            logger.info("Duplicate activity event %s ignored", payload.event_id)
            return ActivityResultOut(
                activity_id=activity.id,
                duplicate=True,
                progression=await self.query.get_progression(user_id),
            )

        try:
            return await self._process(user_id, activity)
        except TransientDependencyError as e:
            await self._park(activity, e)
            raise

    async def _process(self, user_id: ObjectId, activity: Activity) -> ActivityResultOut:
        xp_gained = 0
        amount = self.activity_xp(activity.activity_type)
        if amount and await self.activity_log.claim_xp(activity.id):
            xp_gained += await self.dispenser.add_activity_xp(user_id, amount)

        rewards: list[RewardGrant] = await self.dispenser.retry_pending_rewards(user_id)

        challenges = await self._active_challenges()
        affected = [c for c in challenges if is_affected_by(c, activity.activity_type)]
        outcomes = await self._evaluate(user_id, affected)
        outcomes += await self._follow_combos(user_id, outcomes, await self._completed_ids(user_id))

        completed = [o for o in outcomes if o.newly_completed]
        rewards += [o.grant for o in completed if o.grant is not None]
        xp_gained += sum(g.xp for g in rewards)

        return ActivityResultOut(
            activity_id=activity.id,
            xp_gained=xp_gained,
            challenges_completed=[_completed_out(o) for o in completed],
            rewards_unlocked=[_reward_out(g) for g in rewards],
            progression=await self.query.get_progression(user_id),
        )

    async def _active_challenges(self, query: dict | None = None) -> list[Challenge]:
        with transient_errors("challenge load"):
            rows = await self.db[COLL_CHALLENGES].find({"is_active": True, **(query or {})}).to_list(length=None)
        out: list[Challenge] = []
        for row in rows:
            try:
                out.append(Challenge.model_validate(row))
            except ValidationError as e:
                error_logger.warning("Malformed challenge %s skipped: %s", row.get("_id"), e.errors()[:3])
        return out

    async def _evaluate(self, user_id: ObjectId, challenges: Iterable[Challenge]) -> list[ChallengeOutcome]:
        """Évaluer des challenges pour l'utilisateur ; les challenges mal configurés sont écartés."""
        catalog = Catalog(self.db)
        validator = ChallengeValidator(self.db, catalog)
        evaluator = RequirementEvaluator(catalog)
        view = UserActivityView(self.db, user_id)

        outcomes: list[ChallengeOutcome] = []
        for challenge in challenges:
            if not await validator.check(challenge):
                continue
            try:
                measure = await evaluator.evaluate(
                    challenge.requirement,
                    view,
                    window=challenge.effective_window,
                    challenge_id=challenge.id,
                    checked=True,
                )
            except ConfigurationError as e:
                await validator.record_issue(e)
                continue
            outcomes.append(await self.detector.process(user_id, challenge, measure))
        return outcomes

    async def _completed_ids(self, user_id: ObjectId) -> set[ObjectId]:
        """Challenges déjà complétés par l'utilisateur."""
        with transient_errors("completed progress"):
            ids = await self.db[COLL_PROGRESS].distinct(
                "challenge_id", {"user_id": user_id, "completed_at": {"$ne": None}}
            )
        return set(ids)

    async def _follow_combos(
        self,
        user_id: ObjectId,
        outcomes: list[ChallengeOutcome],
        completed: set[ObjectId] | None = None,
    ) -> list[ChallengeOutcome]:
        """Réévaluer les combos dépendant de challenges complétés (jusqu'à stabilité).

        Description:
            Le premier tour part des complétions de cet appel et, si `completed` est
            fourni, de toutes les complétions antérieures de l'utilisateur : un combo publié
            après ses dépendances, ou dont le suivi a été interrompu (activité parquée),
            rattrape ainsi son état. Les combos déjà complétés ne sont pas relus.

        Args:
            user_id: Utilisateur concerné.
            outcomes: Résultats de l'évaluation directe.
            completed: Challenges déjà complétés par l'utilisateur.

        Returns:
            list[ChallengeOutcome]: Résultats des combos réévalués.
        """
        followed: list[ChallengeOutcome] = []
        frontier = {o.challenge.id for o in outcomes if o.newly_completed} | (completed or set())
        skip = completed or set()
        while frontier:
            query: dict = {"requirement.kind": "combo", "requirement.challenge_ids": {"$in": list(frontier)}}
            if skip:
                query["_id"] = {"$nin": list(skip)}
            combos = await self._active_challenges(query)
            results = await self._evaluate(user_id, combos)
            followed += results
            frontier = {o.challenge.id for o in results if o.newly_completed}
            skip = set()
        return followed

    async def recompute_user(self, user_id: ObjectId) -> list[ChallengeOutcome]:
        """Réévaluer tous les challenges actifs d'un utilisateur (combos en dernier)."""
        challenges = await self._active_challenges()
        ordered = [c for c in challenges if c.requirement.kind != "combo"]
        ordered += [c for c in challenges if c.requirement.kind == "combo"]
        outcomes = await self._evaluate(user_id, ordered)
        return outcomes + await self._follow_combos(user_id, outcomes)

    async def recompute(self, user_id: ObjectId) -> RecomputeOut:
        """Réévaluer tous les challenges d'un utilisateur (rattrapage après correction d'un challenge).

        Returns:
            RecomputeOut: Nombre de challenges évalués, complétions obtenues, statut global.
        """
        outcomes = await self.recompute_user(user_id)
        completed = [o for o in outcomes if o.newly_completed]
        logger.info("Recomputed %d challenges for user %s, %d newly completed", len(outcomes), user_id, len(completed))
        return RecomputeOut(
            user_id=user_id,
            evaluated=len(outcomes),
            challenges_completed=[_completed_out(o) for o in completed],
            progression=await self.query.get_progression(user_id),
        )

    async def retry_pending_rewards(self, user_id: ObjectId) -> list[RewardOut]:
        """Reprendre les récompenses en attente d'un utilisateur."""
        return [_reward_out(g) for g in await self.dispenser.retry_pending_rewards(user_id)]

    async def _park(self, activity: Activity, error: TransientDependencyError) -> None:
        """Mettre une activité de côté pour retraitement ultérieur."""
        error_logger.error("Activity %s parked: %s", activity.id, error.message)
        data_logger.log_data(
            "activity_parked",
            {"activity_id": activity.id, "activity_type": activity.activity_type, "reason": error.message},
            user_id=activity.user_id,
        )
        now = utcnow()
        with transient_errors("activity park"):
            await self.db[COLL_PARKED_ACTIVITIES].update_one(
                {"activity_id": activity.id},
                {
                    "$set": {"user_id": activity.user_id, "reason": error.message, "last_failed_at": now},
                    "$setOnInsert": {"parked_at": now},
                    "$inc": {"attempts": 1},
                },
                upsert=True,
            )

    async def reprocess_parked_activities(self, limit: int = 100) -> ReprocessOut:
        """Retraiter les activités parquées (les plus anciennes d'abord).

        Args:
            limit (int): Nombre maximal d'activités traitées.

        Returns:
            ReprocessOut: Bilan (traitées, encore parquées).
        """
        with transient_errors("parked list"):
            parked = await self.db[COLL_PARKED_ACTIVITIES].find({}).sort("parked_at", 1).to_list(length=limit)

        processed = 0
        for entry in parked:
            activity = await self.activity_log.get(entry["activity_id"])
            if activity is not None:
                try:
                    await self._process(activity.user_id, activity)
                except TransientDependencyError as e:
                    await self._park(activity, e)
                    continue
            with transient_errors("parked clear"):
                await self.db[COLL_PARKED_ACTIVITIES].delete_one({"_id": entry["_id"]})
            processed += 1

        with transient_errors("parked count"):
            remaining = await self.db[COLL_PARKED_ACTIVITIES].count_documents({})
        logger.info("Reprocessed %d parked activities, %d remaining", processed, remaining)
        return ReprocessOut(processed=processed, still_parked=remaining)
