# backend/app/services/progression/completion_detector.py
# Machine à états d'un challenge utilisateur : NotStarted -> InProgress -> Completed -> Rewarded.

from __future__ import annotations

from typing import Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict

from app.core.exceptions import TransientDependencyError
from app.core.logging_config import get_loggers
from app.models._shared import RequirementProgress
from app.models.challenge import Challenge
from app.models.user_challenge_progress import ProgressState, UserChallengeProgress
from app.models.user_progression import RewardGrant

from .progress_aggregator import ProgressAggregator
from .reward_dispenser import RewardDispenser

logger, _, _ = get_loggers()


class ChallengeOutcome(BaseModel):
    """Résultat du traitement d'un challenge pour une activité.

    Attributes:
        challenge (Challenge): Challenge évalué.
        progress (UserChallengeProgress): Enregistrement après écriture.
        newly_completed (bool): Cette évaluation a effectué la transition vers « complété ».
        grant (RewardGrant | None): Récompense accordée lors de ce traitement.
        reward_pending (bool): Complété mais distribution à reprendre.
    """
    challenge: Challenge
    progress: UserChallengeProgress
    newly_completed: bool = False
    grant: Optional[RewardGrant] = None
    reward_pending: bool = False

    model_config = ConfigDict(arbitrary_types_allowed=True)


class CompletionDetector:
    """Service de détection de complétion.

    Description:
        La transition InProgress -> Completed est portée par l'écriture conditionnelle de
        l'agrégateur (seul le gagnant de la course voit `newly_completed`). Le gagnant
        déclenche la distribution ; un échec de distribution laisse le challenge complété
        avec une récompense en attente, reprise par `RewardDispenser.retry_pending_rewards`.
    """

    def __init__(self, aggregator: ProgressAggregator, dispenser: RewardDispenser):
        self.aggregator = aggregator
        self.dispenser = dispenser

    @staticmethod
    def state(progress: UserChallengeProgress | None) -> ProgressState:
        """État courant (not_started si aucun enregistrement)."""
        if progress is None:
            return "not_started"
        return progress.state

    async def process(
        self,
        user_id: ObjectId,
        challenge: Challenge,
        measure: RequirementProgress,
    ) -> ChallengeOutcome:
        """Enregistrer une mesure et, à la complétion, distribuer la récompense.

        Args:
            user_id: Utilisateur.
            challenge: Challenge évalué.
            measure: Mesure fraîche de l'exigence.

        Returns:
            ChallengeOutcome: État après traitement.

        Raises:
            TransientDependencyError: Conflit non résolu dans la borne de retries.
        """
        progress, newly_completed = await self.aggregator.record(user_id, challenge, measure)
        outcome = ChallengeOutcome(challenge=challenge, progress=progress, newly_completed=newly_completed)
        if not newly_completed:
            return outcome

        logger.info("Challenge %s completed by %s", challenge.id, user_id)
        try:
            grant, newly_granted = await self.dispenser.dispense(user_id, challenge)
        except TransientDependencyError as e:
            logger.warning("Reward for %s/%s deferred: %s", user_id, challenge.id, e)
            outcome.reward_pending = True
            return outcome

        if newly_granted:
            outcome.grant = grant
        return outcome
