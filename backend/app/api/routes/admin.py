# backend/app/api/routes/admin.py
# Routes d'administration : anomalies de configuration, retraitement des activités parquées, reprise des récompenses, réévaluation.

from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Query

from app.api.dependencies import get_challenge_validator, get_engine
from app.core.bson_utils import PyObjectId
from app.core.security import require_admin
from app.models.progress_dto import ConfigIssueOut, RecomputeOut, ReprocessOut, RewardRetryOut
from app.services.progression.challenge_validator import ChallengeValidator
from app.services.progression.progression_engine import ProgressionEngine

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)


@router.get(
    "/challenges/issues",
    response_model=list[ConfigIssueOut],
    summary="Anomalies de configuration des challenges",
    description=(
        "Liste les challenges exclus de l'évaluation (références pendantes, combo cyclique, "
        "`required_count` incohérent).\n\n- `rescan=true` revalide d'abord tous les challenges actifs"
    ),
)
async def list_config_issues(
    rescan: bool = Query(False, description="Revalider tous les challenges actifs avant de lister."),
    validator: ChallengeValidator = Depends(get_challenge_validator),
) -> list[ConfigIssueOut]:
    if rescan:
        await validator.scan_all()
    return [ConfigIssueOut.model_validate(doc) for doc in await validator.list_issues()]


@router.post(
    "/progression/reprocess",
    response_model=ReprocessOut,
    summary="Retraiter les activités parquées",
)
async def reprocess_parked(
    limit: int = Query(100, ge=1, le=1000, description="Nombre maximal d'activités (1–1000)."),
    engine: ProgressionEngine = Depends(get_engine),
) -> ReprocessOut:
    return await engine.reprocess_parked_activities(limit)


@router.post(
    "/progression/{user_id}/rewards/retry",
    response_model=RewardRetryOut,
    summary="Reprendre les récompenses en attente d'un utilisateur",
)
async def retry_rewards(
    user_id: PyObjectId = Path(..., description="Identifiant de l'utilisateur."),
    engine: ProgressionEngine = Depends(get_engine),
) -> RewardRetryOut:
    rewards = await engine.retry_pending_rewards(user_id)
    return RewardRetryOut(user_id=user_id, rewards_unlocked=rewards)


@router.post(
    "/progression/{user_id}/recompute",
    response_model=RecomputeOut,
    summary="Réévaluer tous les challenges d'un utilisateur",
    description=(
        "Rattrapage après correction d'un challenge mal configuré : réévalue tous les challenges "
        "actifs (combos en dernier) et accorde les récompenses dues, une seule fois."
    ),
)
async def recompute_progression(
    user_id: PyObjectId = Path(..., description="Identifiant de l'utilisateur."),
    engine: ProgressionEngine = Depends(get_engine),
) -> RecomputeOut:
    return await engine.recompute(user_id)
