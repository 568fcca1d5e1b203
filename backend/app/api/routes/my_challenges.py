# backend/app/api/routes/my_challenges.py
# Routes "mes challenges" : progression par challenge, regroupée par catégorie, et détail.

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from app.api.dependencies import get_progress_query
from app.core.bson_utils import PyObjectId
from app.core.security import CurrentUserId, get_current_user_id
from app.models.progress_dto import ChallengeProgressOut, MyChallengesOut
from app.services.progression.progress_query import ProgressQuery
from app.shared.constants import CATEGORIES

router = APIRouter(
    prefix="/my/challenges",
    tags=["my-challenges"],
    dependencies=[Depends(get_current_user_id)],
)


@router.get(
    "",
    response_model=MyChallengesOut,
    summary="Lister mes challenges",
    description=(
        "Retourne les challenges actifs avec la progression de l'utilisateur, "
        "regroupés par catégorie (special, menu_combo, venue, combo, regular).\n\n"
        "- Filtre optionnel `category`\n"
        "- Les challenges mal configurés sont exclus"
    ),
)
async def list_my_challenges(
    user_id: CurrentUserId,
    category: str | None = Query(default=None, enum=list(CATEGORIES), description="Filtrer par catégorie."),
    query: ProgressQuery = Depends(get_progress_query),
) -> MyChallengesOut:
    """Lister mes challenges.

    Args:
        category (str | None): Catégorie à filtrer.

    Returns:
        MyChallengesOut: Groupes par catégorie et compteurs.
    """
    return await query.list_my_challenges(user_id, category)


@router.get(
    "/{challenge_id}",
    response_model=ChallengeProgressOut,
    summary="Détail d'un challenge",
    description="Retourne la progression de l'utilisateur pour un challenge actif.",
)
async def get_my_challenge(
    user_id: CurrentUserId,
    challenge_id: PyObjectId = Path(..., description="Identifiant du challenge."),
    query: ProgressQuery = Depends(get_progress_query),
) -> ChallengeProgressOut:
    """Détail d'un challenge.

    Raises:
        HTTPException: 404 si le challenge est introuvable, inactif ou mal configuré.
    """
    item = await query.get_my_challenge(user_id, challenge_id)
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Challenge not found")
    return item
