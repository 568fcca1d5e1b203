# backend/app/api/routes/my_progression.py
# Statut global de l'utilisateur : XP, niveau dérivé, badges.

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.dependencies import get_progress_query
from app.core.security import CurrentUserId
from app.models.progress_dto import ProgressionOut
from app.services.progression.progress_query import ProgressQuery

router = APIRouter(prefix="/my/progression", tags=["my-progression"])


@router.get(
    "",
    response_model=ProgressionOut,
    summary="Mon statut",
    description="Retourne l'XP cumulée, le niveau (1–10) et son nom, le seuil suivant et les badges.",
)
async def get_my_progression(
    user_id: CurrentUserId,
    query: ProgressQuery = Depends(get_progress_query),
) -> ProgressionOut:
    return await query.get_progression(user_id)
