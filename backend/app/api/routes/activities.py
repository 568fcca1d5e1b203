# backend/app/api/routes/activities.py
# Réception des activités (check-in, avis, scan, commande) émises par les services sources.

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from app.api.dependencies import get_engine
from app.core.security import CurrentUserId
from app.models.activity import ActivityIn
from app.models.progress_dto import ActivityResultOut
from app.services.progression.progression_engine import ProgressionEngine

router = APIRouter(prefix="/activities", tags=["activities"])


@router.post(
    "",
    response_model=ActivityResultOut,
    status_code=status.HTTP_200_OK,
    summary="Enregistrer une activité et mettre à jour la progression",
    description=(
        "Enregistre l'activité de l'utilisateur courant puis réévalue les challenges concernés.\n\n"
        "- Un `event_id` déjà reçu est ignoré (`duplicate: true`)\n"
        "- Retourne l'XP gagnée, les challenges complétés et les récompenses débloquées\n"
        "- 503 si une dépendance est indisponible : l'activité est conservée et retraitée plus tard"
    ),
)
async def post_activity(
    payload: ActivityIn,
    user_id: CurrentUserId,
    engine: ProgressionEngine = Depends(get_engine),
) -> ActivityResultOut:
    """Traiter une activité.

    Args:
        payload (ActivityIn): Événement (type, lieu, items, date).

    Returns:
        ActivityResultOut: Résultat du traitement.
    """
    return await engine.handle_activity(user_id, payload)
