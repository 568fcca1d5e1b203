# backend/app/api/routes/base.py
# Routes de base (ping, référentiel des niveaux).

from fastapi import APIRouter

from app.services.progression.level_calculator import default_level_calculator

router = APIRouter()


@router.get(
    "/ping",
    tags=["Health"],
    summary="Vérification de santé de l'API",
    description="Retourne un message 'pong' permettant de tester que l'API répond.",
)
async def ping():
    """Health-check API.

    Description:
        Route basique permettant de vérifier la disponibilité de l'API.

    Returns:
        dict: Statut et message de réponse.
    """
    return {"status": "ok", "message": "pong"}


@router.get("/levels", tags=["Progression"], summary="Seuils et noms des niveaux de statut")
async def get_levels() -> list[dict]:
    """Table des niveaux (numéro, nom, XP minimale)."""
    calc = default_level_calculator
    return [
        {"level": i + 1, "name": name, "min_xp": threshold}
        for i, (name, threshold) in enumerate(zip(calc.names, calc.thresholds))
    ]
