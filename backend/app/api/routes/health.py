from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.health_checks import check_mongodb, check_reward_service
from app.core.settings import get_settings
from app.core.utils import utcnow
from app.db.mongodb import get_db
from app.models.base.health import HealthCheck

settings = get_settings()

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthCheck,
    summary="Health check de l'API",
    description="Retourne le statut de l'API et de ses dépendances (BDD, service de récompenses)",
)
async def health(db: AsyncIOMotorDatabase = Depends(get_db)) -> JSONResponse:
    """
    Health check endpoint standard

    Vérifie :
    - MongoDB
    - Service de récompenses (si configuré)

    Returns:
        200 si tout OK, 503 si un service est down
    """
    checks = {
        "database": await check_mongodb(db),
        "reward_service": await check_reward_service(),
    }

    has_errors = any(check != "ok" for check in checks.values())
    overall_status = "degraded" if has_errors else "ok"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE if has_errors else status.HTTP_200_OK

    response = HealthCheck(
        status=overall_status,
        timestamp=utcnow(),
        version=settings.api_version,
        checks=checks,
    )

    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"))
