import httpx
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from app.core.logging_config import get_loggers
from app.core.settings import get_settings

settings = get_settings()

logger = get_loggers()[1]


async def check_mongodb(db: AsyncIOMotorDatabase) -> str:
    """
    Vérifie la connexion MongoDB

    Returns:
        "ok" si connecté, message d'erreur sinon
    """
    try:
        await db.command("ping")
        return "ok"
    except PyMongoError as e:
        logger.error(f"MongoDB health check failed: {e}")
        return f"error: {str(e)}"


async def check_reward_service() -> str:
    """
    Vérifie le service de récompenses (si configuré)

    Returns:
        "ok" si joignable ou non configuré (émetteur journalisé), message d'erreur sinon
    """
    if not settings.reward_service_url:
        return "ok"
    try:
        async with httpx.AsyncClient(timeout=settings.reward_service_timeout_s) as client:
            resp = await client.get(f"{settings.reward_service_url.rstrip('/')}/health")
        if resp.status_code >= 500:
            return f"error: HTTP {resp.status_code}"
        return "ok"
    except httpx.HTTPError as e:
        logger.error(f"Reward service health check failed: {e}")
        return f"error: {str(e)}"
