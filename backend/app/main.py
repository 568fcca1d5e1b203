# backend/app/main.py

from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.routes import routers
from app.core.exception_handlers import register_exception_handlers
from app.core.logging_config import get_loggers
from app.core.middleware import MaxBodySizeMiddleware
from app.core.settings import get_settings
from app.db.seed_data import seed_referentials
from app.db.seed_indexes import ensure_indexes

settings = get_settings()
logger, _, _ = get_loggers()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- startup ---
    await ensure_indexes()  # toujours, idempotent

    if settings.seed_on_startup:
        await seed_referentials()

    logger.info("%s started (%s)", settings.app_name, settings.environment)

    yield  # l'app tourne ici

    # --- shutdown ---
    logger.info("%s stopped", settings.app_name)


app = FastAPI(title=f"{settings.app_name} API", version=settings.api_version, lifespan=lifespan)
# Ordre des middlewares = ordre d'ajout : la limite de taille passe en premier.
app.add_middleware(
    MaxBodySizeMiddleware,
    max_body_size=settings.max_body_bytes,
)

register_exception_handlers(app)

for r in routers:
    app.include_router(r)
