# backend/app/api/routes/__init__.py

from .activities import router as activities_router
from .admin import router as admin_router
from .base import router as base_router
from .health import router as health_router
from .my_challenges import router as my_challenges_router
from .my_progression import router as my_progression_router
from .my_rewards import router as my_rewards_router

routers = [
    base_router,
    health_router,
    activities_router,
    my_challenges_router,
    my_progression_router,
    my_rewards_router,
    admin_router,
]
