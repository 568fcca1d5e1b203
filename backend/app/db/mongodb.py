# backend/app/db/mongodb.py
# Initialise le client MongoDB à partir des settings et expose les accès base/collections.

from contextlib import contextmanager

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import AutoReconnect, ExecutionTimeout, NetworkTimeout, ServerSelectionTimeoutError

from app.core.exceptions import TransientDependencyError
from app.core.settings import get_settings

settings = get_settings()

client: AsyncIOMotorClient = AsyncIOMotorClient(settings.mongodb_uri)
db: AsyncIOMotorDatabase = client[settings.mongodb_db]


def get_db() -> AsyncIOMotorDatabase:
    """Dépendance FastAPI : base MongoDB de l'application.

    Description:
        Les services prennent la base en paramètre ; les tests surchargent cette
        dépendance avec une base en mémoire.

    Returns:
        AsyncIOMotorDatabase: Base configurée (`settings.mongodb_db`).
    """
    return db


@contextmanager
def transient_errors(label: str):
    """Convertir les erreurs réseau/timeout PyMongo en `TransientDependencyError`.

    Args:
        label (str): Opération concernée (pour le message).

    Raises:
        TransientDependencyError: Si MongoDB est momentanément indisponible.
    """
    try:
        yield
    except (AutoReconnect, NetworkTimeout, ServerSelectionTimeoutError, ExecutionTimeout) as e:
        raise TransientDependencyError(f"{label}: MongoDB unavailable ({type(e).__name__})") from e
