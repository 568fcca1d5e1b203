# backend/tests/conftest.py
# Base MongoDB en mémoire (mongomock-motor), catalogue de test et fabrique de challenges.

import os
import tempfile

# Avant tout import de `app` : les loggers écrivent dans un dossier jetable
os.environ.setdefault("LOGS_DIR", tempfile.mkdtemp(prefix="stampquest-logs-"))
os.environ["REWARD_SERVICE_URL"] = ""

import pytest  # noqa: E402
from bson import ObjectId  # noqa: E402
from mongomock_motor import AsyncMongoMockClient  # noqa: E402

from app.core.bson_utils import dump_mongo  # noqa: E402
from app.core.settings import get_settings  # noqa: E402
from app.models.challenge import Challenge  # noqa: E402
from app.shared.constants import (  # noqa: E402
    COLL_CHALLENGES,
    COLL_CONFIG_ISSUES,
    COLL_MENU_ITEMS,
    COLL_PARKED_ACTIVITIES,
    COLL_PROGRESS,
    COLL_PROGRESSIONS,
    COLL_REWARD_GRANTS,
    COLL_VENUES,
)

# Lieux du catalogue de test
BAKERY_TBILISI = ObjectId("66a0000000000000000000a1")
BAKERY_BATUMI = ObjectId("66a0000000000000000000a2")
WINERY_KAKHETI = ObjectId("66a0000000000000000000a3")
WINERY_TELAVI = ObjectId("66a0000000000000000000a4")
GUESTHOUSE_KAZBEGI = ObjectId("66a0000000000000000000a5")

VENUES = [
    {"_id": BAKERY_TBILISI, "name": "Sakhli Bakery", "type": "restaurant", "categories": ["khachapuri"], "region": "Tbilisi"},
    {"_id": BAKERY_BATUMI, "name": "Adjaruli House", "type": "restaurant", "categories": ["khachapuri"], "region": "Adjara"},
    {"_id": WINERY_KAKHETI, "name": "Kindzmarauli Cellar", "type": "winery", "categories": ["wine"], "region": "Kakheti"},
    {"_id": WINERY_TELAVI, "name": "Telavi Marani", "type": "winery", "categories": ["wine"], "region": "Kakheti"},
    {"_id": GUESTHOUSE_KAZBEGI, "name": "Kazbegi Guesthouse", "type": "guesthouse", "categories": ["village_food"], "region": "Mtskheta-Mtianeti"},
]

MENU_ITEMS = ["khachapuri", "wine", "salad", "khinkali", "dessert"]


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    """Retries courts : les tests de reprise n'attendent pas le backoff réel."""
    settings = get_settings()
    monkeypatch.setattr(settings, "retry_max_attempts", 3)
    monkeypatch.setattr(settings, "retry_base_delay_s", 0.001)
    monkeypatch.setattr(settings, "retry_max_delay_s", 0.002)
    return settings


@pytest.fixture
async def db():
    """Base vide avec les index uniques dont dépendent les garanties « une seule fois »."""
    database = AsyncMongoMockClient()[f"stampquest_test_{ObjectId()}"]
    await database[COLL_PROGRESS].create_index([("user_id", 1), ("challenge_id", 1)], unique=True)
    await database[COLL_PROGRESSIONS].create_index([("user_id", 1)], unique=True)
    await database[COLL_REWARD_GRANTS].create_index([("user_id", 1), ("challenge_id", 1)], unique=True)
    await database[COLL_PARKED_ACTIVITIES].create_index([("activity_id", 1)], unique=True)
    await database[COLL_CONFIG_ISSUES].create_index([("challenge_id", 1)], unique=True)
    await database[COLL_MENU_ITEMS].create_index([("key", 1)], unique=True)
    return database


@pytest.fixture
async def catalog_db(db):
    """Base avec le catalogue de lieux et d'items de menu."""
    await db[COLL_VENUES].insert_many([dict(v) for v in VENUES])
    await db[COLL_MENU_ITEMS].insert_many([{"key": k, "name": k.title()} for k in MENU_ITEMS])
    return db


@pytest.fixture
def make_challenge(db):
    """Fabrique : construit un `Challenge` valide, l'insère et le retourne."""

    async def _make(name, requirement, *, xp_reward=50, reward=None, insert=True, **extra):
        challenge = Challenge(
            _id=extra.pop("_id", None) or ObjectId(),
            name=name,
            requirement=requirement,
            xp_reward=xp_reward,
            reward=reward or {"kind": "badge", "value": name},
            **extra,
        )
        if insert:
            await db[COLL_CHALLENGES].insert_one(dump_mongo(challenge))
        return challenge

    return _make


@pytest.fixture
def user_id():
    return ObjectId()
