# backend/tests/test_seed_data.py

from app.db.seed_data import seed_referentials
from app.services.progression.challenge_classifier import ChallengeClassifier
from app.services.progression.challenge_validator import ChallengeValidator
from app.shared.constants import COLL_CHALLENGES, COLL_MENU_ITEMS, COLL_VENUES


async def test_seeds_load_and_validate(db):
    await seed_referentials(db)

    assert await db[COLL_VENUES].count_documents({}) == 13
    assert await db[COLL_MENU_ITEMS].count_documents({}) == 11
    total = await db[COLL_CHALLENGES].count_documents({})
    assert total == 25

    # aucune anomalie de configuration dans le jeu de démonstration
    assert await ChallengeValidator(db).scan_all() == {"checked": total, "invalid": 0}


async def test_seeding_twice_is_idempotent(db):
    await seed_referentials(db)
    await seed_referentials(db)

    assert await db[COLL_CHALLENGES].count_documents({}) == 25
    assert await db[COLL_MENU_ITEMS].count_documents({}) == 11


async def test_seeded_challenges_cover_every_category(db):
    await seed_referentials(db)
    rows = await db[COLL_CHALLENGES].find({}).to_list(length=None)

    buckets = ChallengeClassifier().partition(rows)

    assert all(buckets[category] for category in buckets)
