# backend/app/db/seed_data.py
# Outils de remplissage initial : ping Mongo, index, catalogues (lieux, items de menu) et challenges de démonstration.

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Callable

from dotenv import load_dotenv
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError
from pymongo.errors import ConnectionFailure
from rich import print

from app.core.bson_utils import dump_mongo, to_object_id
from app.core.utils import utcnow
from app.db.seed_indexes import ensure_indexes
from app.models.challenge import Challenge
from app.models.requirement import normalize_item_key
from app.shared.constants import COLL_CHALLENGES, COLL_MENU_ITEMS, COLL_VENUES

load_dotenv()
SEEDS_FOLDER = Path(__file__).resolve().parents[2] / "data" / "seeds"


async def test_connection(db: AsyncIOMotorDatabase):
    """Teste la connexion à MongoDB (ping).

    Description:
        Envoie une commande `ping` à la base et affiche le résultat. En cas d'échec,
        termine le processus avec un code d'erreur (sys.exit).
    """
    try:
        await db.command("ping")
        print("✅ Connexion à MongoDB réussie.")
    except ConnectionFailure:
        print("❌ Échec de la connexion à MongoDB.")
        sys.exit(1)


def _venue_doc(raw: dict[str, Any]) -> dict[str, Any]:
    doc = dict(raw)
    doc["_id"] = to_object_id(doc["_id"])
    return doc


def _menu_item_doc(raw: dict[str, Any]) -> dict[str, Any]:
    doc = dict(raw)
    doc["key"] = normalize_item_key(doc["key"])
    return doc


def _challenge_doc(raw: dict[str, Any]) -> dict[str, Any]:
    challenge = Challenge.model_validate(raw)
    challenge.updated_at = utcnow()
    return dump_mongo(challenge)


async def seed_collection(
    db: AsyncIOMotorDatabase,
    file_path: Path,
    collection_name: str,
    key_field: str,
    to_doc: Callable[[dict[str, Any]], dict[str, Any]],
    force: bool = False,
) -> None:
    """Remplit une collection depuis un fichier JSON.

    Description:
        Charge le contenu JSON de `file_path`, convertit chaque entrée avec `to_doc` puis
        insère/met à jour les documents de `collection_name` par `key_field`.
        - Si `force=True`, vide la collection avant insertion.
        - Sinon, upsert : les documents existants non présents dans les seeds sont conservés
          pour préserver les références entre collections.

    Args:
        db: Base cible.
        file_path (Path): Fichier JSON (UTF-8).
        collection_name (str): Collection MongoDB cible.
        key_field (str): Champ d'identification des documents (`_id`, `key`).
        to_doc (Callable): Conversion entrée JSON -> document Mongo.
        force (bool): Réinitialiser la collection.

    Raises:
        FileNotFoundError: Si le fichier n'existe pas.
        json.JSONDecodeError: Si le JSON est invalide.
        ValidationError: Si une entrée est invalide.
    """
    coll = db[collection_name]
    with open(file_path, encoding="utf-8") as f:
        seed_data = json.load(f)

    docs = [to_doc(raw) for raw in seed_data]

    if force:
        await coll.delete_many({})
        print(f"♻️ Collection '{collection_name}' vidée (force=True).")

    upserted = modified = 0
    for doc in docs:
        key_value = doc[key_field]
        fields = {k: v for k, v in doc.items() if k not in ("_id", "created_at")}
        update: dict[str, Any] = {"$set": fields}
        if "created_at" in doc:
            update["$setOnInsert"] = {"created_at": doc["created_at"]}
        result = await coll.update_one({key_field: key_value}, update, upsert=True)
        if result.upserted_id is not None:
            upserted += 1
        elif result.modified_count:
            modified += 1

    print(f"✅ {upserted} documents insérés, {modified} mis à jour dans '{collection_name}'.")


async def seed_referentials(db: AsyncIOMotorDatabase | None = None, force: bool = False) -> None:
    """Seed des catalogues et des challenges de démonstration.

    Args:
        db: Base cible (base de l'application par défaut).
        force (bool, optional): Si vrai, réinitialise les collections avant insertion.
    """
    if db is None:
        from app.db.mongodb import db as app_db
        db = app_db

    await seed_collection(db, SEEDS_FOLDER / "venues.json", COLL_VENUES, "_id", _venue_doc, force=force)
    await seed_collection(db, SEEDS_FOLDER / "menu_items.json", COLL_MENU_ITEMS, "key", _menu_item_doc, force=force)
    try:
        await seed_collection(db, SEEDS_FOLDER / "challenges.json", COLL_CHALLENGES, "_id", _challenge_doc, force=force)
    except ValidationError as e:
        print(f"❌ Challenge seed invalide : {e}")
        raise


async def main(force: bool = False):
    from app.db.mongodb import db

    await test_connection(db)
    await ensure_indexes(db)
    await seed_referentials(db, force=force)


if __name__ == "__main__":
    asyncio.run(main(force="--force" in sys.argv))
