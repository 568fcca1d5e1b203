# backend/app/services/progression/catalog.py
# Lecture des catalogues lieux / items de menu (lecture seule) pour valider et filtrer les exigences.

from __future__ import annotations

from typing import Iterable

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.db.mongodb import transient_errors
from app.models.requirement import normalize_item_key
from app.shared.constants import COLL_MENU_ITEMS, COLL_VENUES


class Catalog:
    """Accès aux référentiels `venues` et `menu_items`.

    Description:
        Les catalogues appartiennent à d'autres services ; le moteur ne fait que les lire.
        Les résultats des filtres de lieux sont mémorisés le temps de l'instance
        (une instance par traitement d'activité).
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        """Initialiser l'accès catalogue.

        Args:
            db: Instance de base de données MongoDB.
        """
        self.db = db
        self._venue_filter_cache: dict[tuple, set[ObjectId]] = {}

    async def missing_venue_ids(self, venue_ids: Iterable[ObjectId]) -> set[ObjectId]:
        """Lieux référencés mais absents du catalogue.

        Args:
            venue_ids: Identifiants à vérifier.

        Returns:
            set[ObjectId]: Identifiants introuvables.
        """
        wanted = set(venue_ids)
        if not wanted:
            return set()
        with transient_errors("venue catalog lookup"):
            found = await self.db[COLL_VENUES].distinct("_id", {"_id": {"$in": list(wanted)}})
        return wanted - set(found)

    async def missing_menu_items(self, items: Iterable[str]) -> set[str]:
        """Items de menu (clés normalisées) absents du catalogue."""
        wanted = {normalize_item_key(i) for i in items}
        if not wanted:
            return set()
        with transient_errors("menu catalog lookup"):
            found = await self.db[COLL_MENU_ITEMS].distinct("key", {"key": {"$in": list(wanted)}})
        return wanted - set(found)

    async def venue_ids_matching(
        self,
        venue_types: list[str],
        categories: list[str],
        regions: list[str],
    ) -> set[ObjectId]:
        """Lieux satisfaisant les filtres type/catégorie/région (ET entre filtres, OU à l'intérieur).

        Args:
            venue_types: Types de lieu acceptés (vide = tous).
            categories: Catégories acceptées, au moins une en commun (vide = toutes).
            regions: Régions acceptées (vide = toutes).

        Returns:
            set[ObjectId]: Identifiants des lieux correspondants.
        """
        key = (tuple(sorted(venue_types)), tuple(sorted(categories)), tuple(sorted(regions)))
        if key in self._venue_filter_cache:
            return self._venue_filter_cache[key]

        query: dict = {}
        if venue_types:
            query["type"] = {"$in": venue_types}
        if categories:
            query["categories"] = {"$in": categories}
        if regions:
            query["region"] = {"$in": regions}

        with transient_errors("venue catalog filter"):
            ids = set(await self.db[COLL_VENUES].distinct("_id", query))
        self._venue_filter_cache[key] = ids
        return ids
