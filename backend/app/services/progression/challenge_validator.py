# backend/app/services/progression/challenge_validator.py
# Validation de configuration des challenges (références pendantes, combos cycliques) et registre des anomalies.

from __future__ import annotations

from typing import Any

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError

from app.core.exceptions import ConfigurationError
from app.core.logging_config import get_loggers
from app.core.utils import utcnow
from app.db.mongodb import transient_errors
from app.models.challenge import Challenge
from app.shared.constants import COLL_CHALLENGES, COLL_CONFIG_ISSUES

from .catalog import Catalog
from .requirement_checks import check_requirement

_, error_logger, _ = get_loggers()


class ChallengeValidator:
    """Service de validation des challenges.

    Description:
        Vérifie qu'une exigence peut produire un objectif strictement positif et que
        ses références existent : lieux et items au catalogue, challenges d'un combo
        (sans auto-référence ni cycle). Un challenge invalide est exclu de l'évaluation
        et de l'affichage, et consigné dans `challenge_config_issues` pour correction.
    """

    def __init__(self, db: AsyncIOMotorDatabase, catalog: Catalog | None = None):
        """Initialiser le service de validation.

        Args:
            db: Instance de base de données MongoDB.
            catalog: Accès catalogue partagé (créé si absent).
        """
        self.db = db
        self.catalog = catalog or Catalog(db)
        self._combo_graph: dict[ObjectId, list[ObjectId]] | None = None

    async def validate(self, challenge: Challenge) -> None:
        """Valider un challenge.

        Args:
            challenge: Challenge à vérifier.

        Raises:
            ConfigurationError: Première anomalie rencontrée.
        """
        await check_requirement(challenge.requirement, self.catalog, challenge.id)
        if challenge.requirement.kind == "combo":
            await self._validate_combo(challenge)

    async def _validate_combo(self, challenge: Challenge) -> None:
        cid = challenge.id
        deps = set(challenge.requirement.challenge_ids)

        with transient_errors("combo dependency lookup"):
            found = await self.db[COLL_CHALLENGES].distinct("_id", {"_id": {"$in": list(deps)}})
        missing = deps - set(found)
        if missing:
            raise ConfigurationError(
                "Combo references unknown challenges", cid, challenge_ids=sorted(str(d) for d in missing)
            )

        if cid is not None:
            graph = await self._load_combo_graph()
            graph[cid] = list(deps)
            cycle = self._find_cycle(graph, cid)
            if cycle:
                raise ConfigurationError(
                    "Combo dependency cycle", cid, cycle=[str(n) for n in cycle]
                )

    async def _load_combo_graph(self) -> dict[ObjectId, list[ObjectId]]:
        """Graphe combo -> dépendances, chargé une fois par instance."""
        if self._combo_graph is None:
            with transient_errors("combo graph"):
                cursor = self.db[COLL_CHALLENGES].find(
                    {"requirement.kind": "combo"}, {"requirement.challenge_ids": 1}
                )
                rows = await cursor.to_list(length=None)
            self._combo_graph = {
                row["_id"]: list((row.get("requirement") or {}).get("challenge_ids") or []) for row in rows
            }
        return self._combo_graph

    @staticmethod
    def _find_cycle(graph: dict[ObjectId, list[ObjectId]], start: ObjectId) -> list[ObjectId] | None:
        """Chemin revenant à `start` dans le graphe, ou None (parcours en profondeur itératif)."""
        stack: list[tuple[ObjectId, list[ObjectId]]] = [(start, [start])]
        visited: set[ObjectId] = set()
        while stack:
            node, path = stack.pop()
            for nxt in graph.get(node, []):
                if nxt == start:
                    return path + [start]
                if nxt not in visited:
                    visited.add(nxt)
                    stack.append((nxt, path + [nxt]))
        return None

    async def record_issue(self, error: ConfigurationError) -> None:
        """Consigner une anomalie (une entrée par challenge, mise à jour à chaque détection)."""
        error_logger.error(
            "Challenge %s misconfigured: %s %s", error.challenge_id, error.message, error.details
        )
        if error.challenge_id is None:
            return
        details = {k: v for k, v in error.details.items() if k != "challenge_id"}
        now = utcnow()
        with transient_errors("config issue record"):
            await self.db[COLL_CONFIG_ISSUES].update_one(
                {"challenge_id": error.challenge_id},
                {
                    "$set": {"code": error.code, "message": error.message, "details": details, "last_seen_at": now},
                    "$setOnInsert": {"first_seen_at": now},
                },
                upsert=True,
            )

    async def clear_issue(self, challenge_id: ObjectId) -> None:
        """Retirer l'anomalie d'un challenge redevenu valide."""
        with transient_errors("config issue clear"):
            await self.db[COLL_CONFIG_ISSUES].delete_one({"challenge_id": challenge_id})

    async def check(self, challenge: Challenge) -> bool:
        """Valider et tenir le registre à jour.

        Returns:
            bool: True si le challenge est utilisable.
        """
        try:
            await self.validate(challenge)
        except ConfigurationError as e:
            await self.record_issue(e)
            return False
        return True

    async def list_issues(self) -> list[dict[str, Any]]:
        """Anomalies consignées, les plus récentes d'abord."""
        with transient_errors("config issue list"):
            cursor = self.db[COLL_CONFIG_ISSUES].find({}).sort("last_seen_at", -1)
            return await cursor.to_list(length=None)

    async def scan_all(self) -> dict[str, int]:
        """Valider tous les challenges actifs et resynchroniser le registre.

        Returns:
            dict: {"checked", "invalid"}.
        """
        with transient_errors("challenge scan"):
            rows = await self.db[COLL_CHALLENGES].find({"is_active": True}).to_list(length=None)

        checked = invalid = 0
        for row in rows:
            checked += 1
            try:
                challenge = Challenge.model_validate(row)
            except ValidationError as e:
                invalid += 1
                await self.record_issue(
                    ConfigurationError("Malformed challenge document", row.get("_id"), errors=str(e.errors()[:3]))
                )
                continue
            if await self.check(challenge):
                await self.clear_issue(challenge.id)
            else:
                invalid += 1
        return {"checked": checked, "invalid": invalid}
