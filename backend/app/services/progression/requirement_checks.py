# backend/app/services/progression/requirement_checks.py
# Contrôles de cohérence d'une exigence (objectif positif, références au catalogue), partagés validation/évaluation.

from __future__ import annotations

from bson import ObjectId

from app.core.exceptions import ConfigurationError
from app.models.requirement import Requirement

from .catalog import Catalog


async def check_requirement(requirement: Requirement, catalog: Catalog, challenge_id: ObjectId | None = None) -> None:
    """Vérifier qu'une exigence est évaluable.

    Description:
        Objectif strictement positif et références existantes (lieux, items). Pour un
        combo, seules l'absence de dépendance et l'auto-référence sont vérifiées ici ;
        dépendances pendantes et cycles relèvent de `ChallengeValidator`.

    Args:
        requirement: Exigence typée.
        catalog: Accès aux catalogues lieux / items.
        challenge_id: Challenge concerné (contexte des erreurs).

    Raises:
        ConfigurationError: Première anomalie rencontrée.
    """
    if requirement.kind == "count":
        if requirement.has_venue_filter:
            venues = await catalog.venue_ids_matching(
                requirement.venue_types, requirement.categories, requirement.regions
            )
            if not venues:
                raise ConfigurationError(
                    "Venue filter matches no venue in the catalog",
                    challenge_id,
                    venue_types=requirement.venue_types,
                    categories=requirement.categories,
                    regions=requirement.regions,
                )

    elif requirement.kind == "required_venues":
        if not requirement.venue_ids:
            raise ConfigurationError("Required venue set is empty", challenge_id)
        missing = await catalog.missing_venue_ids(set(requirement.venue_ids))
        if missing:
            raise ConfigurationError(
                "Requirement references unknown venues",
                challenge_id,
                venue_ids=sorted(str(v) for v in missing),
            )

    elif requirement.kind == "menu_combo":
        keys = requirement.item_keys
        if not keys:
            raise ConfigurationError("Menu combo lists no item", challenge_id)
        if requirement.required_count > len(keys):
            raise ConfigurationError(
                f"required_count ({requirement.required_count}) exceeds the {len(keys)} listed items",
                challenge_id,
            )
        missing = await catalog.missing_menu_items(keys)
        if missing:
            raise ConfigurationError("Requirement references unknown menu items", challenge_id, items=sorted(missing))

    elif requirement.kind == "combo":
        deps = set(requirement.challenge_ids)
        if not deps:
            raise ConfigurationError("Combo references no challenge", challenge_id)
        if challenge_id is not None and challenge_id in deps:
            raise ConfigurationError("Combo references itself", challenge_id)
