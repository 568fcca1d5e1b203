# backend/app/services/progression/requirement_evaluator.py
# Évaluation d'une exigence typée contre l'historique d'un utilisateur : (current, required).

from __future__ import annotations

from bson import ObjectId

from app.core.exceptions import ConfigurationError
from app.models._shared import RequirementProgress
from app.models.requirement import (
    ComboRequirement,
    CountRequirement,
    EventWindow,
    MenuComboRequirement,
    Requirement,
    RequiredVenuesRequirement,
    normalize_item_key,
)
from app.shared.constants import ACTIVITY_ORDER

from .activity_view import UserActivityView
from .catalog import Catalog
from .requirement_checks import check_requirement


class RequirementEvaluator:
    """Service d'évaluation des exigences.

    Description:
        Une méthode par variante d'exigence, choisie par `kind` (pas d'inspection de forme).
        Une exigence qui ne peut pas produire un objectif strictement positif est une erreur
        de configuration : elle est levée, jamais ramenée à `required = 0`. Les contrôles
        sont ceux de `check_requirement` ; un appelant qui a déjà validé le challenge
        passe `checked=True`.
    """

    def __init__(self, catalog: Catalog):
        """Initialiser l'évaluateur.

        Args:
            catalog: Accès aux catalogues lieux / items.
        """
        self.catalog = catalog
        self._dispatch = {
            "count": self._evaluate_count,
            "required_venues": self._evaluate_required_venues,
            "menu_combo": self._evaluate_menu_combo,
            "combo": self._evaluate_combo,
        }

    async def evaluate(
        self,
        requirement: Requirement,
        view: UserActivityView,
        *,
        window: EventWindow | None = None,
        challenge_id: ObjectId | None = None,
        checked: bool = False,
    ) -> RequirementProgress:
        """Mesurer une exigence pour l'utilisateur de `view`.

        Args:
            requirement: Exigence typée.
            view: Historique de l'utilisateur.
            window: Fenêtre effective (défaut : celle de l'exigence).
            challenge_id: Challenge évalué (contexte des erreurs).
            checked: Exigence déjà validée par l'appelant.

        Returns:
            RequirementProgress: (current, required).

        Raises:
            ConfigurationError: Exigence incohérente ou référence pendante.
        """
        handler = self._dispatch.get(requirement.kind)
        if handler is None:
            raise ConfigurationError(f"Unsupported requirement kind {requirement.kind!r}", challenge_id)
        if not checked:
            await check_requirement(requirement, self.catalog, challenge_id)
        effective_window = window if window is not None else requirement.window
        return await handler(requirement, view, effective_window)

    @staticmethod
    def required_for(requirement: Requirement) -> int:
        """Objectif d'une exigence, sans lecture de l'historique (affichage « non commencé »)."""
        if requirement.kind == "count":
            return requirement.target
        if requirement.kind == "required_venues":
            return max(1, len(set(requirement.venue_ids)))
        if requirement.kind == "menu_combo":
            return requirement.required_count
        return max(1, len(set(requirement.challenge_ids)))

    async def _evaluate_count(
        self,
        req: CountRequirement,
        view: UserActivityView,
        window: EventWindow | None,
    ) -> RequirementProgress:
        activities = await view.qualifying([req.activity_type], window)
        if req.has_venue_filter:
            venues = await self.catalog.venue_ids_matching(req.venue_types, req.categories, req.regions)
            activities = [a for a in activities if a.get("venue_id") in venues]
        return RequirementProgress(current=len(activities), required=req.target)

    async def _evaluate_required_venues(
        self,
        req: RequiredVenuesRequirement,
        view: UserActivityView,
        window: EventWindow | None,
    ) -> RequirementProgress:
        required_venues = set(req.venue_ids)
        visited = {a.get("venue_id") for a in await view.qualifying(req.activity_types, window)}
        return RequirementProgress(current=len(required_venues & visited), required=len(required_venues))

    async def _evaluate_menu_combo(
        self,
        req: MenuComboRequirement,
        view: UserActivityView,
        window: EventWindow | None,
    ) -> RequirementProgress:
        wanted = set(req.item_keys)
        orders = await view.qualifying([ACTIVITY_ORDER], window)
        if req.same_visit:
            # meilleur panier unique
            current = max(
                (len(wanted & {normalize_item_key(i) for i in o.get("items") or []}) for o in orders),
                default=0,
            )
        else:
            seen: set[str] = set()
            for order in orders:
                seen.update(normalize_item_key(i) for i in order.get("items") or [])
            current = len(wanted & seen)
        return RequirementProgress(current=current, required=req.required_count)

    async def _evaluate_combo(
        self,
        req: ComboRequirement,
        view: UserActivityView,
        window: EventWindow | None,
    ) -> RequirementProgress:
        dependencies = set(req.challenge_ids)
        completed = await view.completed_challenges(dependencies, window)
        return RequirementProgress(current=len(completed), required=len(dependencies))
