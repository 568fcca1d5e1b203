# backend/app/services/progression/challenge_classifier.py
# Classification d'un challenge en une catégorie unique via une table de règles ordonnée.

from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping

from pydantic import ValidationError

from app.core.logging_config import get_loggers
from app.models.challenge import Challenge
from app.models.requirement import ComboRequirement, MenuComboRequirement, RequiredVenuesRequirement
from app.shared.constants import (
    CATEGORIES,
    CATEGORY_COMBO,
    CATEGORY_MENU_COMBO,
    CATEGORY_REGULAR,
    CATEGORY_SPECIAL,
    CATEGORY_VENUE,
)

_, error_logger, _ = get_loggers()

Rule = tuple[str, Callable[[Challenge], bool]]


def _is_special(c: Challenge) -> bool:
    return c.is_special


def _is_menu_combo(c: Challenge) -> bool:
    return isinstance(c.requirement, MenuComboRequirement) and bool(c.requirement.items)


def _is_venue(c: Challenge) -> bool:
    return isinstance(c.requirement, RequiredVenuesRequirement) and bool(c.requirement.venue_ids)


def _is_combo(c: Challenge) -> bool:
    return isinstance(c.requirement, ComboRequirement)


# Ordre = priorité. La première règle vérifiée l'emporte ; `regular` ferme la table.
CLASSIFICATION_RULES: tuple[Rule, ...] = (
    (CATEGORY_SPECIAL, _is_special),
    (CATEGORY_MENU_COMBO, _is_menu_combo),
    (CATEGORY_VENUE, _is_venue),
    (CATEGORY_COMBO, _is_combo),
    (CATEGORY_REGULAR, lambda c: True),
)


class ChallengeClassifier:
    """Service de classification des challenges.

    Description:
        Fonction pure et totale : chaque challenge appartient à exactement une catégorie,
        celle de la première règle satisfaite dans `CLASSIFICATION_RULES`. Sert à la fois
        au regroupement d'affichage et au choix de l'évaluation.
    """

    rules: tuple[Rule, ...] = CLASSIFICATION_RULES

    def classify(self, challenge: Challenge | Mapping[str, Any]) -> str:
        """Catégorie d'un challenge (modèle ou document brut).

        Args:
            challenge: `Challenge` ou document Mongo.

        Returns:
            str: special | menu_combo | venue | combo | regular.
        """
        if not isinstance(challenge, Challenge):
            try:
                challenge = Challenge.model_validate(challenge)
            except ValidationError as e:
                cid = challenge.get("_id") if isinstance(challenge, Mapping) else None
                error_logger.warning(
                    "Malformed challenge %s classified as regular: %s", cid, e.errors()[:3]
                )
                return CATEGORY_REGULAR

        for category, predicate in self.rules:
            if predicate(challenge):
                return category
        return CATEGORY_REGULAR  # pragma: no cover (la dernière règle est toujours vraie)

    def partition(self, challenges: Iterable[Challenge | Mapping[str, Any]]) -> dict[str, list]:
        """Répartir des challenges par catégorie (sans chevauchement ni omission).

        Returns:
            dict: {catégorie: [challenges]}, clés dans l'ordre de priorité.
        """
        buckets: dict[str, list] = {category: [] for category in CATEGORIES}
        for challenge in challenges:
            buckets[self.classify(challenge)].append(challenge)
        return buckets
