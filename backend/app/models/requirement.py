# backend/app/models/requirement.py
# Exigences de challenge : variantes étiquetées (union discriminée sur `kind`) + fenêtre d'événement.

from __future__ import annotations

import datetime as dt
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.core.bson_utils import PyObjectId
from app.core.utils import ensure_utc
from app.shared.constants import VISIT_ACTIVITY_TYPES

ActivityType = Literal["check_in", "review", "scan", "order"]


def normalize_item_key(value: str) -> str:
    """Clé canonique d'un item de menu : espaces compactés, casse repliée.

    Description:
        « Khachapuri » , « khachapuri  » et « KHACHAPURI » donnent la même clé.
        Il s'agit d'une égalité exacte sur l'identifiant, pas d'une recherche plein texte.

    Args:
        value (str): Identifiant brut.

    Returns:
        str: Clé normalisée.
    """
    return " ".join(str(value).split()).casefold()


class RequirementBase(BaseModel):
    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        populate_by_name=True,
    )


class EventWindow(RequirementBase):
    """Fenêtre temporelle dans laquelle une activité est qualifiante.

    Attributes:
        start (datetime | None): Début inclus (UTC).
        end (datetime | None): Fin incluse (UTC).
    """
    start: Optional[dt.datetime] = None
    end: Optional[dt.datetime] = None

    @field_validator("start", "end")
    @classmethod
    def _to_utc(cls, v: Optional[dt.datetime]) -> Optional[dt.datetime]:
        return ensure_utc(v)

    @model_validator(mode="after")
    def _check_bounds(self) -> "EventWindow":
        if self.start and self.end and self.end < self.start:
            raise ValueError("window end must not precede window start")
        return self

    def contains(self, when: dt.datetime) -> bool:
        """Vrai si `when` est dans la fenêtre (bornes incluses)."""
        when = ensure_utc(when)
        if self.start and when < self.start:
            return False
        if self.end and when > self.end:
            return False
        return True


class CountRequirement(RequirementBase):
    """N activités d'un type donné (ex. « 5 check-ins »), éventuellement filtrées par lieu."""
    kind: Literal["count"] = "count"
    activity_type: ActivityType
    target: int = Field(ge=1)
    # Filtres catalogue (type de lieu, catégories, régions) ; vides = pas de filtre
    venue_types: List[str] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    regions: List[str] = Field(default_factory=list)
    window: Optional[EventWindow] = None

    @property
    def has_venue_filter(self) -> bool:
        return bool(self.venue_types or self.categories or self.regions)


class RequiredVenuesRequirement(RequirementBase):
    """Chaque lieu listé doit être visité au moins une fois."""
    kind: Literal["required_venues"] = "required_venues"
    venue_ids: List[PyObjectId] = Field(default_factory=list)
    activity_types: List[ActivityType] = Field(default_factory=lambda: list(VISIT_ACTIVITY_TYPES))
    window: Optional[EventWindow] = None


class MenuComboRequirement(RequirementBase):
    """`required_count` items distincts parmi `items`, commandés ensemble ou au fil des visites."""
    kind: Literal["menu_combo"] = "menu_combo"
    items: List[str] = Field(default_factory=list)
    required_count: int = Field(ge=1)
    # True : les items doivent figurer dans une même commande
    same_visit: bool = False
    window: Optional[EventWindow] = None

    @property
    def item_keys(self) -> List[str]:
        """Clés normalisées distinctes, dans l'ordre de déclaration."""
        keys: List[str] = []
        for item in self.items:
            key = normalize_item_key(item)
            if key and key not in keys:
                keys.append(key)
        return keys


class ComboRequirement(RequirementBase):
    """Tous les challenges référencés doivent être complétés."""
    kind: Literal["combo"] = "combo"
    challenge_ids: List[PyObjectId] = Field(default_factory=list)
    window: Optional[EventWindow] = None


Requirement = Annotated[
    Union[CountRequirement, RequiredVenuesRequirement, MenuComboRequirement, ComboRequirement],
    Field(discriminator="kind"),
]

