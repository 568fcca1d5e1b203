# backend/app/models/_shared.py
# Types communs utilisés par plusieurs modules (mesure d'une exigence, snapshot de progression).

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class RequirementProgress(BaseModel):
    """Mesure brute d'une exigence pour un utilisateur.

    Attributes:
        current (int): Quantité qualifiante observée (≥ 0).
        required (int): Objectif (> 0).
    """
    current: int = Field(ge=0)
    required: int = Field(gt=0)

    model_config = ConfigDict(frozen=True)


class ProgressSnapshot(BaseModel):
    """Snapshot agrégé de progression d'un challenge.

    Attributes:
        current (int): Mesure courante.
        required (int): Objectif.
        percentage (int): Avancement 0–100 (entier, borné).
    """
    current: int = 0
    required: int = 1
    percentage: int = 0

    model_config = ConfigDict(frozen=True)
