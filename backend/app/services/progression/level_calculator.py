# backend/app/services/progression/level_calculator.py
# Niveau de statut (1–10) dérivé de l'XP cumulée ; jamais stocké comme source de vérité.

from __future__ import annotations

from bisect import bisect_right
from typing import Sequence

from app.shared.constants import LEVEL_NAMES, LEVEL_XP_THRESHOLDS


class LevelCalculator:
    """Calcul du niveau à partir de seuils d'XP fixes et croissants.

    Description:
        `level(xp)` = plus grand L tel que `xp >= thresholds[L-1]`, plafonné au dernier niveau.
        Fonction pure de `xp` : recalculée à chaque lecture, elle ne peut pas diverger de l'XP.
    """

    def __init__(self, thresholds: Sequence[int] = LEVEL_XP_THRESHOLDS, names: Sequence[str] = LEVEL_NAMES):
        if not thresholds or thresholds[0] != 0:
            raise ValueError("thresholds must start at 0")
        if any(b <= a for a, b in zip(thresholds, thresholds[1:])):
            raise ValueError("thresholds must be strictly ascending")
        if len(names) != len(thresholds):
            raise ValueError("one name per level is required")
        self.thresholds = tuple(thresholds)
        self.names = tuple(names)

    @property
    def max_level(self) -> int:
        return len(self.thresholds)

    def level(self, xp: int) -> int:
        """Niveau (1-based) atteint avec `xp`. Une XP négative est traitée comme 0."""
        return max(1, bisect_right(self.thresholds, max(0, int(xp))))

    def level_name(self, xp: int) -> str:
        return self.names[self.level(xp) - 1]

    def next_level_xp(self, xp: int) -> int | None:
        """Seuil du niveau suivant, ou None au niveau maximal."""
        lvl = self.level(xp)
        if lvl >= self.max_level:
            return None
        return self.thresholds[lvl]

    def progress_to_next(self, xp: int) -> int:
        """Avancement (0–100) entre le seuil courant et le suivant ; 100 au niveau maximal."""
        lvl = self.level(xp)
        if lvl >= self.max_level:
            return 100
        low, high = self.thresholds[lvl - 1], self.thresholds[lvl]
        return max(0, min(100, (100 * (max(0, xp) - low)) // (high - low)))


default_level_calculator = LevelCalculator()


def level_for_xp(xp: int) -> int:
    """Raccourci sur les seuils par défaut."""
    return default_level_calculator.level(xp)
