# backend/app/core/exceptions.py
# Taxonomie des erreurs du moteur de progression.

from __future__ import annotations

from typing import Any


class ProgressionError(Exception):
    """Erreur de base du moteur de progression.

    Attributes:
        code (str): Code stable exposé dans l'enveloppe d'erreur API.
        details (dict): Contexte (ids, valeurs fautives).
    """

    code = "PROGRESSION_ERROR"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details


class ConfigurationError(ProgressionError):
    """Exigence de challenge mal formée (référence pendante, cycle de combo, required_count incohérent).

    Description:
        Fatale pour le challenge concerné uniquement : il est exclu de l'évaluation
        et signalé pour correction administrative, jamais considéré comme complété.
    """

    code = "CHALLENGE_CONFIGURATION_ERROR"

    def __init__(self, message: str, challenge_id: Any = None, **details: Any):
        super().__init__(message, challenge_id=challenge_id, **details)
        self.challenge_id = challenge_id


class ConcurrencyConflict(ProgressionError):
    """Collision de mise à jour optimiste (version modifiée entre lecture et écriture)."""

    code = "CONCURRENCY_CONFLICT"


class TransientDependencyError(ProgressionError):
    """Échec d'une dépendance (catalogue, Mongo, service de récompenses) pouvant réussir plus tard."""

    code = "TRANSIENT_DEPENDENCY_ERROR"


class InvariantViolation(ProgressionError):
    """Bug de programmation détecté (pourcentage hors bornes, régression de complétion)."""

    code = "INVARIANT_VIOLATION"


class RewardAlreadyRedeemed(ProgressionError):
    """Récompense déjà utilisée."""

    code = "ALREADY_REDEEMED"


class RewardExpired(ProgressionError):
    """Récompense arrivée à expiration."""

    code = "REWARD_EXPIRED"
