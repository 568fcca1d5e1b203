# backend/app/core/retry.py
# Retry borné avec backoff exponentiel pour les conflits optimistes et les dépendances transitoires.

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, TypeVar

from app.core.exceptions import ConcurrencyConflict, TransientDependencyError
from app.core.logging_config import get_loggers
from app.core.settings import get_settings

T = TypeVar("T")

logger = get_loggers()[0]


def compute_backoff(attempt: int, base_delay_s: float, max_delay_s: float) -> float:
    """Délai avant la tentative `attempt + 1` : base * 2^attempt, plafonné, avec jitter.

    Args:
        attempt (int): Numéro de la tentative échouée (0-based).
        base_delay_s (float): Délai de base.
        max_delay_s (float): Plafond.

    Returns:
        float: Délai en secondes.
    """
    delay = min(max_delay_s, base_delay_s * (2 ** attempt))
    return delay * (0.5 + random.random() / 2)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    retry_on: tuple[type[Exception], ...] = (ConcurrencyConflict,),
    max_attempts: int | None = None,
    label: str = "operation",
) -> T:
    """Exécuter `operation` avec un nombre borné de tentatives.

    Description:
        Relance `operation` tant qu'elle lève une exception de `retry_on`, avec backoff
        exponentiel. Au-delà de `max_attempts`, une `ConcurrencyConflict` est convertie en
        `TransientDependencyError` (jamais d'attente infinie) ; les autres erreurs de
        `retry_on` sont relancées telles quelles.

    Args:
        operation (Callable): Coroutine factory sans argument.
        retry_on (tuple): Exceptions déclenchant un nouvel essai.
        max_attempts (int | None): Borne (défaut `settings.retry_max_attempts`).
        label (str): Libellé pour les logs.

    Returns:
        T: Résultat de `operation`.
    """
    settings = get_settings()
    attempts = max_attempts or settings.retry_max_attempts

    for attempt in range(attempts):
        try:
            return await operation()
        except retry_on as e:
            if attempt == attempts - 1:
                logger.warning("%s: giving up after %d attempts (%s)", label, attempts, e)
                if isinstance(e, ConcurrencyConflict):
                    raise TransientDependencyError(
                        f"{label}: contention not resolved after {attempts} attempts"
                    ) from e
                raise
            delay = compute_backoff(attempt, settings.retry_base_delay_s, settings.retry_max_delay_s)
            logger.info("%s: attempt %d failed (%s), retrying in %.3fs", label, attempt + 1, type(e).__name__, delay)
            await asyncio.sleep(delay)

    raise RuntimeError("unreachable")  # pragma: no cover
