# backend/app/services/progression/reward_issuer.py
# Émetteurs de récompenses : client HTTP du service de récompenses (httpx) et émetteur journalisé local.

from __future__ import annotations

from typing import Protocol

import httpx

from app.core.exceptions import TransientDependencyError
from app.core.logging_config import get_loggers
from app.core.settings import Settings
from app.models.user_progression import RewardGrant

logger, _, data_logger = get_loggers()


def idempotency_key(grant: RewardGrant) -> str:
    """Clé d'idempotence d'une attribution : `<user_id>:<challenge_id>`."""
    return f"{grant.user_id}:{grant.challenge_id}"


class RewardIssuer(Protocol):
    """Contrat d'émission d'une récompense vers le service externe.

    Description:
        L'appel peut être rejoué pour la même attribution (reprise après échec) :
        l'implémentation doit transmettre la clé d'idempotence au service distant.
    """

    async def issue(self, grant: RewardGrant) -> None: ...


class LoggingRewardIssuer:
    """Émetteur par défaut : trace l'attribution dans le journal de données, sans appel réseau."""

    async def issue(self, grant: RewardGrant) -> None:
        data_logger.log_data(
            "reward_issued",
            {
                "idempotency_key": idempotency_key(grant),
                "challenge_id": grant.challenge_id,
                "kind": grant.kind,
                "value": grant.value,
                "badge_id": grant.badge_id,
            },
            user_id=grant.user_id,
        )


class HttpRewardIssuer:
    """Émetteur HTTP vers le service de récompenses.

    Description:
        `POST <base_url>/rewards` avec l'attribution en JSON et l'en-tête
        `Idempotency-Key`. Toute erreur réseau, timeout ou réponse 5xx est convertie en
        `TransientDependencyError` (l'attribution reste en attente). Une réponse 409
        (déjà émise) est considérée comme un succès.
    """

    def __init__(self, base_url: str, timeout_s: float = 5.0, transport: httpx.AsyncBaseTransport | None = None):
        """Initialiser le client.

        Args:
            base_url (str): URL du service de récompenses.
            timeout_s (float): Timeout par requête.
            transport (httpx.AsyncBaseTransport | None): Transport injecté (tests).
        """
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.transport = transport

    async def issue(self, grant: RewardGrant) -> None:
        key = idempotency_key(grant)
        payload = grant.model_dump(mode="json", exclude={"id"})
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self.transport) as client:
                resp = await client.post(
                    f"{self.base_url}/rewards",
                    json=payload,
                    headers={"Idempotency-Key": key},
                )
        except httpx.HTTPError as e:
            raise TransientDependencyError(f"Reward service unreachable: {e}", idempotency_key=key) from e

        if resp.status_code == 409:
            logger.info("Reward %s already issued upstream", key)
            return
        if resp.status_code >= 500:
            raise TransientDependencyError(
                f"Reward service error {resp.status_code}", idempotency_key=key
            )
        # autres 4xx : l'attribution reste en attente de réémission
        if resp.status_code >= 400:
            raise TransientDependencyError(
                f"Reward service rejected grant ({resp.status_code})", idempotency_key=key
            )


def build_reward_issuer(settings: Settings) -> RewardIssuer:
    """Émetteur configuré : HTTP si `reward_service_url` est défini, sinon journalisé."""
    if settings.reward_service_url:
        return HttpRewardIssuer(settings.reward_service_url, settings.reward_service_timeout_s)
    return LoggingRewardIssuer()
