# backend/app/core/settings.py
# Configuration de l'application (pydantic-settings) : MongoDB, JWT, logs, retries, service de récompenses.

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # === App settings ===
    app_name: str = "StampQuest"
    environment: str = "development"  # or "production"
    api_version: str = "0.1.0"

    # === MongoDB ===
    mongodb_user: str = ""
    mongodb_password: str = ""
    mongodb_uri_tpl: str = "mongodb://localhost:27017"
    mongodb_db: str = "stampquest"

    # === JWT ===
    jwt_secret_key: str = "change-me"
    jwt_algorithm: str = "HS256"

    # === LOGS ===
    logs_dir: str = "logs"
    logs_retention_days: int = 30

    # === RETRIES (conflits optimistes, dépendances transitoires) ===
    retry_max_attempts: int = 8
    retry_base_delay_s: float = 0.01
    retry_max_delay_s: float = 0.5

    # === REWARD SERVICE ===
    reward_service_url: str | None = None
    reward_service_timeout_s: float = 5.0

    # === XP d'activité ===
    scan_xp: int = 10
    review_xp: int = 10

    # === HTTP ===
    max_body_bytes: int = 64 * 1024  # les événements d'activité sont petits

    # === SEED ===
    seed_on_startup: bool = False

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def mongodb_uri(self) -> str:
        """Build the full MongoDB URI from template."""
        return self.mongodb_uri_tpl.replace("[[MONGODB_USER]]", self.mongodb_user)\
                                   .replace("[[MONGODB_PASSWORD]]", self.mongodb_password)


@lru_cache
def get_settings() -> Settings:
    """Retourne l'instance de configuration (chargée une seule fois)."""
    return Settings()
