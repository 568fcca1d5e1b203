"""Configuration du système de logging centralisé (moteur de progression)."""

import glob
import json
import logging
import logging.handlers
import os
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Optional

from bson import ObjectId

from app.core.settings import get_settings


class CustomJSONEncoder(json.JSONEncoder):
    """Encodeur JSON personnalisé pour gérer ObjectId, datetime et set."""

    def default(self, obj):
        if isinstance(obj, ObjectId):
            return str(obj)
        elif isinstance(obj, datetime):
            return obj.isoformat()
        elif isinstance(obj, (set, frozenset)):
            return sorted(str(x) for x in obj)
        return super().default(obj)


class DataLogger:
    """Journal JSON des événements métier (attributions de récompenses, activités parquées).

    Description:
        Une ligne JSON par entrée dans `<logs_dir>/<YYYY-MM-DD>-data.jsonl`. Le format
        « JSON lines » permet l'ajout concurrent sans réécrire le fichier.
    """

    def __init__(self, logs_dir: str = "logs"):
        self.logs_dir = Path(logs_dir)
        self.logs_dir.mkdir(parents=True, exist_ok=True)

    def log_data(
        self,
        calling_context: str,
        data: Dict[str, Any],
        user_id: Optional[ObjectId] = None,
    ) -> None:
        """Ajoute une entrée au journal JSON du jour.

        Args:
            calling_context (str): Contexte appelant (ex. "reward_grant").
            data (dict): Données métier à tracer.
            user_id (ObjectId | None): Utilisateur concerné.
        """
        today = datetime.now().strftime("%Y-%m-%d")
        json_file = self.logs_dir / f"{today}-data.jsonl"

        entry = {
            "datetime": datetime.now().isoformat(),
            "calling_context": calling_context,
            "user_id": user_id,
            "data": data,
        }
        with open(json_file, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, cls=CustomJSONEncoder))
            f.write("\n")


def setup_logging() -> tuple[logging.Logger, logging.Logger, DataLogger]:
    """Configure le système de logging avec rotation quotidienne.

    Returns:
        tuple: (logger_generic, logger_errors, data_logger)
    """
    settings = get_settings()
    logs_dir = Path(settings.logs_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)

    cleanup_old_logs(logs_dir, retention_days=settings.logs_retention_days)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Logger générique (INFO+)
    generic_logger = logging.getLogger("stampquest.generic")
    generic_logger.setLevel(logging.INFO)

    if not generic_logger.handlers:  # Éviter les doublons
        generic_handler = logging.handlers.TimedRotatingFileHandler(
            filename=logs_dir / "generic.log",
            when="midnight",
            interval=1,
            encoding="utf-8"
        )
        generic_handler.suffix = "%Y-%m-%d"
        generic_handler.setFormatter(formatter)
        generic_logger.addHandler(generic_handler)

    # Logger erreurs (WARNING+) : config invalide, violations d'invariant
    error_logger = logging.getLogger("stampquest.errors")
    error_logger.setLevel(logging.WARNING)

    if not error_logger.handlers:
        error_handler = logging.handlers.TimedRotatingFileHandler(
            filename=logs_dir / "errors.log",
            when="midnight",
            interval=1,
            encoding="utf-8"
        )
        error_handler.suffix = "%Y-%m-%d"
        error_handler.setFormatter(formatter)
        error_logger.addHandler(error_handler)

    data_logger = DataLogger(str(logs_dir))

    return generic_logger, error_logger, data_logger


def cleanup_old_logs(logs_dir: Path, retention_days: int = 30) -> None:
    """Supprime les logs plus anciens que retention_days (date lue dans le nom de fichier)."""
    cutoff_str = (datetime.now() - timedelta(days=retention_days)).strftime("%Y-%m-%d")

    patterns = [
        f"{logs_dir}/*-data.jsonl",
        f"{logs_dir}/generic.log.*",
        f"{logs_dir}/errors.log.*",
    ]

    for pattern in patterns:
        for file_path in glob.glob(pattern):
            file_name = os.path.basename(file_path)
            # "2025-01-31-data.jsonl" ou "generic.log.2025-01-31"
            candidates = [file_name[:10], file_name[-10:]]
            for date_part in candidates:
                if len(date_part) == 10 and date_part.count('-') == 2 and date_part < cutoff_str:
                    try:
                        os.remove(file_path)
                    except OSError:
                        pass
                    break


# Instance globale (lazy initialization)
_loggers: Optional[tuple[logging.Logger, logging.Logger, DataLogger]] = None


def get_loggers() -> tuple[logging.Logger, logging.Logger, DataLogger]:
    """Retourne les loggers configurés (singleton)."""
    global _loggers
    if _loggers is None:
        _loggers = setup_logging()
    return _loggers
