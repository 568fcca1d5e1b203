# backend/app/core/utils.py
# Fonctions temporelles : horodatage UTC (aware) et normalisation des datetimes relus depuis Mongo.

import datetime as dt


def utcnow() -> dt.datetime:
    """Date/heure UTC (timezone-aware).

    Description:
        Retourne `datetime.now(timezone.utc)`. Seule représentation utilisée pour les
        horodatages persistés et les comparaisons de fenêtres d'événement.

    Returns:
        datetime.datetime: Timestamp UTC (aware).
    """
    return dt.datetime.now(dt.timezone.utc)


def ensure_utc(value: dt.datetime | None) -> dt.datetime | None:
    """Rendre un datetime « aware » en UTC.

    Description:
        PyMongo relit les dates en naive UTC (sauf `tz_aware=True`). Une valeur naive est
        donc interprétée comme UTC ; une valeur aware est convertie en UTC.

    Args:
        value (datetime | None): Date à normaliser.

    Returns:
        datetime | None: Date aware UTC, ou None.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)
