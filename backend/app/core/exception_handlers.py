from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.dto.response_format import ErrorResponse
from app.core.exceptions import (
    ConcurrencyConflict,
    ConfigurationError,
    InvariantViolation,
    ProgressionError,
    RewardAlreadyRedeemed,
    RewardExpired,
    TransientDependencyError,
)
from app.core.logging_config import get_loggers

_, error_logger, _ = get_loggers()

# Statut HTTP par famille d'erreur du moteur
PROGRESSION_ERROR_STATUS: dict[type[ProgressionError], int] = {
    ConfigurationError: 422,
    ConcurrencyConflict: 409,
    TransientDependencyError: 503,
    InvariantViolation: 500,
    RewardAlreadyRedeemed: 400,
    RewardExpired: 400,
}


def _status_for(exc: ProgressionError) -> int:
    for cls in type(exc).__mro__:
        if cls in PROGRESSION_ERROR_STATUS:
            return PROGRESSION_ERROR_STATUS[cls]
    return 500


def register_exception_handlers(app: FastAPI):
    """Enregistre les gestionnaires d'exceptions globaux pour standardiser les réponses."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Gestionnaire pour les exceptions HTTP standards."""
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse.from_detail(
                {"code": f"HTTP_{exc.status_code}", "message": exc.detail}
            ).model_dump(),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Gestionnaire pour les erreurs de validation Pydantic."""
        errors = []
        for error in exc.errors():
            errors.append(
                {
                    "field": " -> ".join(str(loc) for loc in error["loc"]),
                    "message": error["msg"],
                    "type": error["type"],
                }
            )

        return JSONResponse(
            status_code=422,
            content=ErrorResponse.from_detail(
                {"code": "VALIDATION_ERROR", "message": "Validation failed", "details": errors}
            ).model_dump(),
        )

    @app.exception_handler(ProgressionError)
    async def progression_exception_handler(request: Request, exc: ProgressionError):
        """Gestionnaire pour les erreurs du moteur de progression."""
        status_code = _status_for(exc)
        message = exc.message
        headers = None
        if isinstance(exc, TransientDependencyError):
            message = "Service temporarily unavailable, try again later"
            headers = {"Retry-After": "5"}
        elif isinstance(exc, InvariantViolation):
            error_logger.critical("Invariant violation on %s: %s %s", request.url.path, exc.message, exc.details)
            message = "An unexpected error occurred"

        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse.from_detail({"code": exc.code, "message": message}).model_dump(),
            headers=headers,
        )

    # Gestionnaire pour les exceptions non capturées
    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Gestionnaire pour les exceptions non capturées."""
        error_logger.exception("Unhandled error on %s", request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse.from_detail(
                {"code": "INTERNAL_ERROR", "message": "An unexpected error occurred"}
            ).model_dump(),
        )
