# backend/app/core/security.py
# Génération/validation JWT et dépendances FastAPI `get_current_user_id` / `require_admin`.

import datetime as dt
from typing import Annotated, Any

from bson import ObjectId
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from app.core.bson_utils import PyObjectId
from app.core.settings import get_settings
from app.core.utils import utcnow

settings = get_settings()

# Les jetons sont émis par le service d'authentification ; ce service ne fait que les vérifier.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", scopes={})


def create_access_token(data: dict, expires_delta: dt.timedelta | None = None) -> str:
    """Crée un access token JWT.

    Description:
        Encode un JWT signé contenant `data` (ex. `sub`, `role`) et une date d'expiration
        (15 minutes par défaut). Utilisé par les outils internes et les tests.

    Args:
        data (dict): Claims à inclure (ex. `{"sub": "<user_id>", "role": "user"}`).
        expires_delta (datetime.timedelta | None): Durée de validité.

    Returns:
        str: Jeton JWT signé.
    """
    to_encode = data.copy()
    expire = utcnow() + (expires_delta or dt.timedelta(minutes=15))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def get_token_claims(token: str = Depends(oauth2_scheme)) -> dict[str, Any]:
    """Dépendance FastAPI : claims du JWT Bearer.

    Description:
        - Décode le JWT reçu via le schéma OAuth2 Bearer
        - Vérifie la présence d'un `sub` qui est un ObjectId valide
        - Lève 401 si le token est invalide ou expiré

    Raises:
        HTTPException: 401 si jeton invalide.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise credentials_exception from e

    sub = payload.get("sub")
    if not isinstance(sub, str) or not ObjectId.is_valid(sub):
        raise credentials_exception
    return payload


def get_current_user_id(claims: Annotated[dict, Depends(get_token_claims)]) -> PyObjectId:
    return ObjectId(claims["sub"])


def require_admin(claims: Annotated[dict, Depends(get_token_claims)]) -> dict:
    if claims.get("role") != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin only")
    return claims


# Type aliases pour faciliter l'usage
CurrentUserId = Annotated[PyObjectId, Depends(get_current_user_id)]
AdminClaims = Annotated[dict, Depends(require_admin)]
