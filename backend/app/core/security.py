"""
Modulo di sicurezza per autenticazione JWT
Progetto: Print Shop Manager (Gestionale Tipografia)

Funzioni per hashing password e gestione token JWT.
"""

from datetime import datetime, timedelta, timezone

from fastapi import HTTPException, status
from jose import JWTError, jwt
from passlib.context import CryptContext

from app.core.config import settings
from app.schemas.token import TokenPayload

# Context per hashing password
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"


def hash_password(password: str) -> str:
    """Hasha una password in chiaro."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verifica una password in chiaro contro una hashata.

    Returns:
        True se la password corrisponde, False altrimenti
    """
    return pwd_context.verify(plain_password, hashed_password)


def _create_token(user_id: str, role: str, expires_delta: timedelta, token_type: str) -> str:
    payload = {
        "sub": user_id,
        "role": role,
        "exp": datetime.now(timezone.utc) + expires_delta,
        "type": token_type,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(user_id: str, role: str) -> str:
    """
    Crea un token di accesso JWT.

    Args:
        user_id: ID del profilo
        role: Ruolo del profilo

    Returns:
        Token JWT codificato
    """
    return _create_token(
        user_id,
        role,
        timedelta(minutes=settings.access_token_expire_minutes),
        ACCESS_TOKEN,
    )


def create_refresh_token(user_id: str, role: str) -> str:
    """Crea un token di refresh JWT."""
    return _create_token(
        user_id,
        role,
        timedelta(days=settings.refresh_token_expire_days),
        REFRESH_TOKEN,
    )


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_token(token: str) -> TokenPayload:
    """
    Decodifica e valida un token JWT.

    Args:
        token: Token JWT da decodificare

    Returns:
        TokenPayload con i dati del token

    Raises:
        HTTPException 401: Se il token è invalido, scaduto o incompleto
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as e:
        raise _unauthorized(f"Token invalido o scaduto: {e}") from e

    # jose restituisce exp come timestamp intero
    exp = payload.get("exp")
    if not payload.get("sub") or exp is None:
        raise _unauthorized("Token invalido: subject o scadenza mancanti")

    return TokenPayload(
        sub=payload["sub"],
        role=payload.get("role") or "",
        exp=datetime.fromtimestamp(int(exp), tz=timezone.utc),
        type=payload.get("type") or "",
    )


__all__ = [
    "ACCESS_TOKEN",
    "REFRESH_TOKEN",
    "hash_password",
    "verify_password",
    "create_access_token",
    "create_refresh_token",
    "decode_token",
]
