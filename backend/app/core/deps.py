"""
Dependency Injection per autenticazione
Progetto: Print Shop Manager (Gestionale Tipografia)

Funzioni di dependency injection per autenticazione, contesto di sessione
e autorizzazione per ruolo.
"""

import logging
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.exceptions import AuthorizationError
from app.core.security import ACCESS_TOKEN, decode_token
from app.models.user import CASHIER_ROLES, PRODUCTION_ROLES, User, UserRole
from app.schemas.token import SessionContext

logger = logging.getLogger(__name__)

# OAuth2 scheme - estrae il token dall'header Authorization
oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl="/api/v1/auth/login",
    auto_error=False,
)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def load_user_from_token(
    db: AsyncSession,
    token: Optional[str],
    expected_type: str = ACCESS_TOKEN,
) -> User:
    """
    Carica il profilo attivo a cui appartiene il token.

    Usata dalle dependency HTTP, dal refresh e dal WebSocket degli ordini.

    Raises:
        HTTPException 401: Token mancante, invalido, di tipo errato,
            oppure utente inesistente o disattivato
    """
    if not token:
        raise _unauthorized("Token di autenticazione non fornito")

    token_data = decode_token(token)

    if token_data.type != expected_type:
        raise _unauthorized(f"Token di tipo '{token_data.type}' non valido per questa operazione")

    try:
        user_id = UUID(token_data.sub)
    except ValueError:
        raise _unauthorized("ID utente invalido nel token")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise _unauthorized("Utente non trovato")

    if not user.is_active:
        raise _unauthorized("Utente disattivato")

    return user


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Dependency per ottenere l'utente corrente dal token JWT.

    Raises:
        HTTPException 401: Se il token è invalido, scaduto o l'utente non è attivo
    """
    return await load_user_from_token(db, token)


def build_session_context(user: User) -> SessionContext:
    """
    Costruisce il contesto di sessione a partire dal profilo.

    Raises:
        AuthorizationError: Se il ruolo salvato non è riconosciuto
    """
    try:
        role = UserRole(user.role)
    except ValueError:
        raise AuthorizationError(f"Ruolo non riconosciuto: {user.role}")
    return SessionContext(user_id=user.id, role=role, full_name=user.full_name)


async def get_session_context(
    current_user: Annotated[User, Depends(get_current_user)],
) -> SessionContext:
    """Dependency: contesto di sessione della richiesta corrente."""
    return build_session_context(current_user)


def require_role(*allowed_roles: UserRole):
    """
    Factory function per creare una dependency che verifica il ruolo.

    Args:
        allowed_roles: Ruoli permessi per l'endpoint

    Returns:
        Dependency che restituisce il SessionContext se autorizzato

    Example:
        @router.post("/{order_id}/deliver")
        async def deliver(ctx: SessionContext = Depends(require_role(*CASHIER_ROLES))):
            ...
    """
    async def role_checker(
        ctx: Annotated[SessionContext, Depends(get_session_context)],
    ) -> SessionContext:
        if ctx.role not in allowed_roles:
            logger.warning(
                "Accesso negato a %s (ruolo %s)", ctx.user_id, ctx.role.value
            )
            raise AuthorizationError(
                "Accesso negato. Ruolo richiesto: "
                + ", ".join(r.value for r in allowed_roles)
            )
        return ctx

    return role_checker


# Type aliases per uso comune
CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentSession = Annotated[SessionContext, Depends(get_session_context)]
ProductionSession = Annotated[SessionContext, Depends(require_role(*PRODUCTION_ROLES))]
CashierSession = Annotated[SessionContext, Depends(require_role(*CASHIER_ROLES))]
AdminSession = Annotated[SessionContext, Depends(require_role(UserRole.ADMIN))]


__all__ = [
    "oauth2_scheme",
    "load_user_from_token",
    "get_current_user",
    "build_session_context",
    "get_session_context",
    "require_role",
    "CurrentUser",
    "CurrentSession",
    "ProductionSession",
    "CashierSession",
    "AdminSession",
]
