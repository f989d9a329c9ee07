"""
Router per l'autenticazione
Progetto: Print Shop Manager (Gestionale Tipografia)

Endpoints per registrazione, login, refresh token e profilo utente.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import CurrentUser, load_user_from_token, oauth2_scheme
from app.core.exceptions import AuthorizationError
from app.models.user import UserRole
from app.schemas.token import TokenRefresh, TokenResponse
from app.schemas.user import UserCreate, UserLogin, UserResponse
from app.services.auth_service import AuthService, get_auth_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"],
)


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Registra un nuovo utente",
)
async def register(
    data: UserCreate,
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
    service: AuthService = Depends(get_auth_service),
):
    """
    Registra un nuovo profilo.

    Se NON esistono profili: registrazione libera, il ruolo diventa Administrador.
    Altrimenti serve il token di un Administrador.
    """
    if await service.count_users(db) > 0:
        current_user = await load_user_from_token(db, token)
        if current_user.role != UserRole.ADMIN.value:
            raise AuthorizationError("Solo un Administrador può registrare nuovi utenti")

    user = await service.register(db, data)
    await db.commit()
    return user


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Effettua il login",
)
async def login(
    data: UserLogin,
    db: AsyncSession = Depends(get_db),
    service: AuthService = Depends(get_auth_service),
):
    """Effettua il login con email e password e restituisce i token JWT."""
    return await service.login(db, data)


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Aggiorna i token",
)
async def refresh(
    data: TokenRefresh,
    db: AsyncSession = Depends(get_db),
    service: AuthService = Depends(get_auth_service),
):
    """Aggiorna i token JWT usando un refresh token."""
    return await service.refresh(db, data.refresh_token)


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Ottieni il profilo utente corrente",
)
async def get_me(current_user: CurrentUser):
    """Restituisce i dati del profilo corrente."""
    return current_user


__all__ = ["router"]
