"""
Servizio per l'autenticazione
Progetto: Print Shop Manager (Gestionale Tipografia)

Business logic per registrazione, login e refresh token.
"""

import logging

from fastapi import HTTPException, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.deps import load_user_from_token
from app.core.exceptions import DuplicateError
from app.core.security import (
    REFRESH_TOKEN,
    create_access_token,
    create_refresh_token,
    hash_password,
    verify_password,
)
from app.models.user import User, UserRole
from app.schemas.token import TokenResponse
from app.schemas.user import UserCreate, UserLogin

logger = logging.getLogger(__name__)


def issue_tokens(user: User) -> TokenResponse:
    """Genera la coppia access/refresh token per il profilo."""
    return TokenResponse(
        access_token=create_access_token(str(user.id), user.role),
        refresh_token=create_refresh_token(str(user.id), user.role),
        token_type="bearer",
    )


async def ensure_unique_identity(db: AsyncSession, email: str, username: str) -> None:
    """
    Raises:
        DuplicateError: Se email o nome utente sono già registrati
    """
    result = await db.execute(
        select(User.email, User.username).where(
            or_(func.lower(User.email) == email.lower(), User.username == username)
        )
    )
    existing = result.first()
    if existing:
        if existing.email.lower() == email.lower():
            raise DuplicateError(f"L'email {email} è già registrata")
        raise DuplicateError(f"Il nome utente {username} è già in uso")


class AuthService:
    """Servizio per la gestione dell'autenticazione."""

    async def count_users(self, db: AsyncSession) -> int:
        result = await db.execute(select(func.count(User.id)))
        return result.scalar() or 0

    async def register(self, db: AsyncSession, data: UserCreate) -> User:
        """
        Registra un nuovo profilo nel sistema.

        Il primo profilo registrato diventa sempre Administrador.

        Raises:
            DuplicateError: Se email o nome utente sono già registrati
        """
        await ensure_unique_identity(db, data.email, data.username)

        role = data.role
        if await self.count_users(db) == 0:
            role = UserRole.ADMIN

        user = User(
            email=data.email.lower(),
            hashed_password=hash_password(data.password),
            username=data.username,
            full_name=data.full_name,
            role=role.value,
            is_active=True,
        )

        db.add(user)
        await db.flush()

        logger.info("Registrato profilo %s (%s)", user.username, user.role)
        return user

    async def login(self, db: AsyncSession, data: UserLogin) -> TokenResponse:
        """
        Autentica un profilo e restituisce i token JWT.

        Raises:
            HTTPException 401: Se le credenziali sono invalide o l'utente è disattivato
        """
        result = await db.execute(
            select(User).where(func.lower(User.email) == data.email.lower())
        )
        user = result.scalar_one_or_none()

        if not user or not verify_password(data.password, user.hashed_password):
            logger.warning("Login fallito per %s", data.email)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Email o password non corretti",
                headers={"WWW-Authenticate": "Bearer"},
            )

        if not user.is_active:
            logger.warning("Login di utente disattivato: %s", data.email)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Utente disattivato",
                headers={"WWW-Authenticate": "Bearer"},
            )

        logger.info("Login di %s (%s)", user.username, user.role)
        return issue_tokens(user)

    async def refresh(self, db: AsyncSession, refresh_token: str) -> TokenResponse:
        """
        Aggiorna i token JWT usando un refresh token.

        Raises:
            HTTPException 401: Se il refresh token è invalido o l'utente non è più attivo
        """
        user = await load_user_from_token(db, refresh_token, expected_type=REFRESH_TOKEN)
        return issue_tokens(user)


def get_auth_service() -> AuthService:
    """Factory per ottenere un'istanza del servizio di autenticazione."""
    return AuthService()


__all__ = [
    "AuthService",
    "ensure_unique_identity",
    "get_auth_service",
    "issue_tokens",
]
