"""
Service per la gestione dei profili utente
Progetto: Print Shop Manager (Gestionale Tipografia)

Operazioni riservate all'amministratore: elenco, creazione, modifica
del nome o della password, disattivazione (mai eliminazione).
"""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BusinessValidationError, NotFoundError
from app.core.security import hash_password
from app.models.user import User, UserRole
from app.schemas.token import SessionContext
from app.schemas.user import UserCreate, UserUpdate
from app.services.auth_service import ensure_unique_identity

logger = logging.getLogger(__name__)


class UserService:
    """Service per l'amministrazione dei profili."""

    async def list_users(self, db: AsyncSession, include_inactive: bool = False) -> list[User]:
        """Profili ordinati per ruolo e nome."""
        query = select(User).order_by(User.role, User.full_name)
        if not include_inactive:
            query = query.where(User.is_active.is_(True))
        result = await db.execute(query)
        return list(result.scalars().all())

    async def get_by_id(self, db: AsyncSession, user_id: uuid.UUID) -> User:
        """
        Raises:
            NotFoundError: Se il profilo non esiste
        """
        result = await db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if not user:
            raise NotFoundError(f"Utente con ID {user_id} non trovato")
        return user

    async def create_user(self, db: AsyncSession, data: UserCreate, ctx: SessionContext) -> User:
        """
        Crea un profilo già confermato e attivo.

        Raises:
            DuplicateError: Se email o nome utente sono già registrati
        """
        await ensure_unique_identity(db, data.email, data.username)

        user = User(
            email=data.email.lower(),
            hashed_password=hash_password(data.password),
            username=data.username,
            full_name=data.full_name,
            role=data.role.value,
            is_active=True,
        )
        db.add(user)
        await db.flush()

        logger.info("Profilo %s (%s) creato da %s", user.username, user.role, ctx.user_id)
        return user

    async def update_user(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        data: UserUpdate,
        ctx: SessionContext,
    ) -> User:
        """
        Modifica nome visualizzato e/o password di un profilo.

        Raises:
            NotFoundError: Se il profilo non esiste
        """
        user = await self.get_by_id(db, user_id)

        if data.full_name is not None:
            user.full_name = data.full_name
        if data.new_password is not None:
            user.hashed_password = hash_password(data.new_password)

        await db.flush()

        logger.info(
            "Profilo %s aggiornato da %s (password %s)",
            user.username,
            ctx.user_id,
            "modificata" if data.new_password else "invariata",
        )
        return user

    async def deactivate_user(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        ctx: SessionContext,
    ) -> User:
        """
        Disattiva un profilo: non potrà più accedere, gli ordini restano collegati.

        Raises:
            NotFoundError: Se il profilo non esiste
            ValidationError: Se il profilo è un Administrador
        """
        user = await self.get_by_id(db, user_id)

        if user.role == UserRole.ADMIN.value:
            raise BusinessValidationError("Un Administrador non può essere disattivato")

        user.is_active = False
        await db.flush()

        logger.info("Profilo %s disattivato da %s", user.username, ctx.user_id)
        return user


__all__ = ["UserService"]
