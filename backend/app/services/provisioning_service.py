"""
Service per la creazione dei profili predefiniti
Progetto: Print Shop Manager (Gestionale Tipografia)

Ogni preset crea un gruppo di identità già confermate. Le email già
presenti vengono saltate, quindi rieseguire un preset non ha effetti.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import NotFoundError
from app.core.security import hash_password
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProvisionedIdentity:
    email: str
    username: str
    full_name: str
    role: UserRole


PRESETS: dict[str, tuple[ProvisionedIdentity, ...]] = {
    "admins": (
        ProvisionedIdentity("joseimprenta@ortega.com", "jose_estacion1", "José Estación 1", UserRole.STATION_1),
        ProvisionedIdentity("david.imprenta@ortega.com", "david_admin", "David Administrador", UserRole.ADMIN),
        ProvisionedIdentity("joseluisimprenta@ortega.com", "joseluis_estacion3", "José Luis Estación 3", UserRole.STATION_3),
        ProvisionedIdentity("marcoimprenta@ortega.com", "marco_estacion4", "Marco Estación 4", UserRole.STATION_4),
    ),
    "cashier": (
        ProvisionedIdentity("cajaimprenta@ortega.com", "caja_imprenta", "Usuario Caja", UserRole.CASHIER),
    ),
    "vinyl": (
        ProvisionedIdentity("vinilproduccion@ortega.com", "vinil_produccion", "Producción Vinil", UserRole.STATION_1),
    ),
}


@dataclass
class ProvisionOutcome:
    preset: str
    created: list[User]
    skipped: list[str]


class ProvisioningService:
    """Crea i profili dei preset con la password iniziale configurata."""

    async def provision(
        self,
        db: AsyncSession,
        preset: str,
        password: Optional[str] = None,
    ) -> ProvisionOutcome:
        """
        Esegue un preset.

        Args:
            db: Sessione database
            preset: Nome del preset (admins, cashier, vinyl)
            password: Password iniziale (default: settings.provision_default_password)

        Raises:
            NotFoundError: Se il preset non esiste
        """
        identities = PRESETS.get(preset)
        if identities is None:
            raise NotFoundError(
                f"Preset {preset} non trovato",
                extra={"available": sorted(PRESETS)},
            )

        hashed = hash_password(password or settings.provision_default_password)
        outcome = ProvisionOutcome(preset=preset, created=[], skipped=[])

        for identity in identities:
            result = await db.execute(
                select(User.id).where(
                    (func.lower(User.email) == identity.email)
                    | (User.username == identity.username)
                )
            )
            if result.first() is not None:
                logger.info("Provisioning %s: %s già presente", preset, identity.email)
                outcome.skipped.append(identity.email)
                continue

            user = User(
                email=identity.email,
                hashed_password=hashed,
                username=identity.username,
                full_name=identity.full_name,
                role=identity.role.value,
                is_active=True,
            )
            db.add(user)
            outcome.created.append(user)

        await db.flush()

        logger.info(
            "Provisioning %s: %d creati, %d saltati",
            preset, len(outcome.created), len(outcome.skipped),
        )
        return outcome


__all__ = [
    "PRESETS",
    "ProvisionedIdentity",
    "ProvisionOutcome",
    "ProvisioningService",
]
