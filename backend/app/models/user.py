"""
Modello SQLAlchemy per l'entità User (profilo utente)
Progetto: Print Shop Manager (Gestionale Tipografia)

Il profilo unisce l'identità di autenticazione (email + password)
al ruolo operativo: amministrazione, cassa o stazione di produzione.
"""

from __future__ import annotations
from enum import Enum

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models import Base
from app.models.mixins import SoftDeleteMixin, TimestampMixin, UUIDMixin


class UserRole(str, Enum):
    """Ruoli utente nel sistema."""
    ADMIN = "Administrador"
    CASHIER = "Caja"
    STATION_1 = "estación 1"
    STATION_3 = "estación 3"
    STATION_4 = "estación 4"
    # Ruoli delle prime versioni, ancora presenti su profili esistenti
    SUPERVISOR = "Supervisor"
    OPERATOR = "Operador"


# Ruoli che corrispondono a una stazione di produzione
STATION_ROLES: tuple[UserRole, ...] = (
    UserRole.STATION_1,
    UserRole.STATION_3,
    UserRole.STATION_4,
)

# Ruoli abilitati ad avanzare la produzione
PRODUCTION_ROLES: tuple[UserRole, ...] = STATION_ROLES + (
    UserRole.ADMIN,
    UserRole.SUPERVISOR,
    UserRole.OPERATOR,
)

# Ruoli abilitati a cassa (pagamenti, consegne, cancellazioni)
CASHIER_ROLES: tuple[UserRole, ...] = (UserRole.CASHIER, UserRole.ADMIN)


class User(Base, UUIDMixin, TimestampMixin, SoftDeleteMixin):
    """
    Modello per i profili utente del sistema.

    Attributes:
        id: UUID primary key, generato automaticamente
        email: Email univoca usata per il login
        hashed_password: Password hashata (bcrypt)
        username: Nome utente univoco
        full_name: Nome visualizzato
        role: Ruolo dell'utente (vedi UserRole)
        is_active: False se l'utente è stato dato di baja
        created_at: Data/ora creazione record
        updated_at: Data/ora ultimo aggiornamento
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        doc="Email univoca dell'utente",
    )

    hashed_password: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Password hashata",
    )

    username: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        doc="Nome utente univoco",
    )

    full_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        doc="Nome visualizzato dell'utente",
    )

    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=UserRole.STATION_1.value,
        doc="Ruolo dell'utente",
    )

    __table_args__ = (
        Index("ix_users_role", "role"),
    )

    @property
    def is_station(self) -> bool:
        """True se il ruolo corrisponde a una stazione di produzione."""
        return self.role in {r.value for r in STATION_ROLES}

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username}, role={self.role})>"
