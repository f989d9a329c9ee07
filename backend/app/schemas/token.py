"""
Schemas Pydantic per l'autenticazione JWT
Progetto: Print Shop Manager (Gestionale Tipografia)

Schemas per token JWT, relativi payload e contesto di sessione.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.user import CASHIER_ROLES, PRODUCTION_ROLES, STATION_ROLES, UserRole


class TokenResponse(BaseModel):
    """
    Schema per la risposta contenente i token JWT.

    Attributes:
        access_token: Token di accesso JWT
        refresh_token: Token di refresh JWT
        token_type: Tipo di token (default: bearer)
    """

    access_token: str = Field(..., description="Token di accesso JWT")
    refresh_token: str = Field(..., description="Token di refresh JWT")
    token_type: str = Field(default="bearer", description="Tipo di token")


class TokenRefresh(BaseModel):
    """Schema per la richiesta di refresh token."""

    refresh_token: str = Field(..., description="Token di refresh JWT")


class TokenPayload(BaseModel):
    """
    Schema per il payload contenuto nei token JWT.

    Attributes:
        sub: Subject - ID dell'utente come stringa
        role: Ruolo dell'utente
        exp: Expiration - Data/ora di scadenza
        type: Tipo di token ("access" o "refresh")
    """

    sub: str = Field(..., description="ID utente")
    role: str = Field(..., description="Ruolo dell'utente")
    exp: datetime = Field(..., description="Data/ora di scadenza")
    type: str = Field(..., description="Tipo di token (access/refresh)")


class SessionContext(BaseModel):
    """
    Contesto della sessione corrente, costruito per ogni richiesta.

    Viene passato esplicitamente ai servizi che modificano dati,
    che lo usano per created_by/completed_by/delivered_by.

    Attributes:
        user_id: UUID del profilo autenticato
        role: Ruolo del profilo
        full_name: Nome visualizzato (per i log)
    """

    model_config = ConfigDict(frozen=True)

    user_id: UUID
    role: UserRole
    full_name: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def can_produce(self) -> bool:
        return self.role in PRODUCTION_ROLES

    @property
    def can_collect(self) -> bool:
        return self.role in CASHIER_ROLES

    @property
    def is_station(self) -> bool:
        return self.role in STATION_ROLES


__all__ = [
    "TokenResponse",
    "TokenRefresh",
    "TokenPayload",
    "SessionContext",
]
