"""
Schemas Pydantic per l'entità User
Progetto: Print Shop Manager (Gestionale Tipografia)

Schemas per validazione e serializzazione dei profili utente.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from app.models.user import UserRole


def validate_password_strength(v: str) -> str:
    """Valida la robustezza minima della password."""
    if len(v) < 8:
        raise ValueError("La password deve contenere almeno 8 caratteri")
    return v


class UserCreate(BaseModel):
    """
    Schema per la creazione di un nuovo profilo.

    Attributes:
        email: Email dell'utente (univoca, usata per il login)
        password: Password in chiaro (min 8, max 100 caratteri)
        username: Nome utente univoco
        full_name: Nome visualizzato
        role: Ruolo dell'utente (default: estación 1)
    """

    email: EmailStr = Field(..., description="Email univoca dell'utente")
    password: str = Field(
        min_length=8,
        max_length=100,
        description="Password in chiaro (min 8, max 100 caratteri)",
    )
    username: str = Field(
        min_length=1,
        max_length=50,
        description="Nome utente univoco",
    )
    full_name: str = Field(
        min_length=1,
        max_length=100,
        description="Nome visualizzato dell'utente",
    )
    role: UserRole = Field(
        default=UserRole.STATION_1,
        description="Ruolo dell'utente",
    )

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return validate_password_strength(v)

    @field_validator("username")
    @classmethod
    def normalize_username(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Il nome utente è obbligatorio")
        return v


class UserLogin(BaseModel):
    """
    Schema per il login utente.

    Attributes:
        email: Email dell'utente
        password: Password in chiaro
    """

    email: EmailStr = Field(..., description="Email dell'utente")
    password: str = Field(..., description="Password in chiaro")


class UserUpdate(BaseModel):
    """
    Schema per l'aggiornamento di un profilo da parte dell'amministratore.

    Si possono modificare solo il nome visualizzato e/o la password.
    """

    full_name: Optional[str] = Field(
        None,
        min_length=1,
        max_length=100,
        description="Nome visualizzato dell'utente",
    )
    new_password: Optional[str] = Field(
        None,
        max_length=100,
        description="Nuova password in chiaro",
    )

    @field_validator("new_password")
    @classmethod
    def check_new_password(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return validate_password_strength(v)

    @model_validator(mode="after")
    def at_least_one_field(self) -> "UserUpdate":
        if self.full_name is None and self.new_password is None:
            raise ValueError("Specificare almeno full_name o new_password")
        return self


class UserResponse(BaseModel):
    """
    Schema per la risposta contenente dati utente.

    Utilizzato per le risposte API che espongono dati utente.
    """

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="UUID dell'utente")
    email: str = Field(..., description="Email dell'utente")
    username: str = Field(..., description="Nome utente")
    full_name: str = Field(..., description="Nome visualizzato")
    role: UserRole = Field(..., description="Ruolo dell'utente")
    is_active: bool = Field(..., description="Indica se l'utente è attivo")
    created_at: datetime = Field(..., description="Data/ora di creazione")


class ProvisionResult(BaseModel):
    """
    Esito di un preset di provisioning.

    Attributes:
        preset: Nome del preset eseguito
        created: Profili creati
        skipped: Email già presenti, non modificate
    """

    preset: str
    created: list[UserResponse] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)


__all__ = [
    "UserCreate",
    "UserLogin",
    "UserUpdate",
    "UserResponse",
    "ProvisionResult",
]
