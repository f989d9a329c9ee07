"""
Schemas Pydantic per gli Ordini della tipografia
Progetto: Print Shop Manager (Gestionale Tipografia)

Definisce enum di dominio, schemi di validazione/serializzazione per l'API
e i comandi di transizione (uno per azione, ciascuno con i soli campi necessari).
"""

import datetime
import uuid
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    RootModel,
    computed_field,
    field_validator,
    model_validator,
)


# -------------------------------------------------------------------
# Enum di dominio
# -------------------------------------------------------------------

class OrderStatus(str, Enum):
    """Stato informativo dell'ordine (non vincola la consegna)."""
    PENDING = "Pendiente"
    IN_PROGRESS = "En Proceso"
    COMPLETED = "Completado"
    READY_FOR_DELIVERY = "Listo para Entrega"


class ProductionStatus(str, Enum):
    """Avanzamento della produzione."""
    PENDING = "Pendiente"
    IN_PROGRESS = "En Proceso"
    COMPLETED = "Completado"


class DeliveryStatus(str, Enum):
    """Esito finale dell'ordine."""
    PENDING = "Pendiente"
    DELIVERED = "Entregado"
    CANCELLED = "Cancelado"


class Priority(str, Enum):
    """Priorità dell'ordine."""
    HIGH = "Alta"
    MEDIUM = "Media"
    LOW = "Baja"


class PaymentMethod(str, Enum):
    """Metodi di pagamento accettati in cassa."""
    CASH = "efectivo"
    CARD = "tarjeta"
    TRANSFER = "transferencia"


class WorkType(str, Enum):
    """Tipi di lavoro, uno per area di produzione."""
    BANNER_PRINT = "Impresión de Lonas"
    VINYL_PRINT = "Impresión de Vinil"
    VINYL_CUT = "Vinil de Corte"
    SUBLIMATION = "Sublimación"
    PLOTTING = "Ploteo"


# Cartella d'archivio per ogni area di produzione
WORK_TYPE_FOLDERS: dict[WorkType, str] = {
    WorkType.BANNER_PRINT: "Lonas",
    WorkType.VINYL_PRINT: "Vinil_Impresion",
    WorkType.VINYL_CUT: "Vinil_Corte",
    WorkType.SUBLIMATION: "Sublimacion",
    WorkType.PLOTTING: "Ploteo",
}

# Stati di consegna finali: nessuna transizione successiva ammessa
TERMINAL_DELIVERY_STATUSES: frozenset[DeliveryStatus] = frozenset(
    {DeliveryStatus.DELIVERED, DeliveryStatus.CANCELLED}
)

# Ordinamento della coda di produzione (Alta per prima)
PRIORITY_RANK: dict[Priority, int] = {
    Priority.HIGH: 0,
    Priority.MEDIUM: 1,
    Priority.LOW: 2,
}


# -------------------------------------------------------------------
# Funzioni di validazione standalone
# -------------------------------------------------------------------

def validate_client_name(v: Optional[str]) -> Optional[str]:
    """
    Normalizza il nome del cliente.

    Raises:
        ValueError: Se il nome è vuoto dopo lo strip
    """
    if v is not None:
        v = v.strip()
        if not v:
            raise ValueError("Il nome del cliente è obbligatorio")
    return v


# -------------------------------------------------------------------
# Schemas per OrderFile
# -------------------------------------------------------------------

class OrderFileRead(BaseModel):
    """File di produzione allegato a un ordine."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    storage_path: str
    size: int
    mime_type: Optional[str]
    area: WorkType
    position: int
    created_at: datetime.datetime


# -------------------------------------------------------------------
# Schemas per Order
# -------------------------------------------------------------------

class OrderCreate(BaseModel):
    """
    Schema per la creazione di un ordine.

    Attributes:
        client: Nome del cliente o dell'azienda (obbligatorio)
        work_type: Tipo di lavoro (obbligatorio)
        due_date: Data di consegna prevista (obbligatoria)
        total_amount: Importo totale, >= 0 (obbligatorio)
        advance_payment: Anticipo versato alla creazione
    """
    client: str = Field(..., min_length=1, max_length=200, description="Nome del cliente")
    client_phone: Optional[str] = Field(None, max_length=30, description="Telefono di contatto")
    client_email: Optional[EmailStr] = Field(None, description="Email di contatto")
    work_type: WorkType = Field(..., description="Tipo di lavoro")
    priority: Priority = Field(default=Priority.MEDIUM, description="Priorità")
    due_date: datetime.date = Field(..., description="Data di consegna prevista")
    total_amount: Decimal = Field(..., ge=Decimal("0"), max_digits=10, decimal_places=2)
    advance_payment: Decimal = Field(default=Decimal("0"), ge=Decimal("0"), max_digits=10, decimal_places=2)
    payment_method: Optional[PaymentMethod] = Field(
        None,
        description="Metodo dell'anticipo (obbligatorio se advance_payment > 0)",
    )
    description: Optional[str] = Field(None, max_length=5000)
    notes: Optional[str] = Field(None, max_length=5000)

    @field_validator("client")
    @classmethod
    def validate_client(cls, v: str) -> str:
        return validate_client_name(v)

    @model_validator(mode="after")
    def validate_advance_method(self) -> "OrderCreate":
        """Un anticipo richiede il metodo di pagamento."""
        if self.advance_payment > 0 and self.payment_method is None:
            raise ValueError("Il metodo di pagamento è obbligatorio per l'anticipo")
        return self


class OrderUpdate(BaseModel):
    """
    Schema per la modifica dei dati descrittivi di un ordine.

    Stati e importi NON sono modificabili qui: usare gli endpoint di transizione.
    """
    client_phone: Optional[str] = Field(None, max_length=30)
    client_email: Optional[EmailStr] = None
    priority: Optional[Priority] = None
    due_date: Optional[datetime.date] = None
    description: Optional[str] = Field(None, max_length=5000)
    notes: Optional[str] = Field(None, max_length=5000)

    @field_validator("priority", "due_date")
    @classmethod
    def reject_null(cls, v):
        """Priorità e data di consegna si possono omettere ma non annullare."""
        if v is None:
            raise ValueError("Il campo non può essere nullo")
        return v


class OrderRead(BaseModel):
    """
    Schema per la lettura di un ordine.

    remaining_balance è sempre ricalcolato dagli importi.
    """
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    folio: str
    client: str
    client_phone: Optional[str] = None
    client_email: Optional[str] = None
    work_type: WorkType
    status: OrderStatus
    production_status: ProductionStatus
    delivery_status: DeliveryStatus
    priority: Priority
    description: Optional[str] = None
    notes: Optional[str] = None
    total_amount: Decimal
    advance_payment: Decimal
    payment_method: Optional[PaymentMethod] = None
    due_date: datetime.date
    delivered_at: Optional[datetime.datetime] = None
    completed_at: Optional[datetime.datetime] = None
    created_by: Optional[uuid.UUID] = None
    delivered_by: Optional[uuid.UUID] = None
    completed_by: Optional[uuid.UUID] = None
    created_at: datetime.datetime
    updated_at: datetime.datetime
    files: list[OrderFileRead] = Field(default_factory=list)

    @computed_field
    @property
    def remaining_balance(self) -> Decimal:
        """Saldo residuo (total_amount - advance_payment)."""
        return self.total_amount - self.advance_payment


class OrderList(BaseModel):
    """
    Schema per la risposta paginata degli ordini.
    """
    items: list[OrderRead]
    total: int
    page: int
    per_page: int
    total_pages: int = 0

    @model_validator(mode="after")
    def compute_total_pages(self) -> "OrderList":
        """Calcola automaticamente il numero totale di pagine."""
        if self.per_page > 0:
            self.total_pages = (self.total + self.per_page - 1) // self.per_page
        return self


class OrderChanges(BaseModel):
    """Risposta del polling: ordini modificati dopo `since`."""
    items: list[OrderRead]
    cursor: datetime.datetime = Field(..., description="Valore da passare come `since` al prossimo polling")


class BalanceRead(BaseModel):
    """Situazione contabile di un ordine."""
    order_id: uuid.UUID
    folio: str
    total_amount: Decimal
    advance_payment: Decimal
    remaining_balance: Decimal
    can_deliver: bool


# -------------------------------------------------------------------
# Comandi di transizione (variante con tag `action`)
# -------------------------------------------------------------------

class StartProduction(BaseModel):
    """Porta l'ordine in lavorazione (stato informativo)."""
    action: Literal["start_production"] = "start_production"


class CompleteProduction(BaseModel):
    """Segna la produzione come completata."""
    action: Literal["complete_production"] = "complete_production"


class RegisterPayment(BaseModel):
    """Registra un pagamento; se salda il totale consegna l'ordine."""
    action: Literal["register_payment"] = "register_payment"
    amount: Decimal = Field(..., description="Importo del pagamento (> 0)")
    method: Optional[PaymentMethod] = Field(None, description="Metodo di pagamento")


class Deliver(BaseModel):
    """Consegna un ordine già saldato."""
    action: Literal["deliver"] = "deliver"


class Cancel(BaseModel):
    """Cancella l'ordine (finale)."""
    action: Literal["cancel"] = "cancel"


OrderTransition = Annotated[
    Union[StartProduction, CompleteProduction, RegisterPayment, Deliver, Cancel],
    Field(discriminator="action"),
]


class TransitionRequest(RootModel[OrderTransition]):
    """Corpo della richiesta di transizione: un comando con il campo `action`."""


class PaymentResult(BaseModel):
    """Esito della registrazione di un pagamento."""
    order: OrderRead
    remaining_balance: Decimal
    delivered: bool


class OrderEvent(BaseModel):
    """Notifica di modifica di un ordine inviata agli iscritti."""
    type: str = Field(..., description="Tipo evento, es. order.delivered")
    order_id: uuid.UUID
    folio: str
    occurred_at: datetime.datetime
    data: dict[str, Any] = Field(default_factory=dict)
