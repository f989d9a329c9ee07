"""
Modelli SQLAlchemy per gli Ordini della tipografia
Progetto: Print Shop Manager (Gestionale Tipografia)

 Contiene:
- Order: Ordine di lavoro (cliente, tipo di lavoro, importi, stati)
- OrderFile: File di produzione allegati all'ordine, raggruppati per area
"""


from __future__ import annotations
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models import Base
from app.models.mixins import TimestampMixin, UUIDMixin


# Gli stati sono definiti in app.schemas.order (OrderStatus, ProductionStatus, DeliveryStatus)


class Order(Base, UUIDMixin, TimestampMixin):
    """
    Modello per gli ordini della tipografia.

    Attributes:
        id: UUID primary key
        folio: Codice leggibile ORD-YYYYMMDD-NNN, univoco
        client: Nome del cliente o dell'azienda
        client_phone: Telefono di contatto
        client_email: Email di contatto
        work_type: Tipo di lavoro (area di produzione)
        status: Stato informativo (Pendiente, En Proceso, Completado, Listo para Entrega)
        production_status: Avanzamento produzione (Pendiente, En Proceso, Completado)
        delivery_status: Esito finale (Pendiente, Entregado, Cancelado)
        priority: Alta, Media, Baja
        description: Descrizione del lavoro
        notes: Note e istruzioni aggiuntive
        total_amount: Importo totale
        advance_payment: Somma dei pagamenti ricevuti
        payment_method: Metodo dell'ultimo pagamento registrato
        due_date: Data di consegna prevista
        delivered_at, completed_at: Timestamp delle transizioni
        created_by, delivered_by, completed_by: Profili che hanno eseguito le azioni

    Properties:
        remaining_balance: total_amount - advance_payment, sempre calcolato

    States:
        delivery_status: Pendiente → Entregado | Cancelado (entrambi finali)
        production_status: Pendiente → Completado (finale)
    """

    __tablename__ = "orders"

    # ------------------------------------------------------------
    # Colonne Identificative
    # ------------------------------------------------------------
    folio: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
        doc="Codice ordine leggibile ORD-YYYYMMDD-NNN",
    )

    client: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        doc="Nome del cliente o dell'azienda",
    )

    client_phone: Mapped[Optional[str]] = mapped_column(
        String(30),
        nullable=True,
        doc="Telefono di contatto del cliente",
    )

    client_email: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="Email di contatto del cliente",
    )

    work_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        doc="Tipo di lavoro / area di produzione",
    )

    # ------------------------------------------------------------
    # Colonne Stato
    # ------------------------------------------------------------
    status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="Pendiente",
        doc="Stato informativo dell'ordine",
    )

    production_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="Pendiente",
        doc="Stato di avanzamento della produzione",
    )

    delivery_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="Pendiente",
        doc="Esito di consegna (finale se Entregado o Cancelado)",
    )

    priority: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default="Media",
        doc="Priorità dell'ordine",
    )

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # ------------------------------------------------------------
    # Colonne Importi
    # ------------------------------------------------------------
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Importo totale dell'ordine",
    )

    advance_payment: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Somma dei pagamenti ricevuti (anticipo + saldi)",
    )

    payment_method: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        doc="Metodo dell'ultimo pagamento registrato",
    )

    # ------------------------------------------------------------
    # Colonne Date
    # ------------------------------------------------------------
    due_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        doc="Data di consegna prevista",
    )

    delivered_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ------------------------------------------------------------
    # Riferimenti ai profili (non proprietari)
    # ------------------------------------------------------------
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        doc="Profilo che ha creato l'ordine",
    )

    delivered_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        doc="Profilo che ha consegnato l'ordine",
    )

    completed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        doc="Profilo che ha completato la produzione",
    )

    # ------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------
    files: Mapped[List["OrderFile"]] = relationship(
        "OrderFile",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderFile.position",
        lazy="selectin",
        doc="File di produzione in ordine di caricamento",
    )

    # ------------------------------------------------------------
    # Indici e Vincoli
    # ------------------------------------------------------------
    __table_args__ = (
        Index("ix_orders_delivery_status", "delivery_status"),
        Index("ix_orders_created_at", "created_at"),
        Index("ix_orders_work_type_production", "work_type", "production_status"),
        CheckConstraint(
            "status IN ('Pendiente', 'En Proceso', 'Completado', 'Listo para Entrega')",
            name="ck_orders_status",
        ),
        CheckConstraint(
            "production_status IN ('Pendiente', 'En Proceso', 'Completado')",
            name="ck_orders_production_status",
        ),
        CheckConstraint(
            "delivery_status IN ('Pendiente', 'Entregado', 'Cancelado')",
            name="ck_orders_delivery_status",
        ),
        CheckConstraint(
            "priority IN ('Alta', 'Media', 'Baja')",
            name="ck_orders_priority",
        ),
        CheckConstraint("total_amount >= 0", name="ck_orders_total_amount"),
        CheckConstraint("advance_payment >= 0", name="ck_orders_advance_payment"),
    )

    # ------------------------------------------------------------
    # Hybrid Properties Calcolate
    # ------------------------------------------------------------
    @hybrid_property
    def remaining_balance(self) -> Decimal:
        """
        Saldo residuo (total_amount - advance_payment).

        Non viene mai salvato: un valore negativo indica un credito del cliente.
        """
        return (self.total_amount or Decimal("0")) - (self.advance_payment or Decimal("0"))

    @remaining_balance.expression
    def remaining_balance(cls):
        return cls.total_amount - cls.advance_payment

    @property
    def is_closed(self) -> bool:
        """True se l'ordine è stato consegnato o cancellato."""
        return self.delivery_status in ("Entregado", "Cancelado")

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, folio={self.folio}, delivery_status={self.delivery_status})>"


class OrderFile(Base, UUIDMixin, TimestampMixin):
    """
    File di produzione associato a un ordine.

    Attributes:
        order_id: UUID dell'ordine padre
        name: Nome originale del file
        storage_path: Chiave nell'archivio ({folio}/{cartella area}/{timestamp}-{random}.{ext})
        size: Dimensione in byte
        mime_type: Tipo MIME dichiarato al caricamento
        area: Area di produzione (tipo di lavoro) a cui è destinato
        position: Posizione nell'elenco ordinato dei file
    """

    __tablename__ = "order_files"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    storage_path: Mapped[str] = mapped_column(String(500), unique=True, nullable=False)

    size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    mime_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    area: Mapped[str] = mapped_column(String(50), nullable=False)

    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    order: Mapped["Order"] = relationship(
        "Order",
        back_populates="files",
    )

    def __repr__(self) -> str:
        return f"<OrderFile(id={self.id}, area={self.area}, name={self.name})>"
