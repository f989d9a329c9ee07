"""
Service Layer per il ciclo di vita degli Ordini
Progetto: Print Shop Manager (Gestionale Tipografia)

Creazione degli ordini (con generazione del folio) e transizioni di stato:
avvio e completamento della produzione, consegna, cancellazione.

Stati di consegna:
    Pendiente → Entregado | Cancelado (entrambi finali)

Stati di produzione:
    Pendiente (o En Proceso) → Completado (finale)

Ogni controllo di precondizione avviene prima di modificare l'ordine:
se una transizione viene rifiutata l'ordine resta invariato.
"""

import datetime
import logging
import random
import uuid
from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    BalanceError,
    BusinessValidationError,
    ConflictError,
    StateError,
)
from app.models.mixins import utcnow
from app.models.order import Order
from app.schemas.order import (
    Cancel,
    CompleteProduction,
    Deliver,
    DeliveryStatus,
    OrderCreate,
    OrderStatus,
    ProductionStatus,
    RegisterPayment,
    StartProduction,
)
from app.schemas.token import SessionContext
from app.services.order_service import OrderService
from app.services.payment_service import PaymentOutcome, PaymentService, compute_remaining_balance

# Logger per questo modulo
logger = logging.getLogger(__name__)


# -------------------------------------------------------------------
# Folio
# -------------------------------------------------------------------

def generate_folio(now: Optional[datetime.datetime] = None, rng: Optional[random.Random] = None) -> str:
    """
    Genera un folio nel formato ORD-YYYYMMDD-NNN.

    La data è quella locale del negozio (settings.timezone), il suffisso
    è un numero casuale di tre cifre.
    """
    now = now or utcnow()
    local_date = now.astimezone(settings.tzinfo).strftime("%Y%m%d")
    suffix = (rng or random).randint(0, 999)
    return f"ORD-{local_date}-{suffix:03d}"


# -------------------------------------------------------------------
# Guardie (funzioni pure, nessuna modifica all'ordine)
# -------------------------------------------------------------------

def ensure_not_closed(order: Order, action: str) -> None:
    """
    Raises:
        StateError: Se l'ordine è consegnato o cancellato
    """
    if order.delivery_status in (DeliveryStatus.DELIVERED.value, DeliveryStatus.CANCELLED.value):
        raise StateError(
            f"Impossibile {action}: l'ordine {order.folio} è {order.delivery_status}",
            extra={"delivery_status": order.delivery_status},
        )


def check_can_start_production(order: Order) -> None:
    ensure_not_closed(order, "avviare la produzione")
    if order.status != OrderStatus.PENDING.value:
        raise StateError(
            f"La produzione dell'ordine {order.folio} non è in attesa (stato: {order.status})",
            extra={"status": order.status},
        )


def check_can_complete_production(order: Order) -> None:
    ensure_not_closed(order, "completare la produzione")
    if order.production_status not in (
        ProductionStatus.PENDING.value,
        ProductionStatus.IN_PROGRESS.value,
    ):
        raise StateError(
            f"La produzione dell'ordine {order.folio} è già {order.production_status}",
            extra={"production_status": order.production_status},
        )


def check_can_deliver(order: Order) -> None:
    """
    Raises:
        StateError: Se l'ordine è già consegnato o cancellato
        BalanceError: Se resta un saldo da incassare
    """
    ensure_not_closed(order, "consegnare")
    remaining = compute_remaining_balance(order)
    if remaining > 0:
        raise BalanceError(
            f"L'ordine {order.folio} ha un saldo pendiente di {remaining} {settings.currency}",
            extra={"remaining_balance": str(remaining)},
        )


def check_can_cancel(order: Order) -> None:
    ensure_not_closed(order, "cancellare")


# -------------------------------------------------------------------
# Service
# -------------------------------------------------------------------

class OrderLifecycleService:
    """
    Service per la creazione degli ordini e le transizioni di stato.

    Le modifiche vengono scritte con un solo flush; il commit spetta al chiamante.
    """

    def __init__(
        self,
        order_service: Optional[OrderService] = None,
        payment_service: Optional[PaymentService] = None,
    ) -> None:
        self.orders = order_service or OrderService()
        self.payments = payment_service or PaymentService(self.orders)

    async def _next_free_folio(self, db: AsyncSession) -> str:
        for attempt in range(1, settings.folio_max_attempts + 1):
            folio = generate_folio()
            if not await self.orders.folio_exists(db, folio):
                return folio
            logger.info("Folio %s già in uso (tentativo %d)", folio, attempt)

        logger.error("Nessun folio libero dopo %d tentativi", settings.folio_max_attempts)
        raise ConflictError(
            "Impossibile generare un folio univoco, riprovare",
            extra={"attempts": settings.folio_max_attempts},
        )

    async def create_order(
        self,
        db: AsyncSession,
        data: Union[OrderCreate, dict[str, Any]],
        ctx: SessionContext,
    ) -> Order:
        """
        Crea un nuovo ordine in stato Pendiente.

        Args:
            db: Sessione database
            data: Dati dell'ordine (schema o dizionario da validare)
            ctx: Contesto della sessione (diventa created_by)

        Returns:
            Order: L'ordine creato

        Raises:
            ValidationError: Campi obbligatori mancanti o non validi
            ConflictError: Nessun folio univoco disponibile
        """
        if not isinstance(data, OrderCreate):
            try:
                data = OrderCreate.model_validate(data)
            except PydanticValidationError as e:
                fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
                raise BusinessValidationError(
                    f"Dati dell'ordine non validi: {', '.join(fields)}",
                    extra={"fields": fields},
                ) from e

        if not settings.allow_overpayment and data.advance_payment > data.total_amount:
            raise BusinessValidationError(
                "L'anticipo non può superare l'importo totale",
                extra={"total_amount": str(data.total_amount)},
            )

        folio = await self._next_free_folio(db)

        order = Order(
            folio=folio,
            client=data.client,
            client_phone=data.client_phone,
            client_email=str(data.client_email) if data.client_email else None,
            work_type=data.work_type.value,
            priority=data.priority.value,
            description=data.description,
            notes=data.notes,
            total_amount=data.total_amount,
            advance_payment=data.advance_payment,
            payment_method=data.payment_method.value if data.payment_method else None,
            due_date=data.due_date,
            status=OrderStatus.PENDING.value,
            production_status=ProductionStatus.PENDING.value,
            delivery_status=DeliveryStatus.PENDING.value,
            created_by=ctx.user_id,
            files=[],
        )

        db.add(order)
        try:
            await db.flush()
        except IntegrityError as e:
            # Folio assegnato da una richiesta concorrente tra controllo e insert
            logger.warning("Conflitto di unicità creando l'ordine %s", folio)
            raise ConflictError(
                f"Il folio {folio} è stato appena assegnato a un altro ordine, riprovare",
                extra={"folio": folio},
            ) from e

        logger.info(
            "Creato ordine %s (%s, %s) da %s",
            order.folio, order.client, order.work_type, ctx.user_id,
        )
        return order

    async def start_production(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        ctx: SessionContext,
    ) -> Order:
        """
        Segna l'ordine come in lavorazione (solo informativo).

        Raises:
            NotFoundError: Se l'ordine non esiste
            StateError: Se l'ordine non è in attesa o è chiuso
        """
        order = await self.orders.get_by_id(db, order_id)
        check_can_start_production(order)

        order.status = OrderStatus.IN_PROGRESS.value
        await db.flush()

        logger.info("Produzione avviata per %s da %s", order.folio, ctx.user_id)
        return order

    async def mark_production_completed(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        ctx: SessionContext,
    ) -> Order:
        """
        Completa la produzione: l'ordine passa a Listo para Entrega.

        Raises:
            NotFoundError: Se l'ordine non esiste
            StateError: Produzione già completata, oppure ordine chiuso
        """
        order = await self.orders.get_by_id(db, order_id)
        check_can_complete_production(order)

        order.production_status = ProductionStatus.COMPLETED.value
        order.status = OrderStatus.READY_FOR_DELIVERY.value
        order.completed_at = utcnow()
        order.completed_by = ctx.user_id
        await db.flush()

        logger.info("Produzione completata per %s da %s", order.folio, ctx.user_id)
        return order

    async def deliver_order(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        ctx: SessionContext,
    ) -> Order:
        """
        Consegna un ordine interamente saldato.

        Raises:
            NotFoundError: Se l'ordine non esiste
            StateError: Se l'ordine è già consegnato o cancellato
            BalanceError: Se remaining_balance > 0
        """
        order = await self.orders.get_by_id(db, order_id)
        try:
            check_can_deliver(order)
        except BalanceError:
            logger.warning(
                "Consegna rifiutata per %s: saldo %s", order.folio, compute_remaining_balance(order)
            )
            raise

        order.delivery_status = DeliveryStatus.DELIVERED.value
        order.delivered_at = utcnow()
        order.delivered_by = ctx.user_id
        await db.flush()

        logger.info("Ordine %s consegnato da %s", order.folio, ctx.user_id)
        return order

    async def cancel_order(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        ctx: SessionContext,
    ) -> Order:
        """
        Cancella un ordine. La cancellazione è definitiva.

        Raises:
            NotFoundError: Se l'ordine non esiste
            StateError: Se l'ordine è già consegnato o cancellato
        """
        order = await self.orders.get_by_id(db, order_id)
        check_can_cancel(order)

        order.delivery_status = DeliveryStatus.CANCELLED.value
        await db.flush()

        logger.info("Ordine %s cancellato da %s", order.folio, ctx.user_id)
        return order

    async def apply(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        transition: Union[StartProduction, CompleteProduction, RegisterPayment, Deliver, Cancel],
        ctx: SessionContext,
    ) -> Union[Order, PaymentOutcome]:
        """
        Applica un comando di transizione già validato.

        Returns:
            L'ordine aggiornato, oppure PaymentOutcome per register_payment
        """
        if isinstance(transition, StartProduction):
            return await self.start_production(db, order_id, ctx)
        if isinstance(transition, CompleteProduction):
            return await self.mark_production_completed(db, order_id, ctx)
        if isinstance(transition, RegisterPayment):
            return await self.payments.register_payment(
                db, order_id, transition.amount, transition.method, ctx
            )
        if isinstance(transition, Deliver):
            return await self.deliver_order(db, order_id, ctx)
        if isinstance(transition, Cancel):
            return await self.cancel_order(db, order_id, ctx)
        raise BusinessValidationError(f"Transizione non supportata: {transition!r}")


__all__ = [
    "OrderLifecycleService",
    "generate_folio",
    "ensure_not_closed",
    "check_can_start_production",
    "check_can_complete_production",
    "check_can_deliver",
    "check_can_cancel",
]
