"""
Service Layer per la consultazione degli Ordini
Progetto: Print Shop Manager (Gestionale Tipografia)

Letture e modifiche descrittive degli ordini: lista con filtri, ricerca
per la cassa, coda di produzione, polling delle modifiche.
Le transizioni di stato sono in order_lifecycle_service e payment_service.
"""

import datetime
import logging
import uuid
from typing import Optional

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, StateError
from app.models.order import Order
from app.schemas.order import (
    PRIORITY_RANK,
    DeliveryStatus,
    OrderStatus,
    OrderUpdate,
    Priority,
    ProductionStatus,
    TERMINAL_DELIVERY_STATUSES,
    WorkType,
)

# Logger per questo modulo
logger = logging.getLogger(__name__)

CLOSED_VALUES = tuple(s.value for s in TERMINAL_DELIVERY_STATUSES)


def not_closed_condition():
    """Condizione SQL: ordine né consegnato né cancellato."""
    return Order.delivery_status.not_in(CLOSED_VALUES)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def search_condition(term: str):
    """Condizione SQL: folio o cliente contengono il termine (case-insensitive)."""
    pattern = f"%{_escape_like(term)}%"
    return or_(
        Order.folio.ilike(pattern, escape="\\"),
        Order.client.ilike(pattern, escape="\\"),
    )


class OrderService:
    """
    Service per la consultazione e la modifica dei dati descrittivi degli ordini.

    Fornisce metodi asincroni senza dipendenze da FastAPI.
    """

    async def get_all(
        self,
        db: AsyncSession,
        status_filter: Optional[OrderStatus] = None,
        production_status: Optional[ProductionStatus] = None,
        delivery_status: Optional[DeliveryStatus] = None,
        work_type: Optional[WorkType] = None,
        priority: Optional[Priority] = None,
        created_by: Optional[uuid.UUID] = None,
        search: Optional[str] = None,
        include_closed: bool = True,
        page: int = 1,
        per_page: int = 20,
    ) -> tuple[list[Order], int]:
        """
        Recupera la lista paginata degli ordini, più recenti prima.

        Args:
            db: Sessione database
            status_filter: Filtro per stato informativo
            production_status: Filtro per stato di produzione
            delivery_status: Filtro per stato di consegna
            work_type: Filtro per tipo di lavoro
            priority: Filtro per priorità
            created_by: Filtro per profilo creatore
            search: Termine di ricerca su folio e cliente
            include_closed: Se False esclude ordini consegnati e cancellati
            page: Numero pagina (default 1)
            per_page: Elementi per pagina (default 20)

        Returns:
            Tuple di (lista ordini, totale count)
        """
        conditions = []

        if status_filter:
            conditions.append(Order.status == status_filter.value)
        if production_status:
            conditions.append(Order.production_status == production_status.value)
        if delivery_status:
            conditions.append(Order.delivery_status == delivery_status.value)
        if work_type:
            conditions.append(Order.work_type == work_type.value)
        if priority:
            conditions.append(Order.priority == priority.value)
        if created_by:
            conditions.append(Order.created_by == created_by)
        if search and search.strip():
            conditions.append(search_condition(search.strip()))
        if not include_closed:
            conditions.append(not_closed_condition())

        query = select(Order)
        count_query = select(func.count()).select_from(Order)
        if conditions:
            query = query.where(and_(*conditions))
            count_query = count_query.where(and_(*conditions))

        offset = (page - 1) * per_page
        query = query.order_by(Order.created_at.desc()).offset(offset).limit(per_page)

        result = await db.execute(query)
        orders = list(result.scalars().all())

        count_result = await db.execute(count_query)
        total = count_result.scalar() or 0

        logger.debug("Recuperati %d ordini su %d totali", len(orders), total)
        return orders, total

    async def get_by_id(self, db: AsyncSession, order_id: uuid.UUID) -> Order:
        """
        Recupera un ordine tramite ID.

        Raises:
            NotFoundError: Se l'ordine non esiste
        """
        result = await db.execute(select(Order).where(Order.id == order_id))
        order = result.scalar_one_or_none()

        if not order:
            logger.warning("Ordine non trovato: %s", order_id)
            raise NotFoundError(f"Ordine con ID {order_id} non trovato")

        return order

    async def get_by_folio(self, db: AsyncSession, folio: str) -> Order:
        """
        Recupera un ordine tramite folio (confronto case-insensitive).

        Raises:
            NotFoundError: Se il folio non esiste
        """
        result = await db.execute(
            select(Order).where(func.upper(Order.folio) == folio.strip().upper())
        )
        order = result.scalar_one_or_none()

        if not order:
            logger.warning("Folio non trovato: %s", folio)
            raise NotFoundError(f"Ordine con folio {folio} non trovato")

        return order

    async def folio_exists(self, db: AsyncSession, folio: str) -> bool:
        """True se esiste già un ordine con questo folio."""
        result = await db.execute(
            select(func.count()).select_from(Order).where(Order.folio == folio)
        )
        return (result.scalar() or 0) > 0

    async def search_for_cashier(
        self,
        db: AsyncSession,
        term: str,
        limit: int = 50,
    ) -> list[Order]:
        """
        Ricerca per la cassa: ordini aperti il cui folio o cliente contiene il termine.

        Un termine vuoto restituisce una lista vuota senza interrogare il database.
        """
        term = (term or "").strip()
        if not term:
            return []

        query = (
            select(Order)
            .where(and_(search_condition(term), not_closed_condition()))
            .order_by(Order.created_at.desc())
            .limit(limit)
        )
        result = await db.execute(query)
        return list(result.scalars().all())

    async def production_queue(
        self,
        db: AsyncSession,
        work_type: Optional[WorkType] = None,
        search: Optional[str] = None,
    ) -> list[Order]:
        """
        Coda di produzione: ordini aperti non ancora completati.

        Ordinati per priorità (Alta, Media, Baja) e poi dal più recente.

        Args:
            db: Sessione database
            work_type: Limita la coda a un'area di produzione
            search: Termine di ricerca su folio e cliente
        """
        priority_order = case(
            {p.value: rank for p, rank in PRIORITY_RANK.items()},
            value=Order.priority,
            else_=len(PRIORITY_RANK),
        )

        conditions = [
            not_closed_condition(),
            Order.production_status != ProductionStatus.COMPLETED.value,
        ]
        if work_type:
            conditions.append(Order.work_type == work_type.value)
        if search and search.strip():
            conditions.append(search_condition(search.strip()))

        query = (
            select(Order)
            .where(and_(*conditions))
            .order_by(priority_order, Order.created_at.desc())
        )
        result = await db.execute(query)
        return list(result.scalars().all())

    async def changes_since(
        self,
        db: AsyncSession,
        since: datetime.datetime,
        limit: int = 200,
    ) -> list[Order]:
        """
        Ordini modificati dopo `since` (fallback di polling per i client senza WebSocket).
        """
        if since.tzinfo is None:
            since = since.replace(tzinfo=datetime.timezone.utc)
        else:
            since = since.astimezone(datetime.timezone.utc)

        query = (
            select(Order)
            .where(Order.updated_at > since)
            .order_by(Order.updated_at.asc())
            .limit(limit)
        )
        result = await db.execute(query)
        return list(result.scalars().all())

    async def update(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        data: OrderUpdate,
    ) -> Order:
        """
        Aggiorna i dati descrittivi di un ordine.

        NOTA: stati e importi non sono modificabili qui.

        Raises:
            NotFoundError: Se l'ordine non esiste
            StateError: Se l'ordine è già consegnato o cancellato
        """
        order = await self.get_by_id(db, order_id)

        if order.is_closed:
            logger.warning(
                "Modifica rifiutata per ordine %s: stato %s", order.folio, order.delivery_status
            )
            raise StateError(
                f"L'ordine {order.folio} è {order.delivery_status} e non può essere modificato"
            )

        update_data = data.model_dump(exclude_unset=True)
        for field, value in update_data.items():
            if isinstance(value, Priority):
                value = value.value
            setattr(order, field, value)

        await db.flush()

        logger.info("Aggiornato ordine %s: %s", order.folio, ", ".join(update_data) or "nessun campo")
        return order


__all__ = [
    "OrderService",
    "not_closed_condition",
    "search_condition",
]
