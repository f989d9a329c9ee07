"""
Router FastAPI per gli Ordini
Progetto: Print Shop Manager (Gestionale Tipografia)

Definisce gli endpoint API per la creazione e consultazione degli ordini,
le transizioni del ciclo di vita, i pagamenti in cassa, i file di
produzione e il canale WebSocket delle notifiche.
"""

import datetime
import logging
import uuid
from typing import Optional, Union

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Path,
    Query,
    Request,
    UploadFile,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.deps import (
    CashierSession,
    CurrentSession,
    ProductionSession,
    load_user_from_token,
)
from app.core.exceptions import AuthorizationError, NotFoundError
from app.models.order import Order
from app.models.user import CASHIER_ROLES, PRODUCTION_ROLES
from app.schemas.order import (
    BalanceRead,
    Cancel,
    CompleteProduction,
    Deliver,
    DeliveryStatus,
    OrderChanges,
    OrderCreate,
    OrderFileRead,
    OrderList,
    OrderRead,
    OrderStatus,
    OrderUpdate,
    PaymentResult,
    Priority,
    ProductionStatus,
    RegisterPayment,
    StartProduction,
    TransitionRequest,
    WorkType,
)
from app.schemas.token import SessionContext
from app.services.event_broker import OrderEventBroker, order_event
from app.services.order_lifecycle_service import OrderLifecycleService
from app.services.order_service import OrderService
from app.services.payment_service import PaymentOutcome, PaymentService, compute_remaining_balance
from app.services.storage_service import FileStorageService, get_storage_service

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Istanze dei service
order_service = OrderService()
payment_service = PaymentService(order_service)
lifecycle_service = OrderLifecycleService(order_service, payment_service)

# Router con prefix e tag
router = APIRouter(
    prefix="/orders",
    tags=["Ordini"],
)

# Evento pubblicato per ogni tipo di transizione
TRANSITION_EVENTS: dict[type, str] = {
    StartProduction: "order.updated",
    CompleteProduction: "order.production_completed",
    Deliver: "order.delivered",
    Cancel: "order.cancelled",
}


def get_event_broker(request: Request) -> OrderEventBroker:
    """Dependency: broker delle notifiche conservato su app.state."""
    return request.app.state.order_events


def _require_role(ctx: SessionContext, allowed: tuple) -> None:
    if ctx.role not in allowed:
        raise AuthorizationError(
            "Accesso negato. Ruolo richiesto: " + ", ".join(r.value for r in allowed)
        )


async def _commit_and_publish(
    db: AsyncSession,
    broker: OrderEventBroker,
    event_type: str,
    order: Order,
    **data,
) -> None:
    await db.commit()
    await broker.publish(order_event(event_type, order, **data))


def _payment_result(outcome: PaymentOutcome) -> PaymentResult:
    return PaymentResult(
        order=OrderRead.model_validate(outcome.order),
        remaining_balance=outcome.remaining_balance,
        delivered=outcome.delivered,
    )


# -------------------------------------------------------------------
# Consultazione
# -------------------------------------------------------------------

@router.get(
    "/",
    name="ordini_lista",
    summary="Lista ordini",
    description="Recupera la lista paginata degli ordini con eventuali filtri, più recenti prima.",
    response_model=OrderList,
)
async def get_orders(
    ctx: CurrentSession,
    page: int = Query(1, ge=1, description="Numero pagina"),
    per_page: int = Query(20, ge=1, le=100, description="Elementi per pagina"),
    status_filter: Optional[OrderStatus] = Query(None, description="Filtro per stato"),
    production_status: Optional[ProductionStatus] = Query(None, description="Filtro per stato di produzione"),
    delivery_status: Optional[DeliveryStatus] = Query(None, description="Filtro per stato di consegna"),
    work_type: Optional[WorkType] = Query(None, description="Filtro per tipo di lavoro"),
    priority: Optional[Priority] = Query(None, description="Filtro per priorità"),
    created_by: Optional[uuid.UUID] = Query(None, description="Filtro per profilo creatore"),
    search: Optional[str] = Query(None, description="Ricerca su folio e cliente"),
    include_closed: bool = Query(True, description="Includi ordini consegnati e cancellati"),
    db: AsyncSession = Depends(get_db),
) -> OrderList:
    orders, total = await order_service.get_all(
        db,
        status_filter=status_filter,
        production_status=production_status,
        delivery_status=delivery_status,
        work_type=work_type,
        priority=priority,
        created_by=created_by,
        search=search,
        include_closed=include_closed,
        page=page,
        per_page=per_page,
    )
    return OrderList(
        items=[OrderRead.model_validate(o) for o in orders],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get(
    "/cashier/search",
    name="ordini_ricerca_cassa",
    summary="Ricerca ordini per la cassa",
    description="Ordini aperti il cui folio o cliente contiene il termine. Termine vuoto: lista vuota.",
    response_model=list[OrderRead],
)
async def search_for_cashier(
    ctx: CashierSession,
    q: str = Query("", description="Folio o nome del cliente"),
    db: AsyncSession = Depends(get_db),
) -> list[OrderRead]:
    orders = await order_service.search_for_cashier(db, q)
    return [OrderRead.model_validate(o) for o in orders]


@router.get(
    "/production/queue",
    name="ordini_coda_produzione",
    summary="Coda di produzione",
    description="Ordini aperti non completati, per priorità e poi dal più recente.",
    response_model=list[OrderRead],
)
async def production_queue(
    ctx: ProductionSession,
    work_type: Optional[WorkType] = Query(None, description="Area di produzione"),
    search: Optional[str] = Query(None, description="Ricerca su folio e cliente"),
    db: AsyncSession = Depends(get_db),
) -> list[OrderRead]:
    orders = await order_service.production_queue(db, work_type=work_type, search=search)
    return [OrderRead.model_validate(o) for o in orders]


@router.get(
    "/changes",
    name="ordini_modifiche",
    summary="Ordini modificati dopo un istante",
    description="Alternativa al WebSocket per i client che devono fare polling.",
    response_model=OrderChanges,
)
async def get_changes(
    ctx: CurrentSession,
    since: datetime.datetime = Query(..., description="Istante dell'ultimo polling (ISO 8601)"),
    db: AsyncSession = Depends(get_db),
) -> OrderChanges:
    orders = await order_service.changes_since(db, since)
    cursor = max((o.updated_at for o in orders), default=since)
    return OrderChanges(items=[OrderRead.model_validate(o) for o in orders], cursor=cursor)


@router.get(
    "/folio/{folio}",
    name="ordini_per_folio",
    summary="Dettaglio ordine per folio",
    response_model=OrderRead,
)
async def get_order_by_folio(
    ctx: CurrentSession,
    folio: str = Path(..., description="Folio dell'ordine"),
    db: AsyncSession = Depends(get_db),
) -> OrderRead:
    order = await order_service.get_by_folio(db, folio)
    return OrderRead.model_validate(order)


# -------------------------------------------------------------------
# WebSocket notifiche
# -------------------------------------------------------------------

@router.websocket("/ws")
async def order_events_socket(
    websocket: WebSocket,
    token: Optional[str] = Query(None, description="Access token JWT"),
    db: AsyncSession = Depends(get_db),
) -> None:
    """
    Canale delle notifiche: ogni modifica di un ordine viene inviata come OrderEvent.

    Il client non deve inviare messaggi; quelli ricevuti vengono ignorati.
    """
    try:
        user = await load_user_from_token(db, token)
    except HTTPException as e:
        logger.info("WebSocket rifiutato: %s", e.detail)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    finally:
        await db.close()

    broker: OrderEventBroker = websocket.app.state.order_events
    await websocket.accept()
    await broker.subscribe(websocket)
    logger.info("WebSocket ordini aperto per %s", user.username)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("WebSocket ordini chiuso per %s", user.username)
    finally:
        await broker.unsubscribe(websocket)


# -------------------------------------------------------------------
# Creazione e modifica
# -------------------------------------------------------------------

@router.post(
    "/",
    name="ordini_crea",
    summary="Crea ordine",
    response_model=OrderRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_order(
    data: OrderCreate,
    ctx: CurrentSession,
    db: AsyncSession = Depends(get_db),
    broker: OrderEventBroker = Depends(get_event_broker),
) -> OrderRead:
    order = await lifecycle_service.create_order(db, data, ctx)
    await _commit_and_publish(db, broker, "order.created", order)
    return OrderRead.model_validate(order)


@router.get(
    "/{order_id}",
    name="ordini_dettaglio",
    summary="Dettaglio ordine",
    response_model=OrderRead,
)
async def get_order(
    ctx: CurrentSession,
    order_id: uuid.UUID = Path(..., description="UUID dell'ordine"),
    db: AsyncSession = Depends(get_db),
) -> OrderRead:
    order = await order_service.get_by_id(db, order_id)
    return OrderRead.model_validate(order)


@router.put(
    "/{order_id}",
    name="ordini_aggiorna",
    summary="Aggiorna i dati descrittivi di un ordine",
    description="Stati e importi non sono modificabili: usare le transizioni.",
    response_model=OrderRead,
)
async def update_order(
    data: OrderUpdate,
    ctx: CurrentSession,
    order_id: uuid.UUID = Path(..., description="UUID dell'ordine"),
    db: AsyncSession = Depends(get_db),
    broker: OrderEventBroker = Depends(get_event_broker),
) -> OrderRead:
    order = await order_service.update(db, order_id, data)
    await _commit_and_publish(db, broker, "order.updated", order)
    return OrderRead.model_validate(order)


@router.get(
    "/{order_id}/balance",
    name="ordini_saldo",
    summary="Saldo dell'ordine",
    response_model=BalanceRead,
)
async def get_balance(
    ctx: CurrentSession,
    order_id: uuid.UUID = Path(..., description="UUID dell'ordine"),
    db: AsyncSession = Depends(get_db),
) -> BalanceRead:
    order = await order_service.get_by_id(db, order_id)
    remaining = compute_remaining_balance(order)
    return BalanceRead(
        order_id=order.id,
        folio=order.folio,
        total_amount=order.total_amount,
        advance_payment=order.advance_payment,
        remaining_balance=remaining,
        can_deliver=not order.is_closed and remaining <= 0,
    )


# -------------------------------------------------------------------
# Transizioni
# -------------------------------------------------------------------

@router.post(
    "/{order_id}/start-production",
    name="ordini_avvia_produzione",
    summary="Avvia la produzione",
    response_model=OrderRead,
)
async def start_production(
    ctx: ProductionSession,
    order_id: uuid.UUID = Path(..., description="UUID dell'ordine"),
    db: AsyncSession = Depends(get_db),
    broker: OrderEventBroker = Depends(get_event_broker),
) -> OrderRead:
    order = await lifecycle_service.start_production(db, order_id, ctx)
    await _commit_and_publish(db, broker, "order.updated", order)
    return OrderRead.model_validate(order)


@router.post(
    "/{order_id}/complete-production",
    name="ordini_completa_produzione",
    summary="Completa la produzione",
    response_model=OrderRead,
)
async def complete_production(
    ctx: ProductionSession,
    order_id: uuid.UUID = Path(..., description="UUID dell'ordine"),
    db: AsyncSession = Depends(get_db),
    broker: OrderEventBroker = Depends(get_event_broker),
) -> OrderRead:
    order = await lifecycle_service.mark_production_completed(db, order_id, ctx)
    await _commit_and_publish(db, broker, "order.production_completed", order)
    return OrderRead.model_validate(order)


@router.post(
    "/{order_id}/payments",
    name="ordini_pagamento",
    summary="Registra un pagamento",
    description="Se il pagamento copre il totale l'ordine viene consegnato nella stessa operazione.",
    response_model=PaymentResult,
)
async def register_payment(
    data: RegisterPayment,
    ctx: CashierSession,
    order_id: uuid.UUID = Path(..., description="UUID dell'ordine"),
    db: AsyncSession = Depends(get_db),
    broker: OrderEventBroker = Depends(get_event_broker),
) -> PaymentResult:
    outcome = await payment_service.register_payment(db, order_id, data.amount, data.method, ctx)
    await _commit_and_publish(
        db,
        broker,
        "order.delivered" if outcome.delivered else "order.payment_registered",
        outcome.order,
        amount=str(data.amount),
        remaining_balance=str(outcome.remaining_balance),
    )
    return _payment_result(outcome)


@router.post(
    "/{order_id}/deliver",
    name="ordini_consegna",
    summary="Consegna un ordine saldato",
    response_model=OrderRead,
)
async def deliver_order(
    ctx: CashierSession,
    order_id: uuid.UUID = Path(..., description="UUID dell'ordine"),
    db: AsyncSession = Depends(get_db),
    broker: OrderEventBroker = Depends(get_event_broker),
) -> OrderRead:
    order = await lifecycle_service.deliver_order(db, order_id, ctx)
    await _commit_and_publish(db, broker, "order.delivered", order)
    return OrderRead.model_validate(order)


@router.post(
    "/{order_id}/cancel",
    name="ordini_cancella",
    summary="Cancella un ordine",
    response_model=OrderRead,
)
async def cancel_order(
    ctx: CashierSession,
    order_id: uuid.UUID = Path(..., description="UUID dell'ordine"),
    db: AsyncSession = Depends(get_db),
    broker: OrderEventBroker = Depends(get_event_broker),
) -> OrderRead:
    order = await lifecycle_service.cancel_order(db, order_id, ctx)
    await _commit_and_publish(db, broker, "order.cancelled", order)
    return OrderRead.model_validate(order)


@router.post(
    "/{order_id}/transitions",
    name="ordini_transizione",
    summary="Applica un comando di transizione",
    description=(
        "Corpo con il campo `action`: start_production, complete_production, "
        "register_payment (amount, method), deliver, cancel."
    ),
    response_model=Union[PaymentResult, OrderRead],
)
async def apply_transition(
    request_body: TransitionRequest,
    ctx: CurrentSession,
    order_id: uuid.UUID = Path(..., description="UUID dell'ordine"),
    db: AsyncSession = Depends(get_db),
    broker: OrderEventBroker = Depends(get_event_broker),
) -> Union[PaymentResult, OrderRead]:
    transition = request_body.root
    if isinstance(transition, (StartProduction, CompleteProduction)):
        _require_role(ctx, PRODUCTION_ROLES)
    else:
        _require_role(ctx, CASHIER_ROLES)

    result = await lifecycle_service.apply(db, order_id, transition, ctx)

    if isinstance(result, PaymentOutcome):
        await _commit_and_publish(
            db,
            broker,
            "order.delivered" if result.delivered else "order.payment_registered",
            result.order,
            remaining_balance=str(result.remaining_balance),
        )
        return _payment_result(result)

    await _commit_and_publish(db, broker, TRANSITION_EVENTS[type(transition)], result)
    return OrderRead.model_validate(result)


# -------------------------------------------------------------------
# File di produzione
# -------------------------------------------------------------------

@router.post(
    "/{order_id}/files",
    name="ordini_carica_file",
    summary="Allega un file di produzione",
    response_model=OrderFileRead,
    status_code=status.HTTP_201_CREATED,
)
async def upload_file(
    ctx: CurrentSession,
    order_id: uuid.UUID = Path(..., description="UUID dell'ordine"),
    file: UploadFile = File(..., description="File di produzione"),
    area: Optional[WorkType] = Form(None, description="Area di destinazione (default: tipo di lavoro)"),
    db: AsyncSession = Depends(get_db),
    storage: FileStorageService = Depends(get_storage_service),
    broker: OrderEventBroker = Depends(get_event_broker),
) -> OrderFileRead:
    order = await order_service.get_by_id(db, order_id)
    if file.size is not None:
        storage.validate_upload(file.filename or "", file.size)
    # Oltre il limite basta un byte in più per rifiutare il file
    content = await file.read(settings.max_upload_size_bytes + 1)
    order_file = await storage.upload(
        db,
        order,
        area or WorkType(order.work_type),
        file.filename or "",
        content,
        file.content_type,
    )
    try:
        await db.commit()
    except Exception:
        await storage.discard(order_file.storage_path)
        raise
    await broker.publish(
        order_event("order.file_uploaded", order, file=order_file.storage_path)
    )
    return OrderFileRead.model_validate(order_file)


@router.get(
    "/{order_id}/files/{file_id}",
    name="ordini_scarica_file",
    summary="Scarica un file di produzione",
    response_class=FileResponse,
)
async def download_file(
    ctx: CurrentSession,
    order_id: uuid.UUID = Path(..., description="UUID dell'ordine"),
    file_id: uuid.UUID = Path(..., description="UUID del file"),
    db: AsyncSession = Depends(get_db),
    storage: FileStorageService = Depends(get_storage_service),
) -> FileResponse:
    order = await order_service.get_by_id(db, order_id)
    order_file = next((f for f in order.files if f.id == file_id), None)
    if order_file is None:
        raise NotFoundError(f"File {file_id} non trovato nell'ordine {order.folio}")

    path = storage.open_path(order_file)
    return FileResponse(
        path,
        filename=order_file.name,
        media_type=order_file.mime_type or "application/octet-stream",
    )


__all__ = ["router", "get_event_broker"]
