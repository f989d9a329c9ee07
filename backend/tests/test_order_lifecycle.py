"""
Unit tests for OrderLifecycleService.

Le guardie e le transizioni sono verificate su ordini finti (MockOrder)
con un OrderService finto; la creazione anche sul database in memoria.
"""

import random
import re
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.core.exceptions import BalanceError, ConflictError, StateError, ValidationError
from app.models.order import Order
from app.schemas.order import (
    Cancel,
    CompleteProduction,
    Deliver,
    OrderCreate,
    RegisterPayment,
    StartProduction,
    WorkType,
)
from app.services.order_lifecycle_service import (
    OrderLifecycleService,
    check_can_complete_production,
    check_can_deliver,
    check_can_start_production,
    generate_folio,
)

from conftest import MockOrder

FOLIO_RE = re.compile(r"^ORD-\d{8}-\d{3}$")


@pytest.fixture
def service(mock_order_service):
    return OrderLifecycleService(order_service=mock_order_service)


# ============================================================
# Folio
# ============================================================


class TestGenerateFolio:
    """Tests per la generazione del folio."""

    def test_format(self):
        """Test formato ORD-YYYYMMDD-NNN."""
        assert FOLIO_RE.match(generate_folio())

    def test_uses_shop_timezone(self):
        """Test la data del folio è quella locale del negozio, non UTC."""
        # 03:00 UTC del 16 gennaio = 21:00 del 15 gennaio a Città del Messico
        now = datetime(2025, 1, 16, 3, 0, tzinfo=timezone.utc)
        folio = generate_folio(now, random.Random(7))
        assert folio.startswith("ORD-20250115-")

    def test_suffix_is_zero_padded(self):
        """Test il suffisso ha sempre tre cifre."""
        rng = random.Random()
        rng.randint = lambda a, b: 7
        folio = generate_folio(datetime(2025, 6, 1, 18, 0, tzinfo=timezone.utc), rng)
        assert folio == "ORD-20250601-007"


# ============================================================
# Guardie
# ============================================================


class TestGuards:
    """Tests per i controlli di precondizione (funzioni pure)."""

    def test_deliver_with_balance_raises_balance_error(self):
        """Test consegna con saldo residuo: BalanceError con il saldo in extra."""
        order = MockOrder(total_amount=Decimal("1000.00"), advance_payment=Decimal("250.00"))

        with pytest.raises(BalanceError) as exc_info:
            check_can_deliver(order)

        assert exc_info.value.status_code == 409
        assert exc_info.value.error_code == "OUTSTANDING_BALANCE"
        assert exc_info.value.extra["remaining_balance"] == "750.00"

    def test_deliver_paid_order_passes(self):
        """Test ordine saldato: consegna ammessa."""
        order = MockOrder(total_amount=Decimal("500.00"), advance_payment=Decimal("500.00"))
        check_can_deliver(order)

    def test_deliver_with_credit_passes(self):
        """Test saldo negativo (credito del cliente): consegna ammessa."""
        order = MockOrder(total_amount=Decimal("500.00"), advance_payment=Decimal("600.00"))
        check_can_deliver(order)

    def test_deliver_delivered_order_raises_state_error(self):
        """Test ordine già consegnato: StateError prima del controllo sul saldo."""
        order = MockOrder(delivery_status="Entregado", advance_payment=Decimal("0"))

        with pytest.raises(StateError):
            check_can_deliver(order)

    def test_complete_production_accepts_in_progress(self):
        """Test i vecchi ordini En Proceso possono essere completati."""
        check_can_complete_production(MockOrder(production_status="En Proceso"))

    def test_complete_production_twice_raises(self):
        """Test produzione già completata: StateError."""
        order = MockOrder(production_status="Completado", status="Listo para Entrega")

        with pytest.raises(StateError) as exc_info:
            check_can_complete_production(order)

        assert exc_info.value.error_code == "INVALID_STATE_TRANSITION"

    def test_start_production_requires_pending_status(self):
        """Test avvio produzione su ordine già in lavorazione: StateError."""
        with pytest.raises(StateError):
            check_can_start_production(MockOrder(status="En Proceso"))


# ============================================================
# Transizioni
# ============================================================


class TestTransitions:
    """Tests per le transizioni di OrderLifecycleService."""

    async def test_mark_production_completed(self, service, mock_db, mock_order_service, station_ctx):
        """Test completamento: Completado, Listo para Entrega, completed_by."""
        order = MockOrder()
        mock_order_service.get_by_id.return_value = order

        result = await service.mark_production_completed(mock_db, order.id, station_ctx)

        assert result is order
        assert order.production_status == "Completado"
        assert order.status == "Listo para Entrega"
        assert order.completed_by == station_ctx.user_id
        assert order.completed_at is not None
        assert order.delivery_status == "Pendiente"
        mock_db.flush.assert_awaited_once()

    async def test_start_production(self, service, mock_db, mock_order_service, station_ctx):
        """Test avvio produzione: solo lo stato informativo cambia."""
        order = MockOrder()
        mock_order_service.get_by_id.return_value = order

        await service.start_production(mock_db, order.id, station_ctx)

        assert order.status == "En Proceso"
        assert order.production_status == "Pendiente"

    async def test_deliver_unpaid_order_leaves_it_untouched(
        self, service, mock_db, mock_order_service, cashier_ctx
    ):
        """Test totale 1000, anticipo 0: BalanceError e nessuna modifica."""
        order = MockOrder(total_amount=Decimal("1000"), advance_payment=Decimal("0"))
        mock_order_service.get_by_id.return_value = order
        before = order.snapshot()

        with pytest.raises(BalanceError):
            await service.deliver_order(mock_db, order.id, cashier_ctx)

        assert order.snapshot() == before
        mock_db.flush.assert_not_awaited()

    async def test_deliver_paid_order(self, service, mock_db, mock_order_service, cashier_ctx):
        """Test consegna di un ordine saldato."""
        order = MockOrder(total_amount=Decimal("300"), advance_payment=Decimal("300"))
        mock_order_service.get_by_id.return_value = order

        await service.deliver_order(mock_db, order.id, cashier_ctx)

        assert order.delivery_status == "Entregado"
        assert order.delivered_by == cashier_ctx.user_id
        assert order.delivered_at is not None

    async def test_cancel_is_terminal(self, service, mock_db, mock_order_service, cashier_ctx):
        """Test dopo la cancellazione ogni altra transizione fallisce con StateError."""
        order = MockOrder(total_amount=Decimal("0"))
        mock_order_service.get_by_id.return_value = order

        await service.cancel_order(mock_db, order.id, cashier_ctx)
        assert order.delivery_status == "Cancelado"

        commands = [
            StartProduction(),
            CompleteProduction(),
            RegisterPayment(amount=Decimal("10"), method="efectivo"),
            Deliver(),
            Cancel(),
        ]
        for command in commands:
            with pytest.raises(StateError):
                await service.apply(mock_db, order.id, command, cashier_ctx)

        assert order.delivery_status == "Cancelado"

    async def test_apply_dispatches_payment(self, service, mock_db, mock_order_service, cashier_ctx):
        """Test apply con register_payment restituisce l'esito del pagamento."""
        order = MockOrder(total_amount=Decimal("1000"), advance_payment=Decimal("400"))
        mock_order_service.get_by_id.return_value = order

        outcome = await service.apply(
            mock_db, order.id, RegisterPayment(amount=Decimal("600"), method="transferencia"), cashier_ctx
        )

        assert outcome.delivered is True
        assert outcome.remaining_balance == Decimal("0")


# ============================================================
# Creazione
# ============================================================


class TestCreateOrder:
    """Tests per create_order."""

    async def test_missing_client_raises_validation_error(self, service, mock_db, station_ctx):
        """Test dati senza cliente: ValidationError e nessun insert."""
        data = {
            "work_type": "Impresión de Lonas",
            "due_date": (date.today() + timedelta(days=2)).isoformat(),
            "total_amount": "500",
        }

        with pytest.raises(ValidationError) as exc_info:
            await service.create_order(mock_db, data, station_ctx)

        assert "client" in exc_info.value.extra["fields"]
        mock_db.add.assert_not_called()

    async def test_folio_collisions_exhaust_attempts(
        self, service, mock_db, mock_order_service, station_ctx
    ):
        """Test tutti i folio generati già in uso: ConflictError."""
        mock_order_service.folio_exists.return_value = True
        data = OrderCreate(
            client="Acme",
            work_type=WorkType.BANNER_PRINT,
            due_date=date.today() + timedelta(days=2),
            total_amount=Decimal("500"),
        )

        with pytest.raises(ConflictError) as exc_info:
            await service.create_order(mock_db, data, station_ctx)

        assert exc_info.value.error_code == "CONFLICT_STATE"
        assert mock_order_service.folio_exists.await_count == exc_info.value.extra["attempts"]
        mock_db.add.assert_not_called()

    async def test_folio_collision_regenerates(
        self, service, mock_db, mock_order_service, station_ctx
    ):
        """Test una collisione: il folio viene rigenerato e l'ordine creato."""
        mock_order_service.folio_exists.side_effect = [True, False]
        data = OrderCreate(
            client="Acme",
            work_type=WorkType.BANNER_PRINT,
            due_date=date.today() + timedelta(days=2),
            total_amount=Decimal("500"),
        )

        order = await service.create_order(mock_db, data, station_ctx)

        assert FOLIO_RE.match(order.folio)
        assert mock_order_service.folio_exists.await_count == 2
        mock_db.add.assert_called_once_with(order)

    async def test_create_order_persists_pending_order(self, db_session, station_ctx):
        """Test Acme, Lonas, consegna futura, totale 500: ordine Pendiente salvato."""
        service = OrderLifecycleService()
        data = {
            "client": "  Acme  ",
            "work_type": "Impresión de Lonas",
            "due_date": (date.today() + timedelta(days=5)).isoformat(),
            "total_amount": "500",
        }

        order = await service.create_order(db_session, data, station_ctx)
        await db_session.commit()

        stored = await db_session.get(Order, order.id)
        assert stored is not None
        assert FOLIO_RE.match(stored.folio)
        assert stored.client == "Acme"
        assert stored.status == "Pendiente"
        assert stored.production_status == "Pendiente"
        assert stored.delivery_status == "Pendiente"
        assert stored.priority == "Media"
        assert stored.created_by == station_ctx.user_id
        assert stored.remaining_balance == Decimal("500")
        assert stored.files == []
