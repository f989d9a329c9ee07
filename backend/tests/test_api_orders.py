"""
Tests for the order endpoints (/api/v1/orders).
"""

import re
import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.core.config import Settings
from app.main import app
from app.models.user import UserRole

from conftest import auth_headers

BASE = "/api/v1/orders"


class RecordingSubscriber:
    def __init__(self):
        self.events = []

    async def send_json(self, data):
        self.events.append(data)


@pytest.fixture
async def events(client):
    subscriber = RecordingSubscriber()
    await app.state.order_events.subscribe(subscriber)
    return subscriber.events


@pytest.fixture
async def station(make_user):
    return await make_user(UserRole.STATION_1)


@pytest.fixture
async def cashier(make_user):
    return await make_user(UserRole.CASHIER)


@pytest.fixture
async def admin(make_user):
    return await make_user(UserRole.ADMIN)


def order_payload(**overrides):
    payload = {
        "client": "Acme",
        "work_type": "Impresión de Lonas",
        "due_date": (date.today() + timedelta(days=4)).isoformat(),
        "total_amount": "500",
    }
    payload.update(overrides)
    return payload


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


class TestCreateOrder:

    async def test_requires_token(self, client):
        response = await client.post(f"{BASE}/", json=order_payload())
        assert response.status_code == 401

    async def test_station_creates_pending_order(self, client, station, events):
        response = await client.post(f"{BASE}/", json=order_payload(), headers=auth_headers(station))

        assert response.status_code == 201
        body = response.json()
        assert re.match(r"^ORD-\d{8}-\d{3}$", body["folio"])
        assert body["status"] == "Pendiente"
        assert body["delivery_status"] == "Pendiente"
        assert body["created_by"] == str(station.id)
        assert Decimal(body["remaining_balance"]) == Decimal("500")
        assert body["files"] == []
        assert [e["type"] for e in events] == ["order.created"]
        assert events[0]["folio"] == body["folio"]

    async def test_missing_client_is_rejected(self, client, station):
        payload = order_payload()
        del payload["client"]

        response = await client.post(f"{BASE}/", json=payload, headers=auth_headers(station))

        assert response.status_code == 422

    async def test_advance_requires_payment_method(self, client, station):
        response = await client.post(
            f"{BASE}/", json=order_payload(advance_payment="100"), headers=auth_headers(station)
        )
        assert response.status_code == 422

    async def test_created_order_is_readable(self, client, station):
        created = (await client.post(f"{BASE}/", json=order_payload(), headers=auth_headers(station))).json()

        by_id = await client.get(f"{BASE}/{created['id']}", headers=auth_headers(station))
        by_folio = await client.get(f"{BASE}/folio/{created['folio'].lower()}", headers=auth_headers(station))

        assert by_id.json()["folio"] == created["folio"]
        assert by_folio.json()["id"] == created["id"]

    async def test_unknown_order_returns_404(self, client, station):
        response = await client.get(f"{BASE}/{uuid.uuid4()}", headers=auth_headers(station))

        assert response.status_code == 404
        assert response.json()["error_code"] == "RESOURCE_NOT_FOUND"


class TestUpdateOrder:

    async def test_update_descriptive_fields(self, client, station, make_order):
        order = await make_order()

        response = await client.put(
            f"{BASE}/{order.id}",
            json={"priority": "Alta", "notes": None},
            headers=auth_headers(station),
        )

        assert response.status_code == 200
        assert response.json()["priority"] == "Alta"
        assert response.json()["notes"] is None

    @pytest.mark.parametrize("field", ["priority", "due_date"])
    async def test_null_required_field_is_rejected(self, client, station, make_order, field):
        """Test priorità o data di consegna a null: 422 e ordine invariato."""
        order = await make_order()

        response = await client.put(
            f"{BASE}/{order.id}", json={field: None}, headers=auth_headers(station)
        )

        assert response.status_code == 422
        detail = (await client.get(f"{BASE}/{order.id}", headers=auth_headers(station))).json()
        assert detail["priority"] == "Media"
        assert detail["due_date"] == order.due_date.isoformat()


class TestPayments:

    async def test_payment_settling_balance_delivers(self, client, cashier, make_order, events):
        order = await make_order(total_amount=Decimal("1000.00"), advance_payment=Decimal("400.00"))

        response = await client.post(
            f"{BASE}/{order.id}/payments",
            json={"amount": "600", "method": "efectivo"},
            headers=auth_headers(cashier),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["delivered"] is True
        assert Decimal(body["remaining_balance"]) == Decimal("0")
        assert body["order"]["delivery_status"] == "Entregado"
        assert body["order"]["delivered_by"] == str(cashier.id)
        assert Decimal(body["order"]["advance_payment"]) == Decimal("1000")
        assert [e["type"] for e in events] == ["order.delivered"]

    async def test_partial_payment(self, client, cashier, make_order, events):
        order = await make_order(total_amount=Decimal("1000.00"))

        response = await client.post(
            f"{BASE}/{order.id}/payments",
            json={"amount": "250.50", "method": "tarjeta"},
            headers=auth_headers(cashier),
        )

        body = response.json()
        assert body["delivered"] is False
        assert Decimal(body["remaining_balance"]) == Decimal("749.50")
        assert events[0]["type"] == "order.payment_registered"

    async def test_invalid_amount(self, client, cashier, make_order):
        order = await make_order()

        response = await client.post(
            f"{BASE}/{order.id}/payments",
            json={"amount": "0", "method": "efectivo"},
            headers=auth_headers(cashier),
        )

        assert response.status_code == 422
        assert response.json()["error_code"] == "BUSINESS_VALIDATION_ERROR"

    async def test_station_cannot_collect(self, client, station, make_order):
        order = await make_order()

        response = await client.post(
            f"{BASE}/{order.id}/payments",
            json={"amount": "100", "method": "efectivo"},
            headers=auth_headers(station),
        )

        assert response.status_code == 403
        assert response.json()["error_code"] == "FORBIDDEN"


class TestDeliveryAndCancel:

    async def test_deliver_with_balance_is_refused(self, client, cashier, make_order, events):
        order = await make_order(total_amount=Decimal("1000.00"))

        response = await client.post(f"{BASE}/{order.id}/deliver", headers=auth_headers(cashier))

        assert response.status_code == 409
        body = response.json()
        assert body["error_code"] == "OUTSTANDING_BALANCE"
        assert Decimal(body["extra"]["remaining_balance"]) == Decimal("1000")
        assert events == []

        balance = (await client.get(f"{BASE}/{order.id}/balance", headers=auth_headers(cashier))).json()
        assert balance["can_deliver"] is False
        assert Decimal(balance["remaining_balance"]) == Decimal("1000")

    async def test_deliver_paid_order(self, client, cashier, make_order):
        order = await make_order(total_amount=Decimal("300.00"), advance_payment=Decimal("300.00"))

        response = await client.post(f"{BASE}/{order.id}/deliver", headers=auth_headers(cashier))

        assert response.status_code == 200
        assert response.json()["delivery_status"] == "Entregado"

    async def test_cancelled_order_is_final(self, client, cashier, station, make_order):
        order = await make_order()

        cancelled = await client.post(f"{BASE}/{order.id}/cancel", headers=auth_headers(cashier))
        assert cancelled.json()["delivery_status"] == "Cancelado"

        response = await client.post(
            f"{BASE}/{order.id}/complete-production", headers=auth_headers(station)
        )
        assert response.status_code == 409
        assert response.json()["error_code"] == "INVALID_STATE_TRANSITION"

        update = await client.put(
            f"{BASE}/{order.id}", json={"notes": "tardi"}, headers=auth_headers(station)
        )
        assert update.status_code == 409


class TestProduction:

    async def test_complete_production(self, client, station, make_order, events):
        order = await make_order()

        started = await client.post(f"{BASE}/{order.id}/start-production", headers=auth_headers(station))
        assert started.json()["status"] == "En Proceso"

        response = await client.post(
            f"{BASE}/{order.id}/complete-production", headers=auth_headers(station)
        )

        body = response.json()
        assert response.status_code == 200
        assert body["production_status"] == "Completado"
        assert body["status"] == "Listo para Entrega"
        assert body["completed_by"] == str(station.id)
        assert [e["type"] for e in events] == ["order.updated", "order.production_completed"]

    async def test_queue_for_station(self, client, station, make_order):
        high = await make_order(priority="Alta")
        await make_order(production_status="Completado")

        response = await client.get(f"{BASE}/production/queue", headers=auth_headers(station))

        assert [o["id"] for o in response.json()] == [str(high.id)]

    async def test_cashier_cannot_see_queue(self, client, cashier):
        response = await client.get(f"{BASE}/production/queue", headers=auth_headers(cashier))
        assert response.status_code == 403


class TestTransitionsEndpoint:

    async def test_register_payment_command(self, client, cashier, make_order):
        order = await make_order(total_amount=Decimal("1000.00"))

        response = await client.post(
            f"{BASE}/{order.id}/transitions",
            json={"action": "register_payment", "amount": "100", "method": "transferencia"},
            headers=auth_headers(cashier),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["delivered"] is False
        assert Decimal(body["remaining_balance"]) == Decimal("900")

    async def test_cancel_command(self, client, cashier, make_order):
        order = await make_order()

        response = await client.post(
            f"{BASE}/{order.id}/transitions", json={"action": "cancel"}, headers=auth_headers(cashier)
        )

        assert response.json()["delivery_status"] == "Cancelado"

    async def test_production_command_requires_production_role(self, client, cashier, make_order):
        order = await make_order()

        response = await client.post(
            f"{BASE}/{order.id}/transitions",
            json={"action": "complete_production"},
            headers=auth_headers(cashier),
        )

        assert response.status_code == 403

    async def test_unknown_action(self, client, cashier, make_order):
        order = await make_order()

        response = await client.post(
            f"{BASE}/{order.id}/transitions", json={"action": "teleport"}, headers=auth_headers(cashier)
        )

        assert response.status_code == 422


class TestCashierSearch:

    async def test_search_open_orders(self, client, cashier, make_order):
        acme = await make_order(client="Acme Publicidad")
        await make_order(client="Acme Publicidad", delivery_status="Entregado")

        response = await client.get(
            f"{BASE}/cashier/search", params={"q": "acme"}, headers=auth_headers(cashier)
        )

        assert [o["id"] for o in response.json()] == [str(acme.id)]

    async def test_empty_term(self, client, cashier, make_order):
        await make_order()

        response = await client.get(f"{BASE}/cashier/search", headers=auth_headers(cashier))

        assert response.status_code == 200
        assert response.json() == []


class TestChangesPolling:

    async def test_changes_after_cursor(self, client, station, make_order):
        before = datetime.now(timezone.utc) - timedelta(seconds=1)
        order = await make_order()

        response = await client.get(
            f"{BASE}/changes", params={"since": before.isoformat()}, headers=auth_headers(station)
        )

        body = response.json()
        assert [o["id"] for o in body["items"]] == [str(order.id)]

        later = await client.get(
            f"{BASE}/changes", params={"since": body["cursor"]}, headers=auth_headers(station)
        )
        assert later.json()["items"] == []


class TestFiles:

    async def test_upload_and_download(self, client, station, make_order):
        order = await make_order(work_type="Ploteo")

        upload = await client.post(
            f"{BASE}/{order.id}/files",
            files={"file": ("plano.pdf", b"%PDF-1.4 plano", "application/pdf")},
            headers=auth_headers(station),
        )

        assert upload.status_code == 201
        stored = upload.json()
        assert stored["area"] == "Ploteo"
        assert stored["position"] == 0
        assert stored["storage_path"].startswith(f"{order.folio}/Ploteo/")

        download = await client.get(
            f"{BASE}/{order.id}/files/{stored['id']}", headers=auth_headers(station)
        )
        assert download.status_code == 200
        assert download.content == b"%PDF-1.4 plano"

        detail = (await client.get(f"{BASE}/{order.id}", headers=auth_headers(station))).json()
        assert [f["id"] for f in detail["files"]] == [stored["id"]]

    async def test_upload_to_other_area(self, client, station, make_order):
        order = await make_order(work_type="Ploteo")

        upload = await client.post(
            f"{BASE}/{order.id}/files",
            files={"file": ("corte.svg", b"<svg/>", "image/svg+xml")},
            data={"area": "Vinil de Corte"},
            headers=auth_headers(station),
        )

        assert upload.json()["storage_path"].startswith(f"{order.folio}/Vinil_Corte/")

    async def test_rejects_oversized_file(self, client, station, make_order, storage_root, monkeypatch):
        """Test file oltre il limite configurato: 422 e nulla in archivio."""
        monkeypatch.setattr(Settings, "max_upload_size_bytes", property(lambda self: 10))
        order = await make_order()

        response = await client.post(
            f"{BASE}/{order.id}/files",
            files={"file": ("lona.png", b"x" * 11, "image/png")},
            headers=auth_headers(station),
        )

        assert response.status_code == 422
        assert response.json()["extra"]["max_bytes"] == 10
        assert not storage_root.exists() or not any(storage_root.rglob("*.png"))

    async def test_file_at_limit_is_accepted(self, client, station, make_order, monkeypatch):
        monkeypatch.setattr(Settings, "max_upload_size_bytes", property(lambda self: 10))
        order = await make_order()

        response = await client.post(
            f"{BASE}/{order.id}/files",
            files={"file": ("lona.png", b"x" * 10, "image/png")},
            headers=auth_headers(station),
        )

        assert response.status_code == 201
        assert response.json()["size"] == 10

    async def test_rejects_disallowed_extension(self, client, station, make_order):
        order = await make_order()

        response = await client.post(
            f"{BASE}/{order.id}/files",
            files={"file": ("script.exe", b"MZ", "application/octet-stream")},
            headers=auth_headers(station),
        )

        assert response.status_code == 422
