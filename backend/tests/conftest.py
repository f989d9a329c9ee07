"""
Pytest configuration and fixtures.

Tre livelli di fixture:
- mock AsyncSession e modelli finti per la logica pura dei service
- database SQLite in memoria (aiosqlite) per i service con query reali
- client httpx sull'app ASGI con get_db sostituito, per i test delle API
"""

import itertools
import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.database import build_session_factory, create_tables, get_db
from app.core.security import create_access_token, hash_password
from app.main import app
from app.models.order import Order
from app.models.user import User, UserRole
from app.schemas.token import SessionContext
from app.services.event_broker import OrderEventBroker
from app.services.storage_service import FileStorageService, get_storage_service

TEST_PASSWORD = "password123"

_folio_seq = itertools.count(1)


# ============================================================
# Fixtures per AsyncSession Mock
# ============================================================


@pytest.fixture
def mock_db():
    """Crea un mock di AsyncSession."""
    db = AsyncMock(spec=AsyncSession)
    db.execute = AsyncMock()
    db.add = MagicMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.flush = AsyncMock()
    db.refresh = AsyncMock()
    db.delete = MagicMock()
    return db


# ============================================================
# Modelli finti (senza database)
# ============================================================


class MockOrder:
    """Mock del modello Order."""
    def __init__(self, **kwargs):
        self.id = kwargs.get('id', uuid.uuid4())
        self.folio = kwargs.get('folio', 'ORD-20250115-042')
        self.client = kwargs.get('client', 'Acme')
        self.work_type = kwargs.get('work_type', 'Impresión de Lonas')
        self.status = kwargs.get('status', 'Pendiente')
        self.production_status = kwargs.get('production_status', 'Pendiente')
        self.delivery_status = kwargs.get('delivery_status', 'Pendiente')
        self.priority = kwargs.get('priority', 'Media')
        self.total_amount = kwargs.get('total_amount', Decimal("1000.00"))
        self.advance_payment = kwargs.get('advance_payment', Decimal("0.00"))
        self.payment_method = kwargs.get('payment_method', None)
        self.due_date = kwargs.get('due_date', date.today() + timedelta(days=3))
        self.delivered_at = kwargs.get('delivered_at', None)
        self.delivered_by = kwargs.get('delivered_by', None)
        self.completed_at = kwargs.get('completed_at', None)
        self.completed_by = kwargs.get('completed_by', None)
        self.created_by = kwargs.get('created_by', None)
        self.files = kwargs.get('files', [])

    @property
    def is_closed(self):
        return self.delivery_status in ("Entregado", "Cancelado")

    def snapshot(self):
        """Copia dei campi, per verificare che un rifiuto non modifichi nulla."""
        return dict(vars(self))


@pytest.fixture
def mock_order():
    """Ordine aperto: totale 1000, nessun anticipo."""
    return MockOrder()


@pytest.fixture
def mock_order_service():
    """OrderService finto: get_by_id restituisce l'ordine assegnato al test."""
    service = MagicMock()
    service.get_by_id = AsyncMock()
    service.folio_exists = AsyncMock(return_value=False)
    return service


def make_ctx(role: UserRole) -> SessionContext:
    return SessionContext(user_id=uuid.uuid4(), role=role, full_name=f"Test {role.value}")


@pytest.fixture
def admin_ctx():
    return make_ctx(UserRole.ADMIN)


@pytest.fixture
def cashier_ctx():
    return make_ctx(UserRole.CASHIER)


@pytest.fixture
def station_ctx():
    return make_ctx(UserRole.STATION_1)


# ============================================================
# Database SQLite in memoria
# ============================================================


@pytest.fixture
async def engine():
    """Engine aiosqlite in memoria con tutte le tabelle."""
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_tables(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db_session(session_factory):
    """Sessione sul database in memoria."""
    async with session_factory() as session:
        yield session


@pytest.fixture(scope="session")
def hashed_test_password():
    """Hash bcrypt calcolato una sola volta per tutta la sessione di test."""
    return hash_password(TEST_PASSWORD)


@pytest.fixture
def make_user(session_factory, hashed_test_password):
    """Factory asincrona: crea e salva un profilo con il ruolo indicato."""
    async def _make_user(role: UserRole = UserRole.STATION_1, **kwargs) -> User:
        suffix = uuid.uuid4().hex[:8]
        user = User(
            email=kwargs.pop("email", f"user-{suffix}@imprenta.mx"),
            username=kwargs.pop("username", f"user_{suffix}"),
            full_name=kwargs.pop("full_name", f"Utente {role.value}"),
            hashed_password=hashed_test_password,
            role=role.value,
            is_active=kwargs.pop("is_active", True),
            **kwargs,
        )
        async with session_factory() as session:
            session.add(user)
            await session.commit()
        return user
    return _make_user


@pytest.fixture
def make_order(session_factory):
    """Factory asincrona: inserisce direttamente un ordine con i campi indicati."""
    async def _make_order(**kwargs) -> Order:
        now = datetime.now(timezone.utc)
        values = {
            "folio": f"ORD-{now:%Y%m%d}-{next(_folio_seq) % 1000:03d}",
            "client": "Acme",
            "work_type": "Impresión de Lonas",
            "status": "Pendiente",
            "production_status": "Pendiente",
            "delivery_status": "Pendiente",
            "priority": "Media",
            "total_amount": Decimal("1000.00"),
            "advance_payment": Decimal("0.00"),
            "due_date": date.today() + timedelta(days=3),
            "created_at": now,
        }
        values.update(kwargs)
        order = Order(**values)
        async with session_factory() as session:
            session.add(order)
            await session.commit()
        return order
    return _make_order


# ============================================================
# Client API
# ============================================================


def auth_headers(user: User) -> dict[str, str]:
    """Header Authorization con un access token valido per il profilo."""
    token = create_access_token(str(user.id), user.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def storage_root(tmp_path):
    return tmp_path / "files"


@pytest.fixture
async def client(session_factory, storage_root):
    """Client httpx sull'app con database in memoria e archivio in tmp_path."""
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage_service] = lambda: FileStorageService(str(storage_root))
    app.state.order_events = OrderEventBroker()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
