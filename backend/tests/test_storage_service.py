"""
Tests for FileStorageService.
"""

import pytest
from sqlalchemy.exc import OperationalError

from app.core.config import settings
from app.core.exceptions import NotFoundError, StateError, StoreError, ValidationError
from app.models.order import OrderFile
from app.schemas.order import WorkType
from app.services.storage_service import FileStorageService, build_storage_key, file_extension

from conftest import MockOrder


@pytest.fixture
def storage(storage_root):
    return FileStorageService(str(storage_root))


class TestStorageKey:

    def test_key_layout(self):
        key = build_storage_key(
            "ORD-20250115-042", WorkType.VINYL_CUT, "logo final.PDF",
            timestamp_ms=1736900000000, token="abcd1234",
        )
        assert key == "ORD-20250115-042/Vinil_Corte/1736900000000-abcd1234.pdf"

    def test_random_token_makes_keys_unique(self):
        first = build_storage_key("ORD-20250115-042", WorkType.PLOTTING, "a.svg", timestamp_ms=1)
        second = build_storage_key("ORD-20250115-042", WorkType.PLOTTING, "a.svg", timestamp_ms=1)
        assert first != second

    @pytest.mark.parametrize(
        "filename, expected",
        [("Logo.PNG", "png"), ("archivo.tar.eps", "eps"), ("senza_estensione", ""), ("C:\\dis\\x.Ai", "ai")],
    )
    def test_file_extension(self, filename, expected):
        assert file_extension(filename) == expected


class TestValidateUpload:

    def test_accepts_allowed_file(self, storage):
        storage.validate_upload("lona.jpg", 1024)

    @pytest.mark.parametrize("filename", ["virus.exe", "notas.txt", "sin_extension", ""])
    def test_rejects_bad_names(self, storage, filename):
        with pytest.raises(ValidationError):
            storage.validate_upload(filename, 10)

    def test_rejects_empty_file(self, storage):
        with pytest.raises(ValidationError):
            storage.validate_upload("lona.png", 0)

    def test_rejects_oversized_file(self, storage):
        with pytest.raises(ValidationError) as exc_info:
            storage.validate_upload("lona.png", settings.max_upload_size_bytes + 1)
        assert exc_info.value.extra["max_bytes"] == settings.max_upload_size_bytes


class TestUpload:

    async def test_upload_writes_file_and_appends_record(self, storage, storage_root, mock_db):
        existing = OrderFile(name="prima.pdf", storage_path="x/y/1-a.pdf", size=1, area="Ploteo", position=0)
        order = MockOrder(files=[existing])

        order_file = await storage.upload(
            mock_db, order, WorkType.BANNER_PRINT, "diseño.pdf", b"%PDF-1.4", "application/pdf"
        )

        assert order.files == [existing, order_file]
        assert order_file.position == 1
        assert order_file.area == "Impresión de Lonas"
        assert order_file.size == 8
        assert order_file.storage_path.startswith(f"{order.folio}/Lonas/")
        assert (storage_root / order_file.storage_path).read_bytes() == b"%PDF-1.4"
        assert storage.open_path(order_file) == (storage_root / order_file.storage_path).resolve()
        mock_db.flush.assert_awaited_once()

    async def test_upload_to_closed_order(self, storage, mock_db):
        order = MockOrder(delivery_status="Entregado")

        with pytest.raises(StateError):
            await storage.upload(mock_db, order, WorkType.PLOTTING, "plano.svg", b"<svg/>")

        assert order.files == []

    async def test_write_failure_raises_store_error(self, storage, mock_db, monkeypatch):
        def broken_write(path, content):
            raise OSError("disco pieno")

        monkeypatch.setattr(FileStorageService, "_write", staticmethod(broken_write))
        order = MockOrder()

        with pytest.raises(StoreError):
            await storage.upload(mock_db, order, WorkType.PLOTTING, "plano.svg", b"<svg/>")

        assert order.files == []
        mock_db.flush.assert_not_awaited()

    async def test_flush_failure_removes_written_file(self, storage, storage_root, mock_db):
        """Test record non salvato: il file scritto viene eliminato e l'errore propagato."""
        mock_db.flush.side_effect = OperationalError("INSERT INTO order_files", {}, Exception("db giù"))
        order = MockOrder()

        with pytest.raises(OperationalError):
            await storage.upload(mock_db, order, WorkType.PLOTTING, "plano.svg", b"<svg/>")

        assert order.files == []
        assert not any(path.is_file() for path in storage_root.rglob("*"))

    async def test_discard_missing_file_is_noop(self, storage):
        await storage.discard("ORD-20250115-042/Ploteo/1-abcd.svg")

    def test_open_missing_file(self, storage):
        order_file = OrderFile(name="perso.png", storage_path="ORD-1/Lonas/1-a.png", size=3, area="Ploteo", position=0)

        with pytest.raises(NotFoundError):
            storage.open_path(order_file)

    def test_path_outside_root_is_rejected(self, storage):
        order_file = OrderFile(name="x.png", storage_path="../../etc/passwd", size=3, area="Ploteo", position=0)

        with pytest.raises(StoreError):
            storage.open_path(order_file)
