"""
Service per l'archivio dei file di produzione
Progetto: Print Shop Manager (Gestionale Tipografia)

I file vengono salvati sotto settings.storage_path con chiave
{folio}/{cartella area}/{timestamp}-{casuale}.{estensione}
e registrati come OrderFile sull'ordine.
"""

import asyncio
import logging
import secrets
from pathlib import Path, PurePosixPath
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import BusinessValidationError, NotFoundError, StateError, StoreError
from app.models.mixins import utcnow
from app.models.order import Order, OrderFile
from app.schemas.order import WORK_TYPE_FOLDERS, WorkType

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "pdf", "ai", "eps", "svg"})


def file_extension(filename: str) -> str:
    """Estensione in minuscolo, senza punto ('' se assente)."""
    suffix = PurePosixPath(filename.replace("\\", "/")).suffix
    return suffix[1:].lower() if suffix else ""


def build_storage_key(
    folio: str,
    area: WorkType,
    filename: str,
    timestamp_ms: Optional[int] = None,
    token: Optional[str] = None,
) -> str:
    """
    Chiave di archivio di un file: {folio}/{cartella area}/{timestamp}-{casuale}.{ext}
    """
    if timestamp_ms is None:
        timestamp_ms = int(utcnow().timestamp() * 1000)
    token = token or secrets.token_hex(4)
    return f"{folio}/{WORK_TYPE_FOLDERS[area]}/{timestamp_ms}-{token}.{file_extension(filename)}"


class FileStorageService:
    """
    Archivio su filesystem dei file allegati agli ordini.

    Args:
        root: Cartella radice (default: settings.storage_path)
    """

    def __init__(self, root: Optional[str] = None) -> None:
        self.root = Path(root or settings.storage_path)

    def validate_upload(self, filename: str, size: int) -> None:
        """
        Raises:
            ValidationError: Nome mancante, estensione non consentita, file vuoto o troppo grande
        """
        if not filename:
            raise BusinessValidationError("Nome del file mancante")

        ext = file_extension(filename)
        if ext not in ALLOWED_EXTENSIONS:
            raise BusinessValidationError(
                f"Estensione file non consentita: .{ext}" if ext else "File senza estensione",
                extra={"allowed": sorted(ALLOWED_EXTENSIONS)},
            )

        if size <= 0:
            raise BusinessValidationError("Il file è vuoto")

        if size > settings.max_upload_size_bytes:
            raise BusinessValidationError(
                f"File troppo grande: massimo {settings.max_upload_size_mb} MB",
                extra={"max_bytes": settings.max_upload_size_bytes},
            )

    def _path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise StoreError(f"Percorso di archivio non valido: {key}")
        return path

    @staticmethod
    def _write(path: Path, content: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)

    async def upload(
        self,
        db: AsyncSession,
        order: Order,
        area: WorkType,
        filename: str,
        content: bytes,
        mime_type: Optional[str] = None,
    ) -> OrderFile:
        """
        Salva un file di produzione e lo aggiunge in coda ai file dell'ordine.

        Raises:
            StateError: Se l'ordine è consegnato o cancellato
            ValidationError: File non valido
            StoreError: Errore di scrittura su disco
        """
        if order.is_closed:
            raise StateError(
                f"Impossibile allegare file: l'ordine {order.folio} è {order.delivery_status}"
            )

        self.validate_upload(filename, len(content))

        key = build_storage_key(order.folio, area, filename)
        path = self._path_for(key)
        try:
            await asyncio.to_thread(self._write, path, content)
        except OSError as e:
            logger.error("Scrittura file fallita per %s: %s", key, e, exc_info=True)
            raise StoreError(f"Impossibile salvare il file {filename}") from e

        order_file = OrderFile(
            name=filename,
            storage_path=key,
            size=len(content),
            mime_type=mime_type,
            area=area.value,
            position=len(order.files),
        )
        order.files.append(order_file)
        try:
            await db.flush()
        except Exception:
            order.files.remove(order_file)
            await self.discard(key)
            raise

        logger.info("File %s allegato all'ordine %s (%d byte)", key, order.folio, len(content))
        return order_file

    async def discard(self, key: str) -> None:
        """Elimina un file scritto il cui record non è stato salvato."""
        path = self._path_for(key)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as e:
            logger.error("File orfano nell'archivio, da eliminare a mano: %s (%s)", key, e)
            return
        logger.info("File %s rimosso dopo il fallimento del salvataggio", key)

    def open_path(self, order_file: OrderFile) -> Path:
        """
        Percorso su disco di un file allegato, per il download.

        Raises:
            NotFoundError: Se il file non è più presente nell'archivio
        """
        path = self._path_for(order_file.storage_path)
        if not path.is_file():
            logger.warning("File mancante nell'archivio: %s", order_file.storage_path)
            raise NotFoundError(f"File {order_file.name} non trovato nell'archivio")
        return path


def get_storage_service() -> FileStorageService:
    """Factory per il service di archivio (sostituibile nei test)."""
    return FileStorageService()


__all__ = [
    "ALLOWED_EXTENSIONS",
    "FileStorageService",
    "build_storage_key",
    "file_extension",
    "get_storage_service",
]
