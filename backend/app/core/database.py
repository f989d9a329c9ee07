"""
Configurazione Database - SQLAlchemy 2.0 Async
Progetto: Print Shop Manager (Gestionale Tipografia)

Definisce engine, session factory e dependency injection per FastAPI.
Il database è l'unico archivio degli ordini: ogni transizione di stato
viene scritta con un solo flush all'interno della sessione della richiesta.
"""

import logging
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings

logger = logging.getLogger(__name__)

# ------------------------------------------------------------
# Engine Async SQLAlchemy 2.0
# ------------------------------------------------------------
engine: AsyncEngine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
)


# ------------------------------------------------------------
# Session Factory
# ------------------------------------------------------------
def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Crea una session factory con le opzioni usate dall'applicazione.

    Usata anche dai test per legare le sessioni a un engine SQLite in memoria.
    """
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


AsyncSessionLocal = build_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency injection per FastAPI.

    Crea una sessione database per ogni richiesta e la chiude
    automaticamente al termine. In caso di eccezione la transazione
    viene annullata prima di propagare l'errore.

    Yields:
        AsyncSession: Sessione database async
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """
    Verifica che il database sia raggiungibile all'avvio.
    """
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Connessione al database stabilita con successo")
    except Exception as e:
        logger.error("Errore connessione database: %s", e)
        raise


async def create_tables(bind: AsyncEngine = engine, drop_first: bool = False) -> None:
    """
    Crea (ed eventualmente elimina prima) tutte le tabelle dei modelli.

    Args:
        bind: Engine su cui operare
        drop_first: Se True elimina le tabelle esistenti prima di ricrearle
    """
    from app.models import Base

    async with bind.begin() as conn:
        if drop_first:
            await conn.run_sync(Base.metadata.drop_all)
            logger.info("Tabelle eliminate")
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Tabelle create")


async def close_db() -> None:
    """
    Chiude le connessioni al database.

    Da chiamare durante lo shutdown dell'applicazione.
    """
    await engine.dispose()
    logger.info("Connessioni database chiuse")
