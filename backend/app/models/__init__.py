"""
Modelli Database SQLAlchemy
Progetto: Print Shop Manager (Gestionale Tipografia)

Import centralizzato di tutti i modelli per create_all e usage generico.

Modelli:
- User: Profilo utente (autenticazione + ruolo/stazione)
- Order: Ordine di lavoro della tipografia
- OrderFile: File di produzione allegati all'ordine
"""

# SQLAlchemy 2.0 Base declarativa
# Importato qui per essere disponibile per tutti i modelli
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class per tutti i modelli SQLAlchemy."""
    pass


from app.models.user import User, UserRole
from app.models.order import Order, OrderFile

__all__ = [
    "Base",
    "User",
    "UserRole",
    "Order",
    "OrderFile",
]
