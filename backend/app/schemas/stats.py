"""
Schemas Pydantic per le statistiche
Progetto: Print Shop Manager (Gestionale Tipografia)
"""

import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field


class MonthlyReport(BaseModel):
    """
    Riepilogo mensile degli ordini.

    Attributes:
        month: Mese nel formato YYYY-MM
        period_start: Inizio del periodo (incluso), nel fuso configurato
        period_end: Fine del periodo (esclusa)
        total_orders: Ordini creati nel mese
        total_revenue: Somma dei totali degli ordini del mese
        delivered_revenue: Somma dei totali degli ordini consegnati
        per_work_type: Conteggio ordini per tipo di lavoro
    """

    month: str
    period_start: datetime.datetime
    period_end: datetime.datetime
    total_orders: int = 0
    total_revenue: Decimal = Decimal("0.00")
    delivered_revenue: Decimal = Decimal("0.00")
    per_work_type: dict[str, int] = Field(default_factory=dict)


class StationStats(BaseModel):
    """Ordini creati da un profilo di stazione."""

    user_id: UUID
    full_name: str
    station: str
    total_orders: int = 0
    monthly_orders: int = 0


class ProductionAreaLoad(BaseModel):
    """Ordini aperti in un'area di produzione."""

    work_type: str
    area_folder: str
    open_orders: int = 0


__all__ = [
    "MonthlyReport",
    "StationStats",
    "ProductionAreaLoad",
]
