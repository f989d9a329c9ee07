"""
Router per le statistiche
Progetto: Print Shop Manager (Gestionale Tipografia)
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import AdminSession
from app.schemas.stats import MonthlyReport, ProductionAreaLoad, StationStats
from app.services.stats_service import StatsService

stats_service = StatsService()

router = APIRouter(
    prefix="/stats",
    tags=["Statistiche"],
)


@router.get(
    "/monthly",
    response_model=MonthlyReport,
    summary="Riepilogo mensile",
)
async def monthly_report(
    ctx: AdminSession,
    month: Optional[str] = Query(None, description="Mese YYYY-MM (default: mese corrente)"),
    db: AsyncSession = Depends(get_db),
) -> MonthlyReport:
    return await stats_service.monthly_report(db, month)


@router.get(
    "/stations",
    response_model=list[StationStats],
    summary="Ordini per stazione",
)
async def station_stats(
    ctx: AdminSession,
    db: AsyncSession = Depends(get_db),
) -> list[StationStats]:
    return await stats_service.station_stats(db)


@router.get(
    "/production-areas",
    response_model=list[ProductionAreaLoad],
    summary="Carico delle aree di produzione",
)
async def production_area_load(
    ctx: AdminSession,
    db: AsyncSession = Depends(get_db),
) -> list[ProductionAreaLoad]:
    return await stats_service.production_area_load(db)


__all__ = ["router"]
