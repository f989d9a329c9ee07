"""
Service Layer per le statistiche
Progetto: Print Shop Manager (Gestionale Tipografia)

Aggregazioni in sola lettura: riepilogo mensile, ordini per stazione,
carico delle aree di produzione. Su dati vuoti restituiscono zeri.
"""

import datetime
import logging
import re
from decimal import Decimal
from typing import Optional

from sqlalchemy import and_, case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import BusinessValidationError
from app.models.mixins import utcnow
from app.models.order import Order
from app.models.user import STATION_ROLES, User
from app.schemas.order import WORK_TYPE_FOLDERS, DeliveryStatus, ProductionStatus, WorkType
from app.schemas.stats import MonthlyReport, ProductionAreaLoad, StationStats
from app.services.order_service import not_closed_condition

# Logger per questo modulo
logger = logging.getLogger(__name__)

MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")
ZERO = Decimal("0.00")


def month_bounds(year: int, month: int) -> tuple[datetime.datetime, datetime.datetime]:
    """
    Inizio (incluso) e fine (esclusa) del mese nel fuso del negozio.
    """
    tz = settings.tzinfo
    start = datetime.datetime(year, month, 1, tzinfo=tz)
    if month == 12:
        end = datetime.datetime(year + 1, 1, 1, tzinfo=tz)
    else:
        end = datetime.datetime(year, month + 1, 1, tzinfo=tz)
    return start, end


def parse_month(value: Optional[str], now: Optional[datetime.datetime] = None) -> tuple[int, int]:
    """
    Interpreta un mese YYYY-MM; se assente usa il mese corrente.

    Raises:
        ValidationError: Formato non valido
    """
    if not value:
        local_now = (now or utcnow()).astimezone(settings.tzinfo)
        return local_now.year, local_now.month

    match = MONTH_PATTERN.match(value.strip())
    if not match:
        raise BusinessValidationError(f"Mese non valido: {value} (atteso YYYY-MM)")

    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise BusinessValidationError(f"Mese non valido: {value} (atteso YYYY-MM)")
    return year, month


def _money(value) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(Decimal("0.01"))


class StatsService:
    """Service per le statistiche dell'amministrazione."""

    async def monthly_report(
        self,
        db: AsyncSession,
        month: Optional[str] = None,
        now: Optional[datetime.datetime] = None,
    ) -> MonthlyReport:
        """
        Riepilogo degli ordini creati nel mese indicato.

        Args:
            db: Sessione database
            month: Mese YYYY-MM (default: mese corrente nel fuso del negozio)
            now: Istante di riferimento per il mese corrente

        Returns:
            MonthlyReport con totali e conteggio per tipo di lavoro
        """
        year, month_num = parse_month(month, now)
        start, end = month_bounds(year, month_num)
        in_period = and_(
            Order.created_at >= start.astimezone(datetime.timezone.utc),
            Order.created_at < end.astimezone(datetime.timezone.utc),
        )

        totals_query = select(
            func.count(Order.id),
            func.coalesce(func.sum(Order.total_amount), 0),
            func.coalesce(
                func.sum(
                    case(
                        (Order.delivery_status == DeliveryStatus.DELIVERED.value, Order.total_amount),
                        else_=0,
                    )
                ),
                0,
            ),
        ).where(in_period)
        total_orders, total_revenue, delivered_revenue = (await db.execute(totals_query)).one()

        per_type_query = (
            select(Order.work_type, func.count(Order.id))
            .where(in_period)
            .group_by(Order.work_type)
        )
        per_work_type = {wt.value: 0 for wt in WorkType}
        for work_type, count in (await db.execute(per_type_query)).all():
            per_work_type[work_type] = count

        report = MonthlyReport(
            month=f"{year:04d}-{month_num:02d}",
            period_start=start,
            period_end=end,
            total_orders=total_orders or 0,
            total_revenue=_money(total_revenue),
            delivered_revenue=_money(delivered_revenue),
            per_work_type=per_work_type,
        )
        logger.debug("Report mensile %s: %d ordini", report.month, report.total_orders)
        return report

    async def station_stats(
        self,
        db: AsyncSession,
        now: Optional[datetime.datetime] = None,
    ) -> list[StationStats]:
        """
        Ordini creati da ogni profilo di stazione (anche disattivato), totali e del mese corrente.

        Ordinati per stazione.
        """
        year, month_num = parse_month(None, now)
        month_start, _ = month_bounds(year, month_num)
        month_start_utc = month_start.astimezone(datetime.timezone.utc)

        query = (
            select(
                User.id,
                User.full_name,
                User.role,
                func.count(Order.id),
                func.count(case((Order.created_at >= month_start_utc, Order.id))),
            )
            .outerjoin(Order, Order.created_by == User.id)
            .where(User.role.in_([r.value for r in STATION_ROLES]))
            .group_by(User.id, User.full_name, User.role)
            .order_by(User.role, User.full_name)
        )

        rows = (await db.execute(query)).all()
        return [
            StationStats(
                user_id=user_id,
                full_name=full_name,
                station=role,
                total_orders=total or 0,
                monthly_orders=monthly or 0,
            )
            for user_id, full_name, role, total, monthly in rows
        ]

    async def production_area_load(self, db: AsyncSession) -> list[ProductionAreaLoad]:
        """
        Ordini aperti (in attesa o in lavorazione, non chiusi) per area di produzione.

        Ogni tipo di lavoro è presente, anche con zero ordini.
        """
        query = (
            select(Order.work_type, func.count(Order.id))
            .where(
                not_closed_condition(),
                Order.production_status.in_(
                    [ProductionStatus.PENDING.value, ProductionStatus.IN_PROGRESS.value]
                ),
            )
            .group_by(Order.work_type)
        )
        counts = {work_type: count for work_type, count in (await db.execute(query)).all()}

        return [
            ProductionAreaLoad(
                work_type=wt.value,
                area_folder=WORK_TYPE_FOLDERS[wt],
                open_orders=counts.get(wt.value, 0),
            )
            for wt in WorkType
        ]


__all__ = [
    "StatsService",
    "month_bounds",
    "parse_month",
]
