"""
Service Layer per i pagamenti degli Ordini
Progetto: Print Shop Manager (Gestionale Tipografia)

Il saldo residuo non è mai salvato: è sempre total_amount - advance_payment.
Un pagamento che copre il saldo consegna l'ordine nella stessa modifica.
"""

import logging
import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import BusinessValidationError, StateError
from app.models.mixins import utcnow
from app.models.order import Order
from app.schemas.order import DeliveryStatus, PaymentMethod
from app.schemas.token import SessionContext
from app.services.order_service import OrderService

# Logger per questo modulo
logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def _to_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    return value if isinstance(value, Decimal) else Decimal(str(value))


def compute_remaining_balance(order: Any) -> Decimal:
    """
    Saldo residuo di un ordine: total_amount - advance_payment.

    Importi mancanti valgono zero. Il risultato non viene limitato a zero:
    un valore negativo è un credito a favore del cliente.
    """
    return _to_decimal(order.total_amount) - _to_decimal(order.advance_payment)


@dataclass
class PaymentOutcome:
    """Esito di register_payment."""

    order: Order
    remaining_balance: Decimal
    delivered: bool


class PaymentService:
    """Service per la registrazione dei pagamenti in cassa."""

    def __init__(self, order_service: Optional[OrderService] = None) -> None:
        self.orders = order_service or OrderService()

    @staticmethod
    def validate_payment(
        amount: Any,
        method: Union[PaymentMethod, str, None],
    ) -> tuple[Decimal, PaymentMethod]:
        """
        Valida importo e metodo di un pagamento.

        Returns:
            Tuple (importo arrotondato al centesimo, metodo)

        Raises:
            ValidationError: Importo non positivo o non numerico, metodo mancante o sconosciuto
        """
        try:
            value = _to_decimal(amount).quantize(CENTS, rounding=ROUND_HALF_UP)
        except (InvalidOperation, ValueError):
            raise BusinessValidationError(f"Importo non valido: {amount!r}")

        if not value.is_finite():
            raise BusinessValidationError(f"Importo non valido: {amount!r}")

        if value <= 0:
            raise BusinessValidationError(
                "L'importo del pagamento deve essere maggiore di zero",
                extra={"amount": str(value)},
            )

        if method is None or method == "":
            raise BusinessValidationError("Il metodo di pagamento è obbligatorio")

        try:
            payment_method = PaymentMethod(method)
        except ValueError:
            raise BusinessValidationError(
                f"Metodo di pagamento non valido: {method}",
                extra={"allowed": [m.value for m in PaymentMethod]},
            )

        return value, payment_method

    async def register_payment(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        amount: Any,
        method: Union[PaymentMethod, str, None],
        ctx: SessionContext,
    ) -> PaymentOutcome:
        """
        Registra un pagamento sull'ordine.

        Se l'anticipo aggiornato copre il totale, la stessa modifica
        imposta delivery_status = Entregado, delivered_at e delivered_by.

        Args:
            db: Sessione database
            order_id: UUID dell'ordine
            amount: Importo pagato (> 0)
            method: Metodo di pagamento
            ctx: Contesto della sessione (diventa delivered_by in caso di consegna)

        Returns:
            PaymentOutcome con ordine aggiornato, saldo residuo e flag di consegna

        Raises:
            ValidationError: Importo o metodo non validi, oppure pagamento oltre il totale
                con allow_overpayment disattivato
            NotFoundError: Se l'ordine non esiste
            StateError: Se l'ordine è già consegnato o cancellato
        """
        value, payment_method = self.validate_payment(amount, method)

        order = await self.orders.get_by_id(db, order_id)

        if order.is_closed:
            logger.warning(
                "Pagamento rifiutato per %s: ordine %s", order.folio, order.delivery_status
            )
            raise StateError(
                f"Impossibile registrare pagamenti: l'ordine {order.folio} è {order.delivery_status}",
                extra={"delivery_status": order.delivery_status},
            )

        total = _to_decimal(order.total_amount)
        new_advance = _to_decimal(order.advance_payment) + value

        if new_advance > total and not settings.allow_overpayment:
            raise BusinessValidationError(
                "Il pagamento supera il saldo residuo",
                extra={"remaining_balance": str(compute_remaining_balance(order))},
            )

        delivered = new_advance >= total

        order.advance_payment = new_advance
        order.payment_method = payment_method.value
        if delivered:
            order.delivery_status = DeliveryStatus.DELIVERED.value
            order.delivered_at = utcnow()
            order.delivered_by = ctx.user_id

        await db.flush()

        remaining = compute_remaining_balance(order)
        logger.info(
            "Pagamento di %s %s (%s) su %s, saldo %s%s",
            value,
            settings.currency,
            payment_method.value,
            order.folio,
            remaining,
            ", consegnato" if delivered else "",
        )
        return PaymentOutcome(order=order, remaining_balance=remaining, delivered=delivered)


__all__ = [
    "PaymentService",
    "PaymentOutcome",
    "compute_remaining_balance",
]
