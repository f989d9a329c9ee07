"""
Notifiche di modifica degli ordini
Progetto: Print Shop Manager (Gestionale Tipografia)

Un solo broker in memoria, conservato su app.state, inoltra gli eventi
a tutti i client collegati via WebSocket. La consegna è best effort:
un client che non riceve viene scollegato.
"""

import asyncio
import logging
from typing import Any, Protocol

from fastapi import WebSocketDisconnect

from app.models.mixins import utcnow
from app.models.order import Order
from app.schemas.order import OrderEvent

logger = logging.getLogger(__name__)


class Subscriber(Protocol):
    async def send_json(self, data: Any) -> None: ...


def order_event(event_type: str, order: Order, **data: Any) -> OrderEvent:
    """Costruisce l'evento per un ordine appena salvato."""
    return OrderEvent(
        type=event_type,
        order_id=order.id,
        folio=order.folio,
        occurred_at=utcnow(),
        data={
            "status": order.status,
            "production_status": order.production_status,
            "delivery_status": order.delivery_status,
            **data,
        },
    )


class OrderEventBroker:
    """Registro degli iscritti e invio degli eventi."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._lock = asyncio.Lock()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def subscribe(self, subscriber: Subscriber) -> None:
        async with self._lock:
            self._subscribers.append(subscriber)
        logger.debug("Nuovo iscritto agli eventi ordini (%d totali)", self.subscriber_count)

    async def unsubscribe(self, subscriber: Subscriber) -> None:
        async with self._lock:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

    async def publish(self, event: OrderEvent) -> int:
        """
        Invia l'evento a tutti gli iscritti.

        Returns:
            Numero di iscritti raggiunti
        """
        payload = event.model_dump(mode="json")
        async with self._lock:
            subscribers = list(self._subscribers)

        delivered = 0
        for subscriber in subscribers:
            try:
                await subscriber.send_json(payload)
                delivered += 1
            except (WebSocketDisconnect, RuntimeError, ConnectionError) as e:
                logger.info("Iscritto rimosso dopo errore di invio: %s", e)
                await self.unsubscribe(subscriber)

        logger.debug("Evento %s per %s inviato a %d iscritti", event.type, event.folio, delivered)
        return delivered


__all__ = [
    "OrderEventBroker",
    "Subscriber",
    "order_event",
]
