"""Stock-changed notifications, published only after the owning transaction commits."""

from dataclasses import asdict, dataclass
import logging
from typing import Protocol

from sqlalchemy import event
from sqlalchemy.orm import Session


logger = logging.getLogger(__name__)

STOCK_UPDATED = "stock.updated"
_PENDING_KEY = "pending_stock_events"


@dataclass(frozen=True)
class StockChangedEvent:
    product_id: int
    variant_id: int | None
    location_id: int
    new_available_quantity: int
    transaction_id: int
    movement_type: str
    actor_id: int | None = None

    def to_dict(self) -> dict:
        return asdict(self)


class EventSink(Protocol):
    def publish(self, name: str, payload: StockChangedEvent) -> None: ...


class LoggingEventSink:
    def publish(self, name: str, payload: StockChangedEvent) -> None:
        logger.info("Published %s: %s", name, payload.to_dict())


class RecordingEventSink:
    """Keeps every published event in memory; handy for tests and local runs."""

    def __init__(self):
        self.events: list[tuple[str, StockChangedEvent]] = []

    def publish(self, name: str, payload: StockChangedEvent) -> None:
        self.events.append((name, payload))


default_sink = LoggingEventSink()


def enqueue_after_commit(db: Session, sink: EventSink, name: str, payload: StockChangedEvent) -> None:
    db.info.setdefault(_PENDING_KEY, []).append((sink, name, payload))


def pending_events(db: Session) -> list[tuple[EventSink, str, StockChangedEvent]]:
    return list(db.info.get(_PENDING_KEY, []))


@event.listens_for(Session, "after_commit")
def _publish_pending(session: Session) -> None:
    pending = session.info.pop(_PENDING_KEY, [])
    for sink, name, payload in pending:
        try:
            sink.publish(name, payload)
        except Exception:
            logger.exception(
                "Event sink failed for %s: product_id=%s location_id=%s transaction_id=%s",
                name,
                payload.product_id,
                payload.location_id,
                payload.transaction_id,
            )


@event.listens_for(Session, "after_rollback")
def _discard_pending(session: Session) -> None:
    session.info.pop(_PENDING_KEY, None)
