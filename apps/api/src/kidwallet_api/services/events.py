"""Change notifications for ledger and redemption updates."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Protocol

from loguru import logger


@dataclass(slots=True)
class LedgerEvent:
    """Notice that a subject's wallet figures may have changed."""

    kind: str
    subject_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


EventHandler = Callable[[LedgerEvent], Awaitable[None]]


class EventPublisher(Protocol):
    """Protocol for change-feed publishers."""

    async def publish(self, event: LedgerEvent) -> None:
        ...


class NullEventPublisher:
    """Publisher used when nobody listens for changes."""

    async def publish(self, event: LedgerEvent) -> None:
        return None


class InMemoryEventBus:
    """In-process fan-out; subscribers should recompute rather than trust payloads."""

    def __init__(self) -> None:
        self.published: List[LedgerEvent] = []
        self._handlers: List[EventHandler] = []

    def subscribe(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    async def publish(self, event: LedgerEvent) -> None:
        self.published.append(event)
        for handler in list(self._handlers):
            try:
                await handler(event)
            except Exception:  # noqa: BLE001 - subscribers never affect the publisher
                logger.exception("Ledger event handler failed", kind=event.kind, subject_id=event.subject_id)


class DeferredEventPublisher:
    """Hold events until the surrounding transaction commits.

    Call ``release`` after a successful commit. Events still held when the
    request ends unreleased are dropped with the rolled-back writes.
    """

    def __init__(self, target: EventPublisher) -> None:
        self._target = target
        self._pending: List[LedgerEvent] = []

    @property
    def pending(self) -> List[LedgerEvent]:
        return list(self._pending)

    async def publish(self, event: LedgerEvent) -> None:
        self._pending.append(event)

    async def release(self) -> None:
        pending, self._pending = self._pending, []
        for event in pending:
            await publish_safely(self._target, event)

    def discard(self) -> None:
        if self._pending:
            logger.debug("Dropping unpublished ledger events", count=len(self._pending))
        self._pending.clear()


async def publish_safely(publisher: EventPublisher, event: LedgerEvent) -> None:
    """Publish an event, logging instead of raising on failure."""

    try:
        await publisher.publish(event)
    except Exception:  # noqa: BLE001
        logger.exception("Failed to publish ledger event", kind=event.kind, subject_id=event.subject_id)


__all__ = [
    "DeferredEventPublisher",
    "EventHandler",
    "EventPublisher",
    "InMemoryEventBus",
    "LedgerEvent",
    "NullEventPublisher",
    "publish_safely",
]
