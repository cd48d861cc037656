from collections.abc import AsyncIterator

from fastapi import Request

from kidwallet_api.services.events import DeferredEventPublisher, NullEventPublisher


async def get_event_publisher(request: Request) -> AsyncIterator[DeferredEventPublisher]:
    """Buffer change events for the request; routes release them after commit."""

    target = getattr(request.app.state, "event_bus", None) or NullEventPublisher()
    publisher = DeferredEventPublisher(target)
    try:
        yield publisher
    finally:
        publisher.discard()
