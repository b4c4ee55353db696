"""Event publishing for inbound socket frames"""
import asyncio

from domain.models import SocketEvent


class EventPublisher:
    """Publishes received socket events to the event queue"""

    def __init__(self, queue: asyncio.Queue[dict]) -> None:
        self.queue = queue

    async def publish(self, event: SocketEvent | dict) -> None:
        """Publish an event to the queue (accepts dataclass or dict)"""
        if isinstance(event, SocketEvent):
            event_dict = {
                "type": event.type,
                "payload": event.payload,
            }
        else:
            event_dict = event
        await self.queue.put(event_dict)
