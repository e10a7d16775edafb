import asyncio
from typing import Dict, List, Callable, Any, Optional
from collections import defaultdict
import logging

logger = logging.getLogger(__name__)


class EventBus:
    """Central event bus for decision and status notifications"""

    def __init__(self):
        self.subscribers: Dict[str, List[Callable]] = defaultdict(list)
        self.event_queue: asyncio.Queue = asyncio.Queue()
        self.running = False
        self.published_count = 0
        self._task: Optional[asyncio.Task] = None

    async def start(self):
        """Start event processing"""
        self.running = True
        self._task = asyncio.create_task(self._process_events())

    async def stop(self):
        """Drain pending events and stop processing"""
        if self.running:
            await self.event_queue.join()
        self.running = False
        if self._task is not None:
            await self._task
            self._task = None

    async def publish(self, event_type: str, data: Any):
        """Publish event to all subscribers"""
        self.published_count += 1
        await self.event_queue.put((event_type, data))

    def subscribe(self, event_type: str, handler: Callable):
        """Subscribe to event type"""
        self.subscribers[event_type].append(handler)

    async def _process_events(self):
        """Process events from queue"""
        while self.running:
            try:
                event_type, data = await asyncio.wait_for(
                    self.event_queue.get(), timeout=1.0
                )
            except asyncio.TimeoutError:
                continue

            # Notify all subscribers
            for handler in list(self.subscribers[event_type]):
                try:
                    if asyncio.iscoroutinefunction(handler):
                        await handler(data)
                    else:
                        handler(data)
                except Exception as e:
                    logger.error(f"Error in event handler for {event_type}: {e}")

            self.event_queue.task_done()


# Event types
class Events:
    OPTIMIZATION_DECISION = "optimization_decision"
    STATUS_UPDATE = "status_update"
    EMERGENCY_TRANSITION = "emergency_transition"
