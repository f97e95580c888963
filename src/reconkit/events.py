"""
Event Streaming - Recording and in-memory pub/sub of object events.

Events are short notices attached to a reconciled object, e.g. a failed
reconciliation or a removed finalizer. Recorders publish them to the cluster
API, to the in-memory bus (served as Server-Sent Events by the status
server) or both.

Like the cluster API, the bus aggregates repeats: an event with the same
object, type, reason and message as an earlier one carries an increased
count. Every published event gets a sequence number, which is the SSE id, so
a reconnecting client can resume after the last event it saw.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections import OrderedDict, deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Deque, Dict, Optional, Tuple

from reconkit.objects import ObservedObject

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Types of object events."""

    NORMAL = "Normal"
    WARNING = "Warning"


@dataclass
class ObjectEvent:
    """Event recorded for a reconciled object."""

    event_type: EventType
    reason: str
    message: str
    namespace: str
    name: str
    kind: str
    uid: str
    timestamp: str
    count: int = 1
    sequence: int = 0

    @property
    def object_key(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    @property
    def aggregation_key(self) -> Tuple[str, str, str, str]:
        """Events sharing this key are repeats of each other."""
        return (self.object_key, self.event_type.value, self.reason, self.message)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["event_type"] = self.event_type.value
        data["object_key"] = self.object_key
        return data

    def to_sse(self) -> str:
        """
        Format the event as an SSE message.

        The sequence number is the message id and the event type its name.
        """
        return (
            f"id: {self.sequence}\n"
            f"event: {self.event_type.value}\n"
            f"data: {json.dumps(self.to_dict())}\n\n"
        )

    @classmethod
    def from_object(
        cls,
        event_type: EventType,
        obj: ObservedObject,
        reason: str,
        message: str,
    ) -> "ObjectEvent":
        """
        Create an event for an object.

        Args:
            event_type: The type of event.
            obj: The object the event is about.
            reason: Short CamelCase reason, e.g. 'FinalizerRemoved'.
            message: Human readable message.
        """
        return cls(
            event_type=event_type,
            reason=reason,
            message=message,
            namespace=obj.namespace,
            name=obj.name,
            kind=obj.kind,
            uid=obj.uid,
            timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        )


@dataclass(frozen=True)
class EventFilter:
    """Selects events by object and kind of notice. Unset fields match all."""

    namespace: Optional[str] = None
    name: Optional[str] = None
    event_type: Optional[EventType] = None
    reason: Optional[str] = None

    def matches(self, event: ObjectEvent) -> bool:
        if self.namespace is not None and event.namespace != self.namespace:
            return False
        if self.name is not None and event.name != self.name:
            return False
        if self.event_type is not None and event.event_type != self.event_type:
            return False
        return self.reason is None or event.reason == self.reason


class EventSubscription:
    """
    Async iterator over the events of one subscriber.

    Iteration stops once the subscription was closed by the bus.
    """

    def __init__(self, subscriber_id: int, queue: asyncio.Queue, event_filter: EventFilter):
        self.id = subscriber_id
        self.event_filter = event_filter
        self._queue = queue

    def __aiter__(self) -> AsyncIterator[ObjectEvent]:
        return self

    async def __anext__(self) -> ObjectEvent:
        event = await self._queue.get()
        if event is None:
            raise StopAsyncIteration
        return event

    def offer(self, event: ObjectEvent) -> bool:
        """Queue a matching event. Returns False if the queue was full."""
        if not self.event_filter.matches(event):
            return True
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            return False
        return True

    def close(self) -> None:
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            # Make room for the end marker
            self._queue.get_nowait()
            self._queue.put_nowait(None)


class EventBus:
    """
    In-memory pub/sub of object events with aggregation and replay.

    Args:
        queue_size: Capacity of every subscriber queue. Events for a full
            queue are dropped so publishers never block.
        history_size: Number of recent events kept for replay and of
            aggregation keys remembered for counting repeats.
    """

    def __init__(self, queue_size: int = 256, history_size: int = 100):
        self._queue_size = queue_size
        self._history: Deque[ObjectEvent] = deque(maxlen=history_size)
        self._counts: Dict[Tuple[str, str, str, str], int] = OrderedDict()
        self._history_size = history_size
        self._subscribers: Dict[int, EventSubscription] = {}
        self._sequence = 0
        self._next_subscriber = 0
        self._closed = False

    @property
    def history(self) -> Tuple[ObjectEvent, ...]:
        return tuple(self._history)

    def publish(self, event: ObjectEvent) -> ObjectEvent:
        """
        Number, aggregate and fan out an event.

        Returns:
            The published event, with its sequence number and count set.
        """
        self._sequence += 1
        event.sequence = self._sequence

        key = event.aggregation_key
        event.count = self._counts.pop(key, 0) + 1
        self._counts[key] = event.count
        while len(self._counts) > self._history_size:
            self._counts.popitem(last=False)

        self._history.append(event)
        for subscription in list(self._subscribers.values()):
            if not subscription.offer(event):
                logger.warning(
                    f"Dropped event {event.sequence} for subscriber "
                    f"{subscription.id}: queue full"
                )
        return event

    def subscribe(
        self,
        event_filter: Optional[EventFilter] = None,
        after: Optional[int] = None,
    ) -> EventSubscription:
        """
        Subscribe to events.

        Args:
            event_filter: Only matching events are delivered.
            after: Replay kept events with a higher sequence number first.
        """
        self._next_subscriber += 1
        subscription = EventSubscription(
            self._next_subscriber,
            asyncio.Queue(maxsize=self._queue_size),
            event_filter or EventFilter(),
        )
        if after is not None:
            for event in self._history:
                if event.sequence > after:
                    subscription.offer(event)
        if self._closed:
            subscription.close()
            return subscription

        self._subscribers[subscription.id] = subscription
        logger.info(f"New event subscriber: {subscription.id}")
        return subscription

    def unsubscribe(self, subscription: EventSubscription) -> None:
        """Remove a subscriber and end its iteration."""
        if self._subscribers.pop(subscription.id, None) is not None:
            subscription.close()
            logger.info(f"Unsubscribed: {subscription.id}")

    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def close(self) -> None:
        """End all subscriptions. Later subscribers only get the replay."""
        self._closed = True
        for subscription in list(self._subscribers.values()):
            self.unsubscribe(subscription)


class EventRecorder(ABC):
    """Abstract sink for object events."""

    @abstractmethod
    async def emit(
        self,
        obj: ObservedObject,
        event_type: EventType,
        reason: str,
        message: str,
    ) -> None:
        """
        Record an event for an object.

        Args:
            obj: The object the event is about.
            event_type: Normal or Warning.
            reason: Short CamelCase reason.
            message: Human readable message.
        """
        pass


class BusEventRecorder(EventRecorder):
    """Recorder publishing events to an in-memory ``EventBus``."""

    def __init__(self, bus: EventBus):
        self.bus = bus

    async def emit(
        self,
        obj: ObservedObject,
        event_type: EventType,
        reason: str,
        message: str,
    ) -> None:
        self.bus.publish(ObjectEvent.from_object(event_type, obj, reason, message))
