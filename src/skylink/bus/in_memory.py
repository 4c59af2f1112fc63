from __future__ import annotations

from collections import defaultdict
from typing import Iterable

from skylink.bus.routing import EVENT_TOPIC_MAP
from skylink.models.booking import OrderEvent


class InMemoryBus:
    def __init__(self) -> None:
        self.topics: dict[str, list[OrderEvent]] = defaultdict(list)

    def publish(self, event: OrderEvent) -> None:
        topic = EVENT_TOPIC_MAP[event.event_type]
        self.topics[topic].append(event)

    def publish_many(self, events: Iterable[OrderEvent]) -> None:
        for event in events:
            self.publish(event)

    def events_for(self, order_number: str) -> list[OrderEvent]:
        rows = [event for events in self.topics.values() for event in events if event.order_number == order_number]
        return sorted(rows, key=lambda event: event.occurred_at)

    def clear(self) -> None:
        self.topics.clear()
