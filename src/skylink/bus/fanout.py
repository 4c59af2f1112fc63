from __future__ import annotations

import logging
from typing import Iterable

from skylink.models.booking import OrderEvent

logger = logging.getLogger(__name__)


class FanoutBus:
    """Publishes each order event to every target bus in order."""

    def __init__(self, targets: Iterable[object]) -> None:
        self.targets = list(targets)

    def publish(self, event: OrderEvent) -> None:
        for target in self.targets:
            target.publish(event)

    def publish_many(self, events: Iterable[OrderEvent]) -> None:
        batch = list(events)
        for target in self.targets:
            target.publish_many(batch)

    def close(self) -> None:
        for target in self.targets:
            close = getattr(target, "close", None)
            if callable(close):
                logger.debug("Closing %s", type(target).__name__)
                close()
