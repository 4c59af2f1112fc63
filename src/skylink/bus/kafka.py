from __future__ import annotations

import json
import logging
from collections import Counter
from typing import Any, Iterable

from kafka import KafkaProducer

from skylink.bus.routing import EVENT_TOPIC_MAP, partition_key
from skylink.models.booking import OrderEvent

logger = logging.getLogger(__name__)


def _encode(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload, sort_keys=True).encode("utf-8")


class KafkaBus:
    def __init__(
        self,
        bootstrap_servers: str,
        client_id: str = "skylink-producer",
        producer: KafkaProducer | None = None,
    ) -> None:
        self._owns_producer = producer is None
        self._producer = producer or KafkaProducer(
            bootstrap_servers=bootstrap_servers,
            client_id=client_id,
            acks="all",
            linger_ms=10,
            value_serializer=_encode,
            key_serializer=lambda key: key.encode("utf-8"),
        )
        self.sent_by_topic: Counter[str] = Counter()

    def publish(self, event: OrderEvent) -> None:
        topic = EVENT_TOPIC_MAP[event.event_type]
        self._producer.send(
            topic,
            key=partition_key(event),
            value=event.model_dump(mode="json"),
            headers=[("event_type", event.event_type.value.encode("utf-8"))],
        )
        self.sent_by_topic[topic] += 1

    def publish_many(self, events: Iterable[OrderEvent]) -> None:
        count = 0
        for event in events:
            self.publish(event)
            count += 1
        self._producer.flush()
        logger.debug("Flushed %s order event(s) to Kafka", count)

    def close(self) -> None:
        if not self._owns_producer:
            return
        self._producer.flush()
        self._producer.close()
