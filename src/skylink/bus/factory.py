from __future__ import annotations

import logging
import os

from skylink.bus.fanout import FanoutBus
from skylink.bus.in_memory import InMemoryBus
from skylink.bus.kafka import KafkaBus

logger = logging.getLogger(__name__)


def build_transport_bus_from_env() -> KafkaBus | None:
    backend = os.getenv("SKYLINK_BUS_BACKEND", "memory").strip().lower()
    if backend == "memory":
        return None
    if backend == "kafka":
        bootstrap_servers = os.getenv("SKYLINK_KAFKA_BOOTSTRAP_SERVERS", "127.0.0.1:9092")
        client_id = os.getenv("SKYLINK_KAFKA_CLIENT_ID", "skylink-producer")
        logger.info("Publishing order notifications to Kafka at %s", bootstrap_servers)
        return KafkaBus(bootstrap_servers=bootstrap_servers, client_id=client_id)
    raise ValueError("Unsupported SKYLINK_BUS_BACKEND. Use 'memory' or 'kafka'.")


def build_order_bus() -> tuple[InMemoryBus, InMemoryBus | FanoutBus]:
    """Return the in-process snapshot bus and the publisher services should write to.

    The snapshot always receives every event; a configured transport gets a copy.
    """
    snapshot = InMemoryBus()
    transport = build_transport_bus_from_env()
    if transport is None:
        return snapshot, snapshot
    return snapshot, FanoutBus([snapshot, transport])
