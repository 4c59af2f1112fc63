from .factory import build_order_bus, build_transport_bus_from_env
from .fanout import FanoutBus
from .in_memory import InMemoryBus
from .kafka import KafkaBus
from .routing import EVENT_TOPIC_MAP, partition_key

__all__ = [
    "EVENT_TOPIC_MAP",
    "FanoutBus",
    "InMemoryBus",
    "KafkaBus",
    "build_order_bus",
    "build_transport_bus_from_env",
    "partition_key",
]
