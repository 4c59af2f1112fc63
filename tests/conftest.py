from __future__ import annotations

import random
from types import SimpleNamespace

import pytest

from skylink.audit.lineage import AuditStore
from skylink.bus.in_memory import InMemoryBus
from skylink.catalog.reader import CatalogReader
from skylink.db.repositories import (
    FlightRepository,
    SeatRepository,
    ServiceRepository,
    UserRepository,
    reset_memory_backend,
)
from skylink.inventory.ledger import InventoryLedger
from skylink.orders.lifecycle import OrderLifecycleManager
from skylink.wallet.ledger import WalletLedger


@pytest.fixture(autouse=True)
def memory_backend(monkeypatch):
    monkeypatch.setenv("SKYLINK_STORAGE_BACKEND", "memory")
    monkeypatch.setenv("SKYLINK_BUS_BACKEND", "memory")
    reset_memory_backend()
    yield
    reset_memory_backend()


def _seat(seat_id: int, number: str, available: bool = True, extra_legroom: bool = False, flight_id: int = 1) -> dict:
    letter = number[-1]
    seat_class = "window" if letter in "AF" else "aisle" if letter in "CD" else "middle"
    return {
        "id": seat_id,
        "flight_id": flight_id,
        "seat_number": number,
        "seat_type": "economy",
        "seat_class": seat_class,
        "is_available": available,
        "is_extra_legroom": extra_legroom,
        "price": "45.00" if extra_legroom else "0.00",
    }


@pytest.fixture
def catalog_rows() -> None:
    users = UserRepository()
    users.insert({"id": 1, "email": "alex@example.com", "first_name": "Alex", "last_name": "Morgan", "wallet_balance": "1000.00"})
    users.insert({"id": 2, "email": "jo@example.com", "first_name": "Jo", "last_name": "Lee", "wallet_balance": "10.00"})

    FlightRepository().insert(
        {
            "id": 1,
            "flight_number": "SL1234",
            "airline": "SkyLink Airways",
            "departure_airport": "JFK",
            "arrival_airport": "LAX",
            "departure_time": "2026-12-15T08:00:00Z",
            "arrival_time": "2026-12-15T11:30:00Z",
            "duration": "6h 30m",
            "aircraft": "Boeing 737-800",
            "price": "299.00",
            "available_seats": 4,
            "total_seats": 4,
        }
    )
    seats = SeatRepository()
    seats.insert(_seat(1, "10A"))
    seats.insert(_seat(2, "10B"))
    seats.insert(_seat(3, "12A", extra_legroom=True))
    seats.insert(_seat(4, "10C", available=False))

    services = ServiceRepository()
    services.insert(
        {"id": 1, "name": "Priority Boarding", "description": "Board first", "category": "boarding",
         "phase": "pre_boarding", "price": "25.00", "inventory": 5}
    )
    services.insert(
        {"id": 2, "name": "Lounge Access", "description": "Lounge entry", "category": "lounge",
         "phase": "pre_boarding", "price": "65.00", "inventory": 1}
    )
    services.insert(
        {"id": 3, "name": "Airport Transfer", "description": "Car to town", "category": "transport",
         "phase": "arrival", "price": "55.00", "inventory": 3, "is_active": False}
    )


@pytest.fixture
def world(catalog_rows) -> SimpleNamespace:
    bus = InMemoryBus()
    audit = AuditStore()
    catalog = CatalogReader()
    inventory = InventoryLedger(audit_store=audit)
    wallet = WalletLedger(bus=bus)
    manager = OrderLifecycleManager(
        catalog=catalog,
        inventory=inventory,
        wallet=wallet,
        audit_store=audit,
        bus=bus,
        rng=random.Random(7),
    )
    return SimpleNamespace(
        bus=bus,
        audit=audit,
        catalog=catalog,
        inventory=inventory,
        wallet=wallet,
        manager=manager,
    )

