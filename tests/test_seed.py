from __future__ import annotations

from decimal import Decimal
from pathlib import Path

from skylink.catalog.reader import CatalogReader
from skylink.seed import seed_demo_data

SEED_DIR = Path(__file__).resolve().parents[1] / "data" / "seed"


def test_seed_loads_catalog_and_seat_maps() -> None:
    summary = seed_demo_data(SEED_DIR)

    assert summary.skipped is False
    assert summary.flights == 3
    assert summary.seats == 3 * 21 * 6
    catalog = CatalogReader()
    assert catalog.require_flight(1).price == Decimal("299.00")

    seats = catalog.list_flight_seats(1)
    assert seats[0].seat_number == "10A"
    legroom = [seat for seat in seats if seat.is_extra_legroom]
    assert {seat.seat_number[:2] for seat in legroom} == {"12"}
    assert {seat.price for seat in legroom} == {Decimal("45.00")}
    assert {seat.seat_class.value for seat in seats if seat.seat_number.endswith("B")} == {"middle"}


def test_seed_is_idempotent_and_deterministic() -> None:
    seed_demo_data(SEED_DIR)
    first = [seat.is_available for seat in CatalogReader().list_flight_seats(2)]

    assert seed_demo_data(SEED_DIR).skipped is True
    assert len(CatalogReader().list_flight_seats(2)) == 126
    assert [seat.is_available for seat in CatalogReader().list_flight_seats(2)] == first


def test_inactive_services_are_hidden() -> None:
    seed_demo_data(SEED_DIR)

    names = [service.name for service in CatalogReader().list_services()]
    assert "Airport Transfer" not in names
    assert [service.name for service in CatalogReader().list_services(phase="in_flight")] == [
        "In-flight Meal",
        "Wi-Fi Pass",
    ]
