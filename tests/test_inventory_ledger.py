from __future__ import annotations

import random
import threading

import pytest

from skylink.db.repositories import SeatRepository, ServiceRepository
from skylink.errors import InsufficientInventory, SeatNotFound, SeatUnavailable, ServiceUnavailable


def _race(target, workers: int = 8) -> list[str]:
    barrier = threading.Barrier(workers)
    outcomes: list[str] = []
    lock = threading.Lock()

    def run() -> None:
        barrier.wait()
        try:
            target()
            result = "ok"
        except (SeatUnavailable, ServiceUnavailable, InsufficientInventory) as exc:
            result = type(exc).__name__
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=run) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return outcomes


def test_reserving_a_seat_twice_fails(world) -> None:
    seat = world.inventory.reserve_seat(1)
    assert seat.is_available is False

    with pytest.raises(SeatUnavailable):
        world.inventory.reserve_seat(1)


def test_reserving_unavailable_or_unknown_seat(world) -> None:
    with pytest.raises(SeatUnavailable):
        world.inventory.reserve_seat(4)
    with pytest.raises(SeatNotFound):
        world.inventory.reserve_seat(999)


def test_release_is_idempotent(world) -> None:
    world.inventory.reserve_seat(2)
    world.inventory.release_seat(2)
    world.inventory.release_seat(2)

    assert SeatRepository().get(2)["is_available"] is True


def test_random_assignment_leaves_extra_passengers_unseated(world) -> None:
    # Only seat 1 qualifies once seat 2 is taken: 12A is extra legroom, 10C is already sold.
    world.inventory.reserve_seat(2)

    assignments = world.inventory.assign_random_seats(1, 3, rng=random.Random(1))

    assert len(assignments) == 3
    assert [item.passenger_index for item in assignments] == [0, 1, 2]
    seated = [item for item in assignments if item.seat_id is not None]
    assert len(seated) == 1
    assert seated[0].seat_id == 1
    assert SeatRepository().get(1)["is_available"] is False
    assert SeatRepository().get(3)["is_available"] is True


def test_service_units_are_decremented_and_returned(world) -> None:
    world.inventory.reserve_service_units(1, 2)
    assert ServiceRepository().get(1)["inventory"] == 3

    world.inventory.release_service_units(1, 2)
    assert ServiceRepository().get(1)["inventory"] == 5


def test_service_stock_limits(world) -> None:
    with pytest.raises(InsufficientInventory) as excinfo:
        world.inventory.reserve_service_units(2, 2)
    assert excinfo.value.detail["remaining"] == 1

    world.inventory.reserve_service_units(2, 1)
    with pytest.raises(ServiceUnavailable):
        world.inventory.reserve_service_units(2, 1)
    with pytest.raises(ServiceUnavailable):
        world.inventory.reserve_service_units(3, 1)


def test_inventory_changes_are_audited(world) -> None:
    world.inventory.reserve_seat(1)
    world.inventory.release_seat(1)

    lineage = world.audit.get_lineage("seat-1")
    assert [record.action for record in lineage] == ["seat_reserved", "seat_released"]


def test_concurrent_seat_reservations_have_one_winner(world) -> None:
    outcomes = _race(lambda: world.inventory.reserve_seat(1))

    assert outcomes.count("ok") == 1
    assert outcomes.count("SeatUnavailable") == 7
    assert SeatRepository().get(1)["is_available"] is False


def test_concurrent_claims_on_last_service_unit(world) -> None:
    outcomes = _race(lambda: world.inventory.reserve_service_units(2, 1))

    assert outcomes.count("ok") == 1
    assert ServiceRepository().get(2)["inventory"] == 0
