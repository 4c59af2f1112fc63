from __future__ import annotations

import json
import logging
import random
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any

from skylink.db.repositories import FlightRepository, SeatRepository, ServiceRepository, UserRepository
from skylink.models.booking import Flight, SeatClass, SeatType, Service, User

logger = logging.getLogger(__name__)

SEAT_ROWS = range(10, 31)
SEAT_LETTERS = "ABCDEF"
EXTRA_LEGROOM_ROW = 12
EXTRA_LEGROOM_PRICE = Decimal("45.00")
AVAILABILITY_RATE = 0.8


@dataclass
class SeedSummary:
    flights: int = 0
    seats: int = 0
    services: int = 0
    users: int = 0
    skipped: bool = False


def _load(data_dir: Path, filename: str) -> list[dict[str, Any]]:
    return json.loads((data_dir / filename).read_text(encoding="utf-8"))


def seat_class_for(letter: str) -> SeatClass:
    if letter in ("A", "F"):
        return SeatClass.WINDOW
    if letter in ("C", "D"):
        return SeatClass.AISLE
    return SeatClass.MIDDLE


def build_seat_map(flight_id: int, rng: random.Random) -> list[dict[str, Any]]:
    rows = []
    for row in SEAT_ROWS:
        extra_legroom = row == EXTRA_LEGROOM_ROW
        for letter in SEAT_LETTERS:
            rows.append(
                {
                    "flight_id": flight_id,
                    "seat_number": f"{row}{letter}",
                    "seat_type": SeatType.ECONOMY.value,
                    "seat_class": seat_class_for(letter).value,
                    "is_available": rng.random() < AVAILABILITY_RATE,
                    "is_extra_legroom": extra_legroom,
                    "price": str(EXTRA_LEGROOM_PRICE if extra_legroom else Decimal("0.00")),
                }
            )
    return rows


def seed_demo_data(
    data_dir: Path,
    flight_repository: FlightRepository | None = None,
    seat_repository: SeatRepository | None = None,
    service_repository: ServiceRepository | None = None,
    user_repository: UserRepository | None = None,
    seed: int = 42,
) -> SeedSummary:
    """Load demo flights, services and users and lay out each flight's economy cabin.

    Does nothing when any flight already exists, so it is safe to call on every start.
    """
    flight_repository = flight_repository or FlightRepository()
    seat_repository = seat_repository or SeatRepository()
    service_repository = service_repository or ServiceRepository()
    user_repository = user_repository or UserRepository()

    if flight_repository.any_exists():
        logger.info("Catalog already present; skipping demo seed")
        return SeedSummary(skipped=True)

    rng = random.Random(seed)
    summary = SeedSummary()
    for raw in _load(data_dir, "users.json"):
        user_repository.insert(User.model_validate(raw).model_dump(mode="json"))
        summary.users += 1
    for raw in _load(data_dir, "services.json"):
        service_repository.insert(Service.model_validate(raw).model_dump(mode="json"))
        summary.services += 1
    for raw in _load(data_dir, "flights.json"):
        flight = Flight.model_validate(raw)
        flight_repository.insert(flight.model_dump(mode="json"))
        summary.flights += 1
        for seat_row in build_seat_map(flight.id, rng):
            seat_repository.insert(seat_row)
            summary.seats += 1

    logger.info(
        "Seeded %s flight(s), %s seat(s), %s service(s), %s user(s)",
        summary.flights,
        summary.seats,
        summary.services,
        summary.users,
    )
    return summary


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    seed_demo_data(Path(__file__).resolve().parents[2] / "data" / "seed")
