from __future__ import annotations

import logging
import random

from skylink.audit.lineage import AuditStore
from skylink.db.repositories import SeatRepository, ServiceRepository
from skylink.errors import (
    InsufficientInventory,
    SeatNotFound,
    SeatUnavailable,
    ServiceNotFound,
    ServiceUnavailable,
)
from skylink.models.booking import Seat, SeatAssignment, SeatType, Service

logger = logging.getLogger(__name__)


class InventoryLedger:
    """The only writer of seat availability and service stock."""

    def __init__(
        self,
        seat_repository: SeatRepository | None = None,
        service_repository: ServiceRepository | None = None,
        audit_store: AuditStore | None = None,
    ) -> None:
        self.seat_repository = seat_repository or SeatRepository()
        self.service_repository = service_repository or ServiceRepository()
        self.audit_store = audit_store

    def reserve_seat(self, seat_id: int) -> Seat:
        row = self.seat_repository.get(seat_id)
        if row is None:
            raise SeatNotFound(seat_id)
        if not self.seat_repository.claim(seat_id):
            logger.warning("Seat %s already taken", seat_id)
            raise SeatUnavailable(seat_id)
        self._log("seat_reserved", seat_id=seat_id)
        return Seat.model_validate({**row, "is_available": False})

    def release_seat(self, seat_id: int) -> None:
        self.seat_repository.release(seat_id)
        self._log("seat_released", seat_id=seat_id)

    def reserve_service_units(self, service_id: int, quantity: int = 1) -> Service:
        row = self.service_repository.get(service_id)
        if row is None:
            raise ServiceNotFound(service_id)
        service = Service.model_validate(row)
        if not service.is_active or service.inventory == 0:
            raise ServiceUnavailable(service_id)
        if not self.service_repository.take_units(service_id, quantity):
            current = self.service_repository.get(service_id) or row
            if not current.get("is_active", True) or int(current["inventory"]) == 0:
                raise ServiceUnavailable(service_id)
            raise InsufficientInventory(service_id, quantity, int(current["inventory"]))
        self._log("service_units_reserved", service_id=service_id, quantity=quantity)
        return service

    def release_service_units(self, service_id: int, quantity: int = 1) -> None:
        self.service_repository.return_units(service_id, quantity)
        self._log("service_units_released", service_id=service_id, quantity=quantity)

    def assign_random_seats(
        self,
        flight_id: int,
        passenger_count: int,
        rng: random.Random | None = None,
    ) -> list[SeatAssignment]:
        """Give each passenger a random standard economy seat; passengers beyond supply stay unassigned."""
        rng = rng or random.Random()
        candidates = [
            Seat.model_validate(row)
            for row in self.seat_repository.list_by_flight(flight_id)
            if row.get("is_available", True)
            and row["seat_type"] == SeatType.ECONOMY.value
            and not row.get("is_extra_legroom", False)
        ]
        rng.shuffle(candidates)

        assignments: list[SeatAssignment] = []
        pool = iter(candidates)
        for index in range(passenger_count):
            assignment = SeatAssignment(passenger_index=index)
            for seat in pool:
                if self.seat_repository.claim(seat.id):
                    assignment = SeatAssignment.for_seat(index, seat)
                    self._log("seat_reserved", seat_id=seat.id)
                    break
            assignments.append(assignment)

        unassigned = len([item for item in assignments if item.seat_id is None])
        if unassigned:
            logger.info("Flight %s: %s of %s passenger(s) left without a seat", flight_id, unassigned, passenger_count)
        return assignments

    def _log(self, action: str, **detail: int) -> None:
        if self.audit_store:
            reference = f"seat-{detail['seat_id']}" if "seat_id" in detail else f"service-{detail.get('service_id')}"
            self.audit_store.log(
                action=action,
                component="inventory_ledger",
                output_reference=reference,
                detail=detail,
            )
