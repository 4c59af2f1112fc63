from __future__ import annotations

from skylink.db.repositories import FlightRepository, SeatRepository, ServiceRepository
from skylink.errors import FlightNotFound, SeatNotFound, ServiceNotFound
from skylink.models.booking import Flight, Seat, Service, ServicePhase


class CatalogReader:
    def __init__(
        self,
        flight_repository: FlightRepository | None = None,
        seat_repository: SeatRepository | None = None,
        service_repository: ServiceRepository | None = None,
    ) -> None:
        self.flight_repository = flight_repository or FlightRepository()
        self.seat_repository = seat_repository or SeatRepository()
        self.service_repository = service_repository or ServiceRepository()

    def get_flight(self, flight_id: int) -> Flight | None:
        row = self.flight_repository.get(flight_id)
        return Flight.model_validate(row) if row else None

    def get_seat(self, seat_id: int) -> Seat | None:
        row = self.seat_repository.get(seat_id)
        return Seat.model_validate(row) if row else None

    def get_service(self, service_id: int) -> Service | None:
        row = self.service_repository.get(service_id)
        return Service.model_validate(row) if row else None

    def require_flight(self, flight_id: int) -> Flight:
        flight = self.get_flight(flight_id)
        if flight is None:
            raise FlightNotFound(flight_id)
        return flight

    def require_seat(self, seat_id: int) -> Seat:
        seat = self.get_seat(seat_id)
        if seat is None:
            raise SeatNotFound(seat_id)
        return seat

    def require_active_service(self, service_id: int) -> Service:
        service = self.get_service(service_id)
        if service is None or not service.is_active:
            raise ServiceNotFound(service_id)
        return service

    def list_flight_seats(self, flight_id: int) -> list[Seat]:
        return [Seat.model_validate(row) for row in self.seat_repository.list_by_flight(flight_id)]

    def list_services(self, phase: ServicePhase | str | None = None, active_only: bool = True) -> list[Service]:
        services = [Service.model_validate(row) for row in self.service_repository.all_rows()]
        if phase:
            services = [service for service in services if service.phase == ServicePhase(phase)]
        if active_only:
            services = [service for service in services if service.is_active]
        return sorted(services, key=lambda service: service.id)
