from __future__ import annotations

from typing import Any


class BookingError(Exception):
    """Base for failures reported back to the caller with a displayable message."""

    def __init__(self, message: str, **detail: Any) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_payload(self) -> dict[str, Any]:
        return {"message": self.message, **self.detail}


class ValidationFailed(BookingError):
    pass


class NotFound(BookingError):
    pass


class OrderNotFound(NotFound):
    def __init__(self, reference: Any) -> None:
        super().__init__("Order not found", order=reference)


class FlightNotFound(NotFound):
    def __init__(self, flight_id: int) -> None:
        super().__init__("Flight not found", flight_id=flight_id)


class SeatNotFound(NotFound):
    def __init__(self, seat_id: int) -> None:
        super().__init__("Seat not found", seat_id=seat_id)


class ServiceNotFound(NotFound):
    def __init__(self, service_id: int) -> None:
        super().__init__(f"Service {service_id} not found or inactive", service_id=service_id)


class UserNotFound(NotFound):
    def __init__(self, user_id: int) -> None:
        super().__init__("User not found", user_id=user_id)


class ServiceNotInOrder(NotFound):
    def __init__(self, service_id: int) -> None:
        super().__init__("Service not found in this order", service_id=service_id)


class AccessDenied(BookingError):
    def __init__(self) -> None:
        super().__init__("Access denied")


class Unavailable(BookingError):
    pass


class SeatUnavailable(Unavailable):
    def __init__(self, seat_id: int) -> None:
        super().__init__("Selected seat is not available", seat_id=seat_id)


class ServiceUnavailable(Unavailable):
    def __init__(self, service_id: int) -> None:
        super().__init__("Service is not available", service_id=service_id)


class InsufficientInventory(Unavailable):
    def __init__(self, service_id: int, requested: int, remaining: int) -> None:
        super().__init__(
            f"Only {remaining} left for service {service_id}",
            service_id=service_id,
            requested=requested,
            remaining=remaining,
        )


class DuplicateService(BookingError):
    def __init__(self, names: list[str]) -> None:
        super().__init__("Some services are already added to this order", duplicateServices=names)


class InvalidState(BookingError):
    pass


class InsufficientFunds(BookingError):
    def __init__(self, required: Any, balance: Any) -> None:
        super().__init__("Insufficient wallet balance", required=str(required), balance=str(balance))
