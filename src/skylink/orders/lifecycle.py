from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from threading import Lock
from typing import Any, Iterable, Mapping

from skylink.audit.lineage import AuditStore
from skylink.catalog.reader import CatalogReader
from skylink.db.repositories import BookingHistoryRepository, OrderRepository
from skylink.errors import (
    AccessDenied,
    BookingError,
    DuplicateService,
    InvalidState,
    OrderNotFound,
    SeatUnavailable,
    ServiceNotInOrder,
    ValidationFailed,
)
from skylink.inventory.ledger import InventoryLedger
from skylink.models.booking import (
    BookingHistory,
    Flight,
    Order,
    OrderEvent,
    OrderEventType,
    OrderStatus,
    PassengerInfo,
    PaymentMethod,
    PaymentStatus,
    Seat,
    SeatAssignment,
    SeatCharge,
    ServiceLine,
    ServiceRequest,
)
from skylink.pricing.engine import (
    Totals,
    price_additional_services,
    price_delta,
    price_order,
    price_order_draft,
    price_seat_upgrade,
    price_service_removal,
)
from skylink.wallet.ledger import WalletLedger

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
TERMINAL_STATUSES = {OrderStatus.CANCELLED, OrderStatus.COMPLETED}
SERVICE_PAYMENT_METHODS = {
    PaymentMethod.ONLINE_BOOKING,
    PaymentMethod.BANK_TRANSFER,
    PaymentMethod.UPI,
    PaymentMethod.CREDIT_CARD,
    PaymentMethod.DEBIT_CARD,
    PaymentMethod.WALLET,
}

BOOKING_NOT_FOUND = "Booking not found"
NAME_MISMATCH = "Passenger name does not match"
BOOKING_CANCELLED = "Booking has been cancelled"
ALREADY_CHECKED_IN = "Already checked in for this flight"
CHECK_IN_NOT_OPEN = "Check-in not yet available"
FLIGHT_MISSING = "Flight information not found"


@dataclass
class ServicesAdded:
    order: Order
    added_services: list[ServiceLine]
    payment_details: dict[str, Any]


@dataclass
class ServiceRemoved:
    order: Order
    refund_details: dict[str, Any]


@dataclass
class Eligibility:
    eligible: bool
    message: str
    order: Order | None = None
    flight: Flight | None = None


@dataclass
class CheckInResult:
    order: Order
    message: str
    seat_upgrade: dict[str, Any] | None = None
    payment_processed: dict[str, Any] | None = None


@dataclass
class _Reservations:
    seats: list[int] = field(default_factory=list)
    service_units: list[tuple[int, int]] = field(default_factory=list)
    debited: Decimal = ZERO


@dataclass
class _SeatChange:
    order: Order
    previous_seat_id: int | None = None
    refund: Decimal = ZERO
    seat_upgrade: dict[str, Any] | None = None
    payment_processed: dict[str, Any] | None = None


class OrderLifecycleManager:
    """Owns order rows and drives pricing, inventory and wallet changes for each lifecycle step.

    Every operation validates and reserves before it writes the order, and the
    write only lands if nobody else changed the row since it was read. A lost
    race gives back the reservations and wallet debit taken by that call.
    """

    def __init__(
        self,
        catalog: CatalogReader | None = None,
        inventory: InventoryLedger | None = None,
        wallet: WalletLedger | None = None,
        order_repository: OrderRepository | None = None,
        history_repository: BookingHistoryRepository | None = None,
        audit_store: AuditStore | None = None,
        bus: Any | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.catalog = catalog or CatalogReader()
        self.inventory = inventory or InventoryLedger(audit_store=audit_store)
        self.wallet = wallet or WalletLedger(bus=bus)
        self.order_repository = order_repository or OrderRepository()
        self.history_repository = history_repository or BookingHistoryRepository()
        self.audit_store = audit_store
        self.bus = bus
        self.rng = rng
        self._number_lock = Lock()
        self._last_number = 0

    # -- creation and payment -------------------------------------------------

    def create_order(
        self,
        user_id: int,
        flight_id: int | None,
        passenger_info: Any,
        selected_services: Iterable[Any] | None = None,
        seat_ids: Iterable[int | None] | None = None,
        payment_method: str | None = None,
        draft: bool = False,
    ) -> Order:
        passengers = self._normalize_passengers(passenger_info)
        requests = [self._service_request(item) for item in selected_services or []]
        self._reject_repeated_requests(requests)
        wanted_seats = [seat_id for seat_id in (seat_ids or []) if seat_id]
        if len(wanted_seats) > len(passengers):
            raise ValidationFailed("More seats selected than passengers", seats=len(wanted_seats), passengers=len(passengers))
        if len(set(wanted_seats)) != len(wanted_seats):
            raise ValidationFailed("The same seat was selected twice")

        flight = self.catalog.get_flight(flight_id) if flight_id is not None else None
        if flight_id is not None and flight is None:
            logger.warning("Flight %s not found; order for user %s is created without fare", flight_id, user_id)

        reservations = _Reservations()
        try:
            service_lines = self._reserve_services(requests, reservations)
            seats = self._reserve_explicit_seats(wanted_seats, flight, reservations)
        except BookingError:
            self._rollback(reservations)
            raise

        seat_charges = [
            SeatCharge(seat_id=seat.id, seat_number=seat.seat_number, price=seat.price) for seat in seats if seat.price > ZERO
        ]
        fare_price = flight.price if flight else ZERO
        totals = price_order_draft(fare_price, len(passengers), [charge.price for charge in seat_charges], service_lines)
        order_number = self._next_order_number()

        if seats:
            assignments = [SeatAssignment.for_seat(index, seat) for index, seat in enumerate(seats)]
            assignments.extend(SeatAssignment(passenger_index=index) for index in range(len(seats), len(passengers)))
        elif flight:
            assignments = self.inventory.assign_random_seats(flight.id, len(passengers), rng=self.rng)
        else:
            assignments = []
        assignments = [
            item.model_copy(update={"passenger_name": passengers[item.passenger_index].full_name}) for item in assignments
        ]

        order = Order(
            order_number=order_number,
            user_id=user_id,
            status=OrderStatus.PENDING_PAYMENT if draft else OrderStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            payment_method=payment_method,
            flight_id=flight.id if flight else None,
            seat_id=self._primary_seat(assignments),
            fare_price=fare_price,
            assigned_seats=assignments,
            passenger_info=passengers,
            selected_services=service_lines,
            seat_charges=seat_charges,
            subtotal=totals.subtotal,
            taxes=totals.taxes,
            total=totals.total,
        )
        row = self.order_repository.insert(order.model_dump(mode="json", exclude={"id"}))
        order = Order.model_validate(row)

        for line in service_lines:
            self._record_history(order, line.service_id)
        self._audit(order, "order_created", None, order.status.value, totals.as_fields())
        self._publish(self._event(OrderEventType.ORDER_CREATED, order, order.total, passengers=len(passengers)))
        logger.info("Order %s created with %s passenger(s), total %s", order.order_number, len(passengers), order.total)
        return order

    def complete_payment(
        self,
        order_number: str,
        payment_method: str,
        payment_details: Mapping[str, Any] | None = None,
        user_id: int | None = None,
    ) -> Order:
        order = self._require_order(order_number)
        if user_id is not None and order.user_id != user_id:
            raise AccessDenied()
        if order.status in TERMINAL_STATUSES:
            raise InvalidState(f"Order is {order.status.value} and can no longer be paid", order=order_number)
        if order.is_paid and order.status == OrderStatus.CONFIRMED:
            return order
        method = self._payment_method(payment_method)

        # Services added before payment were already debited.
        due = order.total - order.amount_paid if method == PaymentMethod.WALLET else ZERO
        reservations = _Reservations()
        if due > ZERO:
            self.wallet.debit(order.user_id, due, f"Payment for order {order_number}", order_number)
            reservations.debited = due

        values = {
            "status": OrderStatus.CONFIRMED.value,
            "payment_status": PaymentStatus.PAID.value,
            "can_check_in": True,
            "payment_method": method.value,
            "payment_details": dict(payment_details or {}),
            "amount_paid": str(order.total),
        }
        row = self.order_repository.update_if_version(order.id, order.version, values)
        if row is None:
            self._rollback(reservations, order)
            raise InvalidState("Order changed while the payment was being processed", order=order_number)

        updated = Order.model_validate(row)
        self._audit(
            updated,
            "payment_completed",
            order.status.value,
            updated.status.value,
            {"method": method.value, "charged_to_wallet": str(due)},
        )
        self._publish(self._event(OrderEventType.ORDER_CONFIRMED, updated, updated.total, method=method.value))
        logger.info("Order %s confirmed via %s", order_number, method.value)
        return updated

    # -- services ---------------------------------------------------------------

    def add_services(
        self,
        order_number: str,
        user_id: int,
        services: Iterable[Any],
        payment_method: str = PaymentMethod.ONLINE_BOOKING.value,
    ) -> ServicesAdded:
        requests = [self._service_request(item) for item in services or []]
        if not requests:
            raise ValidationFailed("Services are required")
        method = self._payment_method(payment_method)
        if method not in SERVICE_PAYMENT_METHODS:
            raise ValidationFailed(
                "Invalid payment method",
                validMethods=sorted(item.value for item in SERVICE_PAYMENT_METHODS),
            )
        order = self._require_owned_order(order_number, user_id)
        self._require_mutable(order)

        catalog_services = [self.catalog.require_active_service(request.service_id) for request in requests]
        existing_ids = {line.service_id for line in order.selected_services}
        seen: set[int] = set()
        duplicates = []
        for service in catalog_services:
            if service.id in existing_ids or service.id in seen:
                duplicates.append(service.name)
            seen.add(service.id)
        if duplicates:
            raise DuplicateService(duplicates)

        new_lines = [
            ServiceLine(service_id=service.id, name=service.name, price=service.price, quantity=request.quantity)
            for service, request in zip(catalog_services, requests)
        ]
        candidate = order.model_copy(update={"selected_services": [*order.selected_services, *new_lines]})
        before, after = price_order(order), price_order(candidate)
        charge = price_delta(before, after)
        collect = charge.total > ZERO
        if collect:
            self.wallet.ensure_funds(order.user_id, charge.total)

        reservations = _Reservations()
        try:
            self._reserve_services(requests, reservations)
            if collect:
                self.wallet.debit(
                    order.user_id,
                    charge.total,
                    f"Payment via {method.value} for additional services on order {order_number}",
                    order_number,
                )
                reservations.debited = charge.total
        except BookingError:
            self._rollback(reservations)
            raise

        candidate = candidate.model_copy(update={"amount_paid": order.amount_paid + reservations.debited})
        updated = self._save(order, candidate, after, reservations)
        for line in new_lines:
            self._record_history(updated, line.service_id)

        quote = price_additional_services(new_lines)
        payment_details = {
            "method": method.value,
            "amount": str(charge.total),
            "services": str(quote.amount),
            "taxes": str(charge.tax_amount),
            "charged_to_wallet": collect,
        }
        self._audit(updated, "services_added", order.status.value, updated.status.value, payment_details)
        self._publish(
            *(
                self._event(
                    OrderEventType.SERVICES_ADDED,
                    updated,
                    price_additional_services([line]).total,
                    service_id=line.service_id,
                    quantity=line.quantity,
                )
                for line in new_lines
            )
        )
        logger.info("Order %s: added %s service(s), charged %s", order_number, len(new_lines), reservations.debited)
        return ServicesAdded(order=updated, added_services=new_lines, payment_details=payment_details)

    def remove_service(self, order_number: str, user_id: int, service_id: int) -> ServiceRemoved:
        order = self._require_owned_order(order_number, user_id)
        self._require_mutable(order)
        line = next((item for item in order.selected_services if item.service_id == service_id), None)
        if line is None:
            raise ServiceNotInOrder(service_id)

        removal = price_service_removal(line)
        candidate = order.model_copy(
            update={"selected_services": [item for item in order.selected_services if item.service_id != service_id]}
        )
        before, after = price_order(order), price_order(candidate)
        refund = price_delta(after, before)
        # Only what was actually collected goes back to the wallet.
        credited = min(refund.total, order.amount_paid)
        candidate = candidate.model_copy(update={"amount_paid": order.amount_paid - credited})

        updated = self._save(order, candidate, after)
        self.inventory.release_service_units(line.service_id, line.quantity)
        if credited > ZERO:
            self.wallet.credit(
                order.user_id,
                credited,
                f"Refund for removed service: {line.name} from order {order_number}",
                order_number,
            )

        refund_details = {
            "service_name": line.name,
            "service_price": str(removal.refund_amount),
            "tax_refund": str(refund.tax_amount),
            "total_refund": str(refund.total),
            "credited": str(credited),
            "refund_method": "wallet" if credited > ZERO else "none",
        }
        self._audit(updated, "service_removed", order.status.value, updated.status.value, refund_details)
        self._publish(self._event(OrderEventType.SERVICE_REMOVED, updated, credited, service_id=service_id))
        logger.info("Order %s: removed service %s, refunded %s", order_number, service_id, credited)
        return ServiceRemoved(order=updated, refund_details=refund_details)

    # -- check-in ---------------------------------------------------------------

    def check_eligibility(self, order_number: str, last_name: str) -> Eligibility:
        row = self.order_repository.get_by_number(order_number) if order_number else None
        if row is None:
            return Eligibility(False, BOOKING_NOT_FOUND)
        order = Order.model_validate(row)

        wanted = (last_name or "").strip().lower()
        if not wanted or not any(passenger.last_name.strip().lower() == wanted for passenger in order.passenger_info):
            return Eligibility(False, NAME_MISMATCH)
        if order.status == OrderStatus.CANCELLED:
            return Eligibility(False, BOOKING_CANCELLED)
        if order.is_checked_in:
            return Eligibility(False, ALREADY_CHECKED_IN)
        if not order.can_check_in:
            return Eligibility(False, CHECK_IN_NOT_OPEN)
        flight = self.catalog.get_flight(order.flight_id) if order.flight_id is not None else None
        if flight is None:
            return Eligibility(False, FLIGHT_MISSING)
        return Eligibility(True, "Eligible for check-in", order=order, flight=flight)

    def check_in(
        self,
        order_number: str,
        last_name: str,
        seat_id: int | None = None,
        passenger_index: int = 0,
    ) -> CheckInResult:
        eligibility = self.check_eligibility(order_number, last_name)
        if not eligibility.eligible:
            logger.warning("Check-in refused for %s: %s", order_number, eligibility.message)
            if eligibility.message == BOOKING_NOT_FOUND:
                raise OrderNotFound(order_number)
            raise InvalidState(eligibility.message, order=order_number)
        order = eligibility.order

        reservations = _Reservations()
        change = _SeatChange(order)
        if seat_id is not None:
            change = self._change_seat(order, seat_id, passenger_index, reservations)

        before = price_order(order)
        after = price_order(change.order)
        candidate = change.order.model_copy(update={"is_checked_in": True, "check_in_time": datetime.now(timezone.utc)})
        updated = self._save(order, candidate, after, reservations)
        if change.previous_seat_id is not None:
            self.inventory.release_seat(change.previous_seat_id)
        if change.refund > ZERO:
            self.wallet.credit(
                order.user_id,
                change.refund,
                f"Refund for seat change on order {order_number}",
                order_number,
            )

        payment_processed = change.payment_processed
        if payment_processed:
            message = f"Check-in completed with seat upgrade. Charged ${payment_processed['total']} total."
        else:
            message = "Check-in completed successfully"
        self._audit(
            updated,
            "checked_in",
            order.status.value,
            updated.status.value,
            {"seat_id": updated.seat_id, "charged": str(after.total - before.total)},
        )
        self._publish(self._event(OrderEventType.CHECKED_IN, updated, after.total - before.total, seat_id=updated.seat_id))
        logger.info("Order %s checked in (seat %s)", order_number, updated.seat_id)
        return CheckInResult(
            order=updated,
            message=message,
            seat_upgrade=change.seat_upgrade,
            payment_processed=payment_processed,
        )

    def _change_seat(
        self,
        order: Order,
        seat_id: int,
        passenger_index: int,
        reservations: _Reservations,
    ) -> _SeatChange:
        """Claim the new seat and settle the price difference.

        The passenger's old seat stays held until the order write succeeds. Its
        seat charge is dropped, so moving off a paid seat lowers the total.
        """
        if not 0 <= passenger_index < order.passenger_count:
            raise ValidationFailed("Unknown passenger", passenger_index=passenger_index)
        seat = self.catalog.require_seat(seat_id)
        if order.flight_id is not None and seat.flight_id != order.flight_id:
            raise ValidationFailed("Seat belongs to a different flight", seat_id=seat_id)

        current = next((item for item in order.assigned_seats if item.passenger_index == passenger_index), None)
        previous_seat_id = current.seat_id if current else (order.seat_id if passenger_index == 0 else None)
        if previous_seat_id == seat.id:
            return _SeatChange(order)
        if not seat.is_available:
            raise SeatUnavailable(seat.id)

        charges = [item for item in order.seat_charges if item.seat_id != previous_seat_id]
        if seat.price > ZERO:
            charges.append(SeatCharge(seat_id=seat.id, seat_number=seat.seat_number, price=seat.price))
        passenger_name = order.passenger_info[passenger_index].full_name if order.passenger_info else None
        assignments = [item for item in order.assigned_seats if item.passenger_index != passenger_index]
        assignments.append(SeatAssignment.for_seat(passenger_index, seat, passenger_name))
        assignments.sort(key=lambda item: item.passenger_index)
        candidate = order.model_copy(
            update={
                "assigned_seats": assignments,
                "seat_charges": charges,
                "seat_id": self._primary_seat(assignments),
            }
        )
        charge = price_delta(price_order(order), price_order(candidate))
        if charge.total > ZERO:
            self.wallet.ensure_funds(order.user_id, charge.total)

        self.inventory.reserve_seat(seat.id)
        reservations.seats.append(seat.id)
        if charge.total > ZERO:
            try:
                self.wallet.debit(
                    order.user_id,
                    charge.total,
                    f"Seat upgrade to {seat.seat_number} for order {order.order_number}",
                    order.order_number,
                )
            except BookingError:
                self._rollback(reservations)
                raise
            reservations.debited = charge.total

        refund = min(-charge.total, order.amount_paid) if charge.total < ZERO else ZERO
        candidate = candidate.model_copy(update={"amount_paid": order.amount_paid + reservations.debited - refund})
        change = _SeatChange(candidate, previous_seat_id=previous_seat_id, refund=refund)
        if seat.price <= ZERO:
            return change
        quote = price_seat_upgrade(seat.price)
        change.seat_upgrade = {
            "seat_number": seat.seat_number,
            "seat_type": seat.seat_type.value,
            "seat_class": seat.seat_class.value,
            "is_extra_legroom": seat.is_extra_legroom,
            "cost": str(quote.amount),
        }
        if charge.total > ZERO:
            change.payment_processed = {
                "amount": str(charge.amount),
                "taxes": str(charge.tax_amount),
                "total": str(charge.total),
                "method": "wallet",
            }
        return change

    # -- cancellation -----------------------------------------------------------

    def cancel(self, order_id: int, user_id: int) -> Order:
        row = self.order_repository.get(order_id)
        if row is None:
            raise OrderNotFound(order_id)
        order = Order.model_validate(row)
        if order.user_id != user_id:
            raise AccessDenied()
        if order.status == OrderStatus.CANCELLED:
            raise InvalidState("Order is already cancelled", order=order.order_number)
        if order.status == OrderStatus.COMPLETED:
            raise InvalidState("Completed orders cannot be cancelled", order=order.order_number)

        refund = order.amount_paid
        refunded = order.is_paid or refund > ZERO
        values = {
            "status": OrderStatus.CANCELLED.value,
            "payment_status": (PaymentStatus.REFUNDED if refunded else order.payment_status).value,
            "can_check_in": False,
        }
        row = self.order_repository.update_if_version(order.id, order.version, values)
        if row is None:
            raise InvalidState("Order changed while it was being cancelled", order=order.order_number)
        updated = Order.model_validate(row)

        for seat_id in order.held_seat_ids():
            self.inventory.release_seat(seat_id)
        for line in order.selected_services:
            self.inventory.release_service_units(line.service_id, line.quantity)
        if refund > ZERO:
            self.wallet.credit(order.user_id, refund, f"Refund for cancelled order {order.order_number}", order.order_number)

        self._audit(updated, "order_cancelled", order.status.value, updated.status.value, {"refund": str(refund)})
        self._publish(self._event(OrderEventType.ORDER_CANCELLED, updated, refund))
        logger.info("Order %s cancelled, refunded %s", order.order_number, refund)
        return updated

    # -- reads ------------------------------------------------------------------

    def get_order(self, order_number: str, user_id: int | None = None) -> Order:
        if user_id is None:
            return self._require_order(order_number)
        return self._require_owned_order(order_number, user_id)

    def list_user_orders(self, user_id: int) -> list[Order]:
        return [Order.model_validate(row) for row in self.order_repository.list_by_user(user_id)]

    def booking_history(self, user_id: int) -> list[BookingHistory]:
        return [BookingHistory.model_validate(row) for row in self.history_repository.list_by_user(user_id)]

    # -- helpers ----------------------------------------------------------------

    def _require_order(self, order_number: str) -> Order:
        row = self.order_repository.get_by_number(order_number)
        if row is None:
            raise OrderNotFound(order_number)
        return Order.model_validate(row)

    def _require_owned_order(self, order_number: str, user_id: int) -> Order:
        order = self._require_order(order_number)
        if order.user_id != user_id:
            raise AccessDenied()
        return order

    @staticmethod
    def _require_mutable(order: Order) -> None:
        if order.status in TERMINAL_STATUSES:
            raise InvalidState(f"Order is {order.status.value} and can no longer be changed", order=order.order_number)

    @staticmethod
    def _normalize_passengers(passenger_info: Any) -> list[PassengerInfo]:
        if passenger_info is None:
            raw: list[Any] = []
        elif isinstance(passenger_info, (PassengerInfo, Mapping)):
            raw = [passenger_info]
        else:
            raw = list(passenger_info)
        if not raw:
            raise ValidationFailed("At least one passenger is required")
        try:
            return [item if isinstance(item, PassengerInfo) else PassengerInfo.model_validate(item) for item in raw]
        except ValueError as exc:
            raise ValidationFailed("Passenger details are incomplete", errors=str(exc)) from exc

    @staticmethod
    def _service_request(item: Any) -> ServiceRequest:
        if isinstance(item, ServiceRequest):
            return item
        if isinstance(item, ServiceLine):
            return ServiceRequest(service_id=item.service_id, quantity=item.quantity)
        if isinstance(item, Mapping):
            service_id = item.get("service_id", item.get("serviceId", item.get("id")))
            quantity = item.get("quantity") or 1
            try:
                return ServiceRequest(service_id=service_id, quantity=quantity)
            except ValueError as exc:
                raise ValidationFailed("Invalid service selection", errors=str(exc)) from exc
        if isinstance(item, int):
            return ServiceRequest(service_id=item)
        raise ValidationFailed("Invalid service selection")

    @staticmethod
    def _reject_repeated_requests(requests: list[ServiceRequest]) -> None:
        ids = [request.service_id for request in requests]
        if len(set(ids)) != len(ids):
            raise ValidationFailed("The same service was selected more than once")

    @staticmethod
    def _payment_method(value: Any) -> PaymentMethod:
        try:
            return PaymentMethod(value)
        except ValueError as exc:
            raise ValidationFailed(
                "Invalid payment method",
                validMethods=[item.value for item in PaymentMethod],
            ) from exc

    @staticmethod
    def _primary_seat(assignments: list[SeatAssignment]) -> int | None:
        return next((item.seat_id for item in assignments if item.seat_id is not None), None)

    def _reserve_services(self, requests: list[ServiceRequest], reservations: _Reservations) -> list[ServiceLine]:
        lines = []
        for request in requests:
            service = self.inventory.reserve_service_units(request.service_id, request.quantity)
            reservations.service_units.append((service.id, request.quantity))
            lines.append(ServiceLine(service_id=service.id, name=service.name, price=service.price, quantity=request.quantity))
        return lines

    def _reserve_explicit_seats(
        self,
        seat_ids: list[int],
        flight: Flight | None,
        reservations: _Reservations,
    ) -> list[Seat]:
        seats = []
        for seat_id in seat_ids:
            seat = self.catalog.require_seat(seat_id)
            if flight is not None and seat.flight_id != flight.id:
                raise ValidationFailed("Seat belongs to a different flight", seat_id=seat_id)
            seats.append(self.inventory.reserve_seat(seat_id))
            reservations.seats.append(seat_id)
        return seats

    def _rollback(self, reservations: _Reservations, order: Order | None = None) -> None:
        for seat_id in reservations.seats:
            self.inventory.release_seat(seat_id)
        for service_id, quantity in reservations.service_units:
            self.inventory.release_service_units(service_id, quantity)
        if order is not None and reservations.debited > ZERO:
            self.wallet.credit(
                order.user_id,
                reservations.debited,
                f"Reversal of unapplied charge on order {order.order_number}",
                order.order_number,
            )

    def _next_order_number(self) -> str:
        with self._number_lock:
            candidate = max(int(time.time() * 1000) % 10**8, self._last_number + 1) % 10**8
            while self.order_repository.get_by_number(f"SL{candidate:08d}"):
                candidate = (candidate + 1) % 10**8
            self._last_number = candidate
            return f"SL{candidate:08d}"

    def _save(self, order: Order, candidate: Order, totals: Totals, reservations: _Reservations | None = None) -> Order:
        candidate = candidate.model_copy(update={"subtotal": totals.subtotal, "taxes": totals.taxes, "total": totals.total})
        values = candidate.model_dump(mode="json", exclude={"id", "version"})
        row = self.order_repository.update_if_version(order.id, order.version, values)
        if row is None:
            logger.warning("Order %s changed concurrently; undoing this update", order.order_number)
            if reservations is not None:
                self._rollback(reservations, order)
            raise InvalidState("Order changed while it was being updated", order=order.order_number)
        return Order.model_validate(row)

    def _record_history(self, order: Order, service_id: int) -> None:
        entry = BookingHistory(id=0, user_id=order.user_id, service_id=service_id, order_id=order.id)
        self.history_repository.insert(entry.model_dump(mode="json", exclude={"id"}))

    def _audit(
        self,
        order: Order,
        action: str,
        from_status: str | None,
        to_status: str | None,
        detail: dict[str, Any],
    ) -> None:
        if self.audit_store:
            self.audit_store.log(
                action=action,
                component="order_lifecycle",
                order_number=order.order_number,
                user_id=order.user_id,
                from_status=from_status,
                to_status=to_status,
                output_reference=order.order_number,
                detail=detail,
            )

    @staticmethod
    def _event(event_type: OrderEventType, order: Order, amount: Decimal | None, **metadata: Any) -> OrderEvent:
        return OrderEvent(
            event_type=event_type,
            order_number=order.order_number,
            user_id=order.user_id,
            amount=amount,
            metadata={"status": order.status.value, "total": str(order.total), **metadata},
        )

    def _publish(self, *events: OrderEvent) -> None:
        if self.bus is None or not events:
            return
        self.bus.publish_many(events)
