from __future__ import annotations

import os
from dataclasses import asdict
from pathlib import Path
from threading import Lock
from typing import Any

from skylink.audit.lineage import AuditStore
from skylink.bus.factory import build_order_bus
from skylink.catalog.reader import CatalogReader
from skylink.db.repositories import (
    BookingHistoryRepository,
    FlightRepository,
    OrderRepository,
    SeatRepository,
    ServiceRepository,
    UserRepository,
    WalletTransactionRepository,
    get_storage_backend,
    reset_memory_backend,
)
from skylink.errors import FlightNotFound, ServiceNotFound
from skylink.inventory.ledger import InventoryLedger
from skylink.models.booking import Order
from skylink.orders.lifecycle import OrderLifecycleManager
from skylink.pricing.engine import order_line_items, price_order
from skylink.seed import seed_demo_data
from skylink.wallet.ledger import WalletLedger


def _order_payload(order: Order) -> dict[str, Any]:
    payload = order.model_dump(mode="json")
    payload["line_items"] = [
        {"kind": item.kind, "reference": item.reference, "unit_price": str(item.unit_price), "quantity": item.quantity}
        for item in order_line_items(order)
    ]
    return payload


class SkyLinkRuntime:
    def __init__(self, data_dir: Path) -> None:
        self.data_dir = data_dir
        self.events, self.bus = build_order_bus()
        self._build()
        self._seeded = False
        self._seed_lock = Lock()

    def _build(self) -> None:
        self.flight_repo = FlightRepository()
        self.seat_repo = SeatRepository()
        self.service_repo = ServiceRepository()
        self.user_repo = UserRepository()
        self.audit = AuditStore()
        self.catalog = CatalogReader(self.flight_repo, self.seat_repo, self.service_repo)
        self.inventory = InventoryLedger(self.seat_repo, self.service_repo, audit_store=self.audit)
        self.wallet = WalletLedger(self.user_repo, WalletTransactionRepository(), bus=self.bus)
        self.orders = OrderLifecycleManager(
            catalog=self.catalog,
            inventory=self.inventory,
            wallet=self.wallet,
            order_repository=OrderRepository(),
            history_repository=BookingHistoryRepository(),
            audit_store=self.audit,
            bus=self.bus,
        )

    def refresh(self, force: bool = True) -> None:
        with self._seed_lock:
            if self._seeded and not force:
                return
            if get_storage_backend().value == "memory" and force:
                reset_memory_backend()
                self.events.clear()
            seed_demo_data(self.data_dir, self.flight_repo, self.seat_repo, self.service_repo, self.user_repo)
            self._seeded = True

    def ensure_seeded(self) -> None:
        if self._seeded:
            return
        self.refresh(force=False)

    def close(self) -> None:
        close = getattr(self.bus, "close", None)
        if callable(close):
            close()

    # -- catalog

    def flight_detail(self, flight_id: int) -> dict[str, Any]:
        self.ensure_seeded()
        return self.catalog.require_flight(flight_id).model_dump(mode="json")

    def flight_seats(self, flight_id: int) -> list[dict[str, Any]]:
        self.ensure_seeded()
        if self.catalog.get_flight(flight_id) is None:
            raise FlightNotFound(flight_id)
        return [seat.model_dump(mode="json") for seat in self.catalog.list_flight_seats(flight_id)]

    def services(self, phase: str | None = None) -> list[dict[str, Any]]:
        self.ensure_seeded()
        return [service.model_dump(mode="json") for service in self.catalog.list_services(phase=phase)]

    def service_detail(self, service_id: int) -> dict[str, Any]:
        self.ensure_seeded()
        service = self.catalog.get_service(service_id)
        if service is None:
            raise ServiceNotFound(service_id)
        return service.model_dump(mode="json")

    # -- orders

    def create_order(self, user_id: int, payload: dict[str, Any], draft: bool = False) -> dict[str, Any]:
        self.ensure_seeded()
        order = self.orders.create_order(
            user_id=user_id,
            flight_id=payload.get("flight_id"),
            passenger_info=payload.get("passenger_info"),
            selected_services=payload.get("selected_services"),
            seat_ids=payload.get("seat_ids"),
            payment_method=payload.get("payment_method"),
            draft=draft,
        )
        return _order_payload(order)

    def complete_payment(
        self,
        order_number: str,
        user_id: int,
        payment_method: str,
        payment_details: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        self.ensure_seeded()
        order = self.orders.complete_payment(order_number, payment_method, payment_details, user_id=user_id)
        return _order_payload(order)

    def order_detail(self, order_number: str, user_id: int) -> dict[str, Any]:
        self.ensure_seeded()
        order = self.orders.get_order(order_number, user_id)
        payload = _order_payload(order)
        payload["pricing"] = price_order(order).as_fields()
        return payload

    def user_orders(self, user_id: int) -> list[dict[str, Any]]:
        self.ensure_seeded()
        return [_order_payload(order) for order in self.orders.list_user_orders(user_id)]

    def add_services(
        self,
        order_number: str,
        user_id: int,
        services: list[Any],
        payment_method: str,
    ) -> dict[str, Any]:
        self.ensure_seeded()
        result = self.orders.add_services(order_number, user_id, services, payment_method)
        return {
            "message": "Services added successfully",
            "order": _order_payload(result.order),
            "added_services": [line.model_dump(mode="json") for line in result.added_services],
            "payment_details": result.payment_details,
        }

    def remove_service(self, order_number: str, user_id: int, service_id: int) -> dict[str, Any]:
        self.ensure_seeded()
        result = self.orders.remove_service(order_number, user_id, service_id)
        return {
            "message": "Service removed successfully",
            "order": _order_payload(result.order),
            "refund_details": result.refund_details,
        }

    def cancel_order(self, order_id: int, user_id: int) -> dict[str, Any]:
        self.ensure_seeded()
        order = self.orders.cancel(order_id, user_id)
        return {"message": "Order cancelled successfully", "order": _order_payload(order)}

    def order_audit_history(self, order_number: str, user_id: int) -> list[dict[str, Any]]:
        self.ensure_seeded()
        self.orders.get_order(order_number, user_id)
        return [asdict(record) for record in self.audit.get_history(order_number)]

    # -- check-in

    def check_eligibility(self, order_number: str, last_name: str) -> dict[str, Any]:
        self.ensure_seeded()
        result = self.orders.check_eligibility(order_number, last_name)
        payload: dict[str, Any] = {"eligible": result.eligible, "message": result.message}
        if result.eligible:
            payload["order"] = _order_payload(result.order)
            payload["flight"] = result.flight.model_dump(mode="json")
        return payload

    def check_in(
        self,
        order_number: str,
        last_name: str,
        seat_id: int | None = None,
        passenger_index: int = 0,
    ) -> dict[str, Any]:
        self.ensure_seeded()
        result = self.orders.check_in(order_number, last_name, seat_id=seat_id, passenger_index=passenger_index)
        return {
            "message": result.message,
            "order": _order_payload(result.order),
            "seat_upgrade": result.seat_upgrade,
            "payment_processed": result.payment_processed,
        }

    # -- users

    def wallet_summary(self, user_id: int) -> dict[str, Any]:
        self.ensure_seeded()
        user = self.wallet.get_user(user_id)
        return {
            "user_id": user.id,
            "wallet_balance": str(user.wallet_balance),
            "transactions": [txn.model_dump(mode="json") for txn in self.wallet.transactions(user_id)],
        }

    def booking_history(self, user_id: int) -> list[dict[str, Any]]:
        self.ensure_seeded()
        return [entry.model_dump(mode="json") for entry in self.orders.booking_history(user_id)]

    def events_payload(self) -> dict[str, Any]:
        topics = {
            topic: {"count": len(events), "events": [event.model_dump(mode="json") for event in events]}
            for topic, events in sorted(self.events.topics.items())
        }
        return {
            "bus_backend": os.getenv("SKYLINK_BUS_BACKEND", "memory").strip().lower(),
            "storage_backend": get_storage_backend().value,
            "topics": topics,
        }
