from __future__ import annotations

import os
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from threading import RLock
from typing import Any

from skylink.db.supabase_client import get_client

CAS_ATTEMPTS = 5


class StorageBackend(str, Enum):
    MEMORY = "memory"
    SUPABASE = "supabase"


def get_storage_backend() -> StorageBackend:
    raw = os.getenv("SKYLINK_STORAGE_BACKEND", StorageBackend.MEMORY.value).strip().lower()
    if raw == StorageBackend.SUPABASE.value:
        return StorageBackend.SUPABASE
    return StorageBackend.MEMORY


@dataclass
class _MemoryState:
    users: dict[int, dict[str, Any]] = field(default_factory=dict)
    flights: dict[int, dict[str, Any]] = field(default_factory=dict)
    seats: dict[int, dict[str, Any]] = field(default_factory=dict)
    services: dict[int, dict[str, Any]] = field(default_factory=dict)
    orders: dict[int, dict[str, Any]] = field(default_factory=dict)
    booking_history: list[dict[str, Any]] = field(default_factory=list)
    wallet_transactions: list[dict[str, Any]] = field(default_factory=list)
    audit_log: list[dict[str, Any]] = field(default_factory=list)
    sequences: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    lock: RLock = field(default_factory=RLock)

    def next_id(self, table: str) -> int:
        with self.lock:
            self.sequences[table] += 1
            return self.sequences[table]

    def reset(self) -> None:
        with self.lock:
            self.users.clear()
            self.flights.clear()
            self.seats.clear()
            self.services.clear()
            self.orders.clear()
            self.booking_history.clear()
            self.wallet_transactions.clear()
            self.audit_log.clear()
            self.sequences.clear()


_MEMORY_STATE = _MemoryState()


class _BaseRepository:
    table = ""
    reset_filter: tuple[str, Any] = ("id", 0)

    def __init__(self) -> None:
        self.backend = get_storage_backend()
        self.client = get_client() if self.backend == StorageBackend.SUPABASE else None

    def _rows(self) -> dict[int, dict[str, Any]]:
        return getattr(_MEMORY_STATE, self.table)

    def reset(self) -> None:
        if self.backend == StorageBackend.MEMORY:
            self._rows().clear()
            _MEMORY_STATE.sequences.pop(self.table, None)
            return
        column, value = self.reset_filter
        self.client.table(self.table).delete().neq(column, value).execute()

    def insert(self, row: dict[str, Any]) -> dict[str, Any]:
        if self.backend == StorageBackend.MEMORY:
            with _MEMORY_STATE.lock:
                if row.get("id") is None:
                    row = {**row, "id": _MEMORY_STATE.next_id(self.table)}
                else:
                    sequence = _MEMORY_STATE.sequences[self.table]
                    _MEMORY_STATE.sequences[self.table] = max(sequence, int(row["id"]))
                self._rows()[int(row["id"])] = row
                return dict(row)
        payload = {key: value for key, value in row.items() if not (key == "id" and value is None)}
        response = self.client.table(self.table).insert(payload).execute()
        return (response.data or [row])[0]

    def get(self, row_id: int) -> dict[str, Any] | None:
        if self.backend == StorageBackend.MEMORY:
            row = self._rows().get(int(row_id))
            return dict(row) if row else None
        response = self.client.table(self.table).select("*").eq("id", row_id).limit(1).execute()
        rows = response.data or []
        return rows[0] if rows else None

    def update(self, row_id: int, values: dict[str, Any]) -> dict[str, Any] | None:
        if self.backend == StorageBackend.MEMORY:
            with _MEMORY_STATE.lock:
                row = self._rows().get(int(row_id))
                if row is None:
                    return None
                row.update(values)
                return dict(row)
        response = self.client.table(self.table).update(values).eq("id", row_id).execute()
        rows = response.data or []
        return rows[0] if rows else None

    def all_rows(self) -> list[dict[str, Any]]:
        if self.backend == StorageBackend.MEMORY:
            return [dict(row) for row in self._rows().values()]
        response = self.client.table(self.table).select("*").execute()
        return response.data or []


class UserRepository(_BaseRepository):
    table = "users"

    def adjust_balance(self, user_id: int, delta: Decimal, floor: Decimal | None = None) -> Decimal | None:
        """Apply ``delta`` to the wallet; return the new balance, or None when it would fall below ``floor``."""
        if self.backend == StorageBackend.MEMORY:
            with _MEMORY_STATE.lock:
                row = _MEMORY_STATE.users.get(int(user_id))
                if row is None:
                    raise KeyError("User not found")
                balance = (Decimal(str(row.get("wallet_balance") or "0")) + delta).quantize(Decimal("0.01"))
                if floor is not None and balance < floor:
                    return None
                row["wallet_balance"] = str(balance)
                return balance
        for _ in range(CAS_ATTEMPTS):
            row = self.get(user_id)
            if row is None:
                raise KeyError("User not found")
            current = str(row.get("wallet_balance") or "0.00")
            balance = (Decimal(current) + delta).quantize(Decimal("0.01"))
            if floor is not None and balance < floor:
                return None
            response = (
                self.client.table("users")
                .update({"wallet_balance": str(balance)})
                .eq("id", user_id)
                .eq("wallet_balance", current)
                .execute()
            )
            if response.data:
                return balance
        raise RuntimeError("Wallet balance update kept conflicting; retry the operation")


class FlightRepository(_BaseRepository):
    table = "flights"

    def any_exists(self) -> bool:
        if self.backend == StorageBackend.MEMORY:
            return bool(_MEMORY_STATE.flights)
        response = self.client.table("flights").select("id").limit(1).execute()
        return bool(response.data)


class SeatRepository(_BaseRepository):
    table = "seats"

    def list_by_flight(self, flight_id: int) -> list[dict[str, Any]]:
        if self.backend == StorageBackend.MEMORY:
            rows = [dict(row) for row in _MEMORY_STATE.seats.values() if row["flight_id"] == flight_id]
            return sorted(rows, key=lambda row: row["id"])
        response = self.client.table("seats").select("*").eq("flight_id", flight_id).order("id").execute()
        return response.data or []

    def claim(self, seat_id: int) -> bool:
        """Mark the seat unavailable only if it is currently available, as one step."""
        if self.backend == StorageBackend.MEMORY:
            with _MEMORY_STATE.lock:
                row = _MEMORY_STATE.seats.get(int(seat_id))
                if row is None or not row.get("is_available", True):
                    return False
                row["is_available"] = False
                return True
        response = (
            self.client.table("seats")
            .update({"is_available": False})
            .eq("id", seat_id)
            .eq("is_available", True)
            .execute()
        )
        return bool(response.data)

    def release(self, seat_id: int) -> None:
        self.update(seat_id, {"is_available": True})


class ServiceRepository(_BaseRepository):
    table = "services"

    def take_units(self, service_id: int, quantity: int) -> bool:
        """Decrement inventory only if the service is active and has ``quantity`` units left."""
        if self.backend == StorageBackend.MEMORY:
            with _MEMORY_STATE.lock:
                row = _MEMORY_STATE.services.get(int(service_id))
                if row is None or not row.get("is_active", True) or int(row["inventory"]) < quantity:
                    return False
                row["inventory"] = int(row["inventory"]) - quantity
                return True
        for _ in range(CAS_ATTEMPTS):
            row = self.get(service_id)
            if row is None or not row.get("is_active", True) or int(row["inventory"]) < quantity:
                return False
            current = int(row["inventory"])
            response = (
                self.client.table("services")
                .update({"inventory": current - quantity})
                .eq("id", service_id)
                .eq("inventory", current)
                .execute()
            )
            if response.data:
                return True
        raise RuntimeError("Service inventory update kept conflicting; retry the operation")

    def return_units(self, service_id: int, quantity: int) -> None:
        if self.backend == StorageBackend.MEMORY:
            with _MEMORY_STATE.lock:
                row = _MEMORY_STATE.services.get(int(service_id))
                if row is not None:
                    row["inventory"] = int(row["inventory"]) + quantity
            return
        for _ in range(CAS_ATTEMPTS):
            row = self.get(service_id)
            if row is None:
                return
            current = int(row["inventory"])
            response = (
                self.client.table("services")
                .update({"inventory": current + quantity})
                .eq("id", service_id)
                .eq("inventory", current)
                .execute()
            )
            if response.data:
                return
        raise RuntimeError("Service inventory update kept conflicting; retry the operation")


class OrderRepository(_BaseRepository):
    table = "orders"

    def get_by_number(self, order_number: str) -> dict[str, Any] | None:
        if self.backend == StorageBackend.MEMORY:
            for row in _MEMORY_STATE.orders.values():
                if row["order_number"] == order_number:
                    return dict(row)
            return None
        response = self.client.table("orders").select("*").eq("order_number", order_number).limit(1).execute()
        rows = response.data or []
        return rows[0] if rows else None

    def update_if_version(self, order_id: int, expected_version: int, values: dict[str, Any]) -> dict[str, Any] | None:
        """Apply ``values`` and bump the version only while the row is still at ``expected_version``.

        None means another writer changed the order since it was read.
        """
        values = {**values, "version": expected_version + 1}
        if self.backend == StorageBackend.MEMORY:
            with _MEMORY_STATE.lock:
                row = _MEMORY_STATE.orders.get(int(order_id))
                if row is None or int(row.get("version") or 0) != expected_version:
                    return None
                row.update(values)
                return dict(row)
        response = (
            self.client.table("orders").update(values).eq("id", order_id).eq("version", expected_version).execute()
        )
        rows = response.data or []
        return rows[0] if rows else None

    def list_by_user(self, user_id: int) -> list[dict[str, Any]]:
        if self.backend == StorageBackend.MEMORY:
            rows = [dict(row) for row in _MEMORY_STATE.orders.values() if row["user_id"] == user_id]
            return sorted(rows, key=lambda row: row["id"])
        response = self.client.table("orders").select("*").eq("user_id", user_id).order("id").execute()
        return response.data or []


class _AppendOnlyRepository(_BaseRepository):
    def _rows(self) -> list[dict[str, Any]]:  # type: ignore[override]
        return getattr(_MEMORY_STATE, self.table)

    def insert(self, row: dict[str, Any]) -> dict[str, Any]:
        if self.backend == StorageBackend.MEMORY:
            with _MEMORY_STATE.lock:
                if row.get("id") is None:
                    row = {**row, "id": _MEMORY_STATE.next_id(self.table)}
                self._rows().append(row)
                return dict(row)
        return super().insert(row)

    def get(self, row_id: Any) -> dict[str, Any] | None:
        if self.backend == StorageBackend.MEMORY:
            for row in self._rows():
                if row["id"] == row_id:
                    return dict(row)
            return None
        return super().get(row_id)

    def update(self, row_id: Any, values: dict[str, Any]) -> dict[str, Any] | None:
        raise TypeError(f"{self.table} is append-only")

    def all_rows(self) -> list[dict[str, Any]]:
        if self.backend == StorageBackend.MEMORY:
            return [dict(row) for row in self._rows()]
        return super().all_rows()

    def _filter(self, column: str, value: Any, order_by: str) -> list[dict[str, Any]]:
        if self.backend == StorageBackend.MEMORY:
            return [dict(row) for row in self._rows() if row.get(column) == value]
        response = self.client.table(self.table).select("*").eq(column, value).order(order_by).execute()
        return response.data or []


class BookingHistoryRepository(_AppendOnlyRepository):
    table = "booking_history"

    def list_by_user(self, user_id: int) -> list[dict[str, Any]]:
        return self._filter("user_id", user_id, "timestamp")


class WalletTransactionRepository(_AppendOnlyRepository):
    table = "wallet_transactions"
    reset_filter = ("description", "")

    def list_by_user(self, user_id: int) -> list[dict[str, Any]]:
        return self._filter("user_id", user_id, "created_at")


class AuditRepository(_AppendOnlyRepository):
    table = "audit_log"
    reset_filter = ("action", "")

    def insert(self, row: dict[str, Any]) -> dict[str, Any]:
        if self.backend != StorageBackend.MEMORY:
            return super().insert(row)
        with _MEMORY_STATE.lock:
            stored = super().insert(row)
            _MEMORY_STATE.audit_log.sort(key=lambda item: item["timestamp"])
        return stored

    def get_by_order(self, order_number: str) -> list[dict[str, Any]]:
        return self._filter("order_number", order_number, "timestamp")

    def get_by_output_reference(self, output_reference: str) -> list[dict[str, Any]]:
        return self._filter("output_reference", output_reference, "timestamp")


def reset_memory_backend() -> None:
    _MEMORY_STATE.reset()
