from .repositories import (
    AuditRepository,
    BookingHistoryRepository,
    FlightRepository,
    OrderRepository,
    SeatRepository,
    ServiceRepository,
    StorageBackend,
    UserRepository,
    WalletTransactionRepository,
    get_storage_backend,
    reset_memory_backend,
)

__all__ = [
    "AuditRepository",
    "BookingHistoryRepository",
    "FlightRepository",
    "OrderRepository",
    "SeatRepository",
    "ServiceRepository",
    "StorageBackend",
    "UserRepository",
    "WalletTransactionRepository",
    "get_storage_backend",
    "reset_memory_backend",
]
