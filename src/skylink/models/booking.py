from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Annotated, Any
from uuid import uuid4

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


Money = Annotated[Decimal, BeforeValidator(to_money)]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, Enum):
    PENDING = "pending"
    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


class SeatType(str, Enum):
    ECONOMY = "economy"
    PREMIUM_ECONOMY = "premium_economy"
    BUSINESS = "business"
    FIRST = "first"


class SeatClass(str, Enum):
    WINDOW = "window"
    AISLE = "aisle"
    MIDDLE = "middle"


class ServicePhase(str, Enum):
    BOOKING = "booking"
    PRE_BOARDING = "pre_boarding"
    IN_FLIGHT = "in_flight"
    ARRIVAL = "arrival"


class TransactionType(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"


class PaymentMethod(str, Enum):
    WALLET = "wallet"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    PAYPAL = "paypal"
    BANK_TRANSFER = "bank_transfer"
    UPI = "upi"
    ONLINE_BOOKING = "online_booking"


class OrderEventType(str, Enum):
    ORDER_CREATED = "order_created"
    ORDER_CONFIRMED = "order_confirmed"
    ORDER_CANCELLED = "order_cancelled"
    SERVICES_ADDED = "services_added"
    SERVICE_REMOVED = "service_removed"
    CHECKED_IN = "checked_in"
    WALLET_DEBITED = "wallet_debited"
    WALLET_CREDITED = "wallet_credited"


class Flight(BaseModel):
    id: int
    flight_number: str
    airline: str
    departure_airport: str
    arrival_airport: str
    departure_time: datetime
    arrival_time: datetime
    duration: str
    aircraft: str
    stops: int = 0
    stop_airports: list[str] = Field(default_factory=list)
    price: Money
    available_seats: int
    total_seats: int
    travel_class: str = "economy"


class Seat(BaseModel):
    id: int
    flight_id: int
    seat_number: str
    seat_type: SeatType
    seat_class: SeatClass
    is_available: bool = True
    is_extra_legroom: bool = False
    price: Money = Decimal("0.00")


class Service(BaseModel):
    id: int
    name: str
    description: str
    category: str
    phase: ServicePhase
    price: Money
    inventory: int = Field(ge=0)
    tag: str | None = None
    is_active: bool = True


class User(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    wallet_balance: Money = Decimal("0.00")


class PassengerInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    date_of_birth: str | None = None
    nationality: str | None = None
    passport_number: str | None = None
    passport_expiry: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class ServiceRequest(BaseModel):
    service_id: int
    quantity: int = Field(default=1, ge=1)


class ServiceLine(BaseModel):
    service_id: int
    name: str
    price: Money
    quantity: int = Field(default=1, ge=1)


class SeatAssignment(BaseModel):
    passenger_index: int
    passenger_name: str | None = None
    seat_id: int | None = None
    seat_number: str | None = None
    seat_type: SeatType | None = None
    seat_class: SeatClass | None = None

    @classmethod
    def for_seat(cls, passenger_index: int, seat: Seat, passenger_name: str | None = None) -> SeatAssignment:
        return cls(
            passenger_index=passenger_index,
            passenger_name=passenger_name,
            seat_id=seat.id,
            seat_number=seat.seat_number,
            seat_type=seat.seat_type,
            seat_class=seat.seat_class,
        )


class SeatCharge(BaseModel):
    seat_id: int
    seat_number: str
    price: Money


class Order(BaseModel):
    id: int | None = None
    order_number: str
    user_id: int
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_method: str | None = None
    payment_details: dict[str, Any] = Field(default_factory=dict)
    flight_id: int | None = None
    seat_id: int | None = None
    fare_price: Money = Decimal("0.00")
    assigned_seats: list[SeatAssignment] = Field(default_factory=list)
    passenger_info: list[PassengerInfo] = Field(default_factory=list)
    selected_services: list[ServiceLine] = Field(default_factory=list)
    seat_charges: list[SeatCharge] = Field(default_factory=list)
    subtotal: Money = Decimal("0.00")
    taxes: Money = Decimal("0.00")
    total: Money = Decimal("0.00")
    amount_paid: Money = Decimal("0.00")
    version: int = 0
    can_check_in: bool = False
    is_checked_in: bool = False
    check_in_time: datetime | None = None
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def passenger_count(self) -> int:
        return max(1, len(self.passenger_info))

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID

    def held_seat_ids(self) -> list[int]:
        seat_ids = [item.seat_id for item in self.assigned_seats if item.seat_id is not None]
        if self.seat_id is not None and self.seat_id not in seat_ids:
            seat_ids.append(self.seat_id)
        return seat_ids


class WalletTransaction(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: int
    type: TransactionType
    amount: Money
    description: str
    balance_after: Money
    order_number: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class BookingHistory(BaseModel):
    id: int
    user_id: int
    service_id: int
    order_id: int
    timestamp: datetime = Field(default_factory=_utcnow)


class OrderEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = Field(default_factory=_utcnow)
    event_type: OrderEventType
    order_number: str | None = None
    user_id: int | None = None
    amount: Decimal | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
