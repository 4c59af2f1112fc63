from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from skylink.errors import (
    AccessDenied,
    BookingError,
    DuplicateService,
    InsufficientFunds,
    InvalidState,
    NotFound,
    Unavailable,
    ValidationFailed,
)
from skylink.models.booking import PassengerInfo, PaymentMethod, ServiceRequest
from skylink.runtime import SkyLinkRuntime

logging.basicConfig(
    level=os.getenv("SKYLINK_LOG_LEVEL", "INFO").strip().upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    runtime.close()


app = FastAPI(title="SkyLink Booking API", version="0.1.0", lifespan=lifespan)


def _cors_origins() -> list[str]:
    raw = os.getenv("SKYLINK_CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173")
    parsed = [origin.strip() for origin in raw.split(",") if origin.strip()]
    if "*" in parsed:
        return ["*"]
    return parsed


app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _seed_data_dir() -> Path:
    return Path(__file__).resolve().parents[2] / "data" / "seed"


runtime = SkyLinkRuntime(_seed_data_dir())

STATUS_BY_ERROR: list[tuple[type[BookingError], int]] = [
    (NotFound, 404),
    (AccessDenied, 403),
    (InsufficientFunds, 402),
    (Unavailable, 409),
    (DuplicateService, 409),
    (InvalidState, 409),
    (ValidationFailed, 400),
]


def status_for(exc: BookingError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    status_code = status_for(exc)
    logger.warning("%s %s -> %s: %s", request.method, request.url.path, status_code, exc.message)
    return JSONResponse(status_code=status_code, content={"detail": exc.to_payload()})


def _caller(x_user_id: int | None) -> int:
    if x_user_id is None:
        raise HTTPException(status_code=401, detail={"message": "Authentication required"})
    return x_user_id


def _same_user(x_user_id: int | None, user_id: int) -> int:
    caller = _caller(x_user_id)
    if caller != user_id:
        raise AccessDenied()
    return caller


class CreateOrderRequest(BaseModel):
    flight_id: int | None = None
    passenger_info: list[PassengerInfo] | PassengerInfo
    selected_services: list[ServiceRequest] = Field(default_factory=list)
    seat_ids: list[int] = Field(default_factory=list)
    payment_method: str | None = None


class CompletePaymentRequest(BaseModel):
    payment_method: str
    payment_details: dict[str, Any] = Field(default_factory=dict)


class AddServicesRequest(BaseModel):
    services: list[ServiceRequest]
    payment_method: str = PaymentMethod.ONLINE_BOOKING.value


class RemoveServiceRequest(BaseModel):
    service_id: int


class EligibilityRequest(BaseModel):
    order_number: str
    last_name: str


class CheckInRequest(BaseModel):
    order_number: str
    last_name: str
    seat_id: int | None = None
    passenger_index: int = 0


@app.get("/")
def root() -> dict[str, str]:
    return {"service": "skylink-booking-api", "status": "ok"}


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api/flights/{flight_id}")
def get_flight(flight_id: int) -> dict[str, Any]:
    return runtime.flight_detail(flight_id)


@app.get("/api/flights/{flight_id}/seats")
def get_flight_seats(flight_id: int) -> list[dict[str, Any]]:
    return runtime.flight_seats(flight_id)


@app.get("/api/services")
def get_services(phase: str | None = None) -> list[dict[str, Any]]:
    try:
        return runtime.services(phase=phase)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail={"message": f"Unknown phase {phase}"}) from exc


@app.get("/api/services/{service_id}")
def get_service(service_id: int) -> dict[str, Any]:
    return runtime.service_detail(service_id)


def _create(payload: CreateOrderRequest, x_user_id: int | None, draft: bool) -> dict[str, Any]:
    return runtime.create_order(_caller(x_user_id), payload.model_dump(), draft=draft)


@app.post("/api/orders", status_code=201)
def create_order(payload: CreateOrderRequest, x_user_id: int | None = Header(default=None)) -> dict[str, Any]:
    return _create(payload, x_user_id, draft=False)


@app.post("/api/orders/create-draft", status_code=201)
def create_draft_order(payload: CreateOrderRequest, x_user_id: int | None = Header(default=None)) -> dict[str, Any]:
    return _create(payload, x_user_id, draft=True)


@app.post("/api/orders/{order_number}/complete-payment")
def complete_payment(
    order_number: str,
    payload: CompletePaymentRequest,
    x_user_id: int | None = Header(default=None),
) -> dict[str, Any]:
    return runtime.complete_payment(
        order_number,
        _caller(x_user_id),
        payload.payment_method,
        payload.payment_details,
    )


@app.get("/api/orders/user/{user_id}")
def get_user_orders(user_id: int, x_user_id: int | None = Header(default=None)) -> list[dict[str, Any]]:
    return runtime.user_orders(_same_user(x_user_id, user_id))


@app.get("/api/orders/{order_number}")
def get_order(order_number: str, x_user_id: int | None = Header(default=None)) -> dict[str, Any]:
    return runtime.order_detail(order_number, _caller(x_user_id))


@app.get("/api/orders/{order_number}/audit")
def get_order_audit(order_number: str, x_user_id: int | None = Header(default=None)) -> list[dict[str, Any]]:
    return runtime.order_audit_history(order_number, _caller(x_user_id))


@app.post("/api/orders/{order_number}/add-services")
def add_services(
    order_number: str,
    payload: AddServicesRequest,
    x_user_id: int | None = Header(default=None),
) -> dict[str, Any]:
    return runtime.add_services(
        order_number,
        _caller(x_user_id),
        [item.model_dump() for item in payload.services],
        payload.payment_method,
    )


@app.post("/api/orders/{order_number}/remove-service")
def remove_service(
    order_number: str,
    payload: RemoveServiceRequest,
    x_user_id: int | None = Header(default=None),
) -> dict[str, Any]:
    return runtime.remove_service(order_number, _caller(x_user_id), payload.service_id)


@app.delete("/api/orders/{order_id}")
def cancel_order(order_id: int, x_user_id: int | None = Header(default=None)) -> dict[str, Any]:
    return runtime.cancel_order(order_id, _caller(x_user_id))


@app.post("/api/check-in/eligibility")
def check_in_eligibility(payload: EligibilityRequest) -> dict[str, Any]:
    return runtime.check_eligibility(payload.order_number, payload.last_name)


@app.post("/api/check-in/complete")
def complete_check_in(payload: CheckInRequest) -> dict[str, Any]:
    return runtime.check_in(
        payload.order_number,
        payload.last_name,
        seat_id=payload.seat_id,
        passenger_index=payload.passenger_index,
    )


@app.get("/api/users/{user_id}/wallet")
def get_wallet(user_id: int, x_user_id: int | None = Header(default=None)) -> dict[str, Any]:
    return runtime.wallet_summary(_same_user(x_user_id, user_id))


@app.get("/api/users/{user_id}/booking-history")
def get_booking_history(user_id: int, x_user_id: int | None = Header(default=None)) -> list[dict[str, Any]]:
    return runtime.booking_history(_same_user(x_user_id, user_id))


@app.get("/api/events")
def get_events() -> dict[str, Any]:
    return runtime.events_payload()
