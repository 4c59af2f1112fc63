"""Money arithmetic for orders.

Every amount is a ``Decimal`` rounded half-up to cents. Nothing in here touches
storage or raises; callers validate inputs first.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable

from skylink.models.booking import Order, to_money

TAX_RATE = Decimal("0.12")
ZERO = Decimal("0.00")


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    taxes: Decimal
    total: Decimal

    def as_fields(self) -> dict[str, str]:
        return {"subtotal": str(self.subtotal), "taxes": str(self.taxes), "total": str(self.total)}


@dataclass(frozen=True)
class Quote:
    amount: Decimal
    tax_amount: Decimal
    total: Decimal


@dataclass(frozen=True)
class Refund:
    refund_amount: Decimal
    tax_refund: Decimal
    total_refund: Decimal


@dataclass(frozen=True)
class LineItem:
    kind: str
    reference: str
    unit_price: Decimal
    quantity: int = 1

    @property
    def amount(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)


def tax_on(amount: Decimal) -> Decimal:
    return (Decimal(amount) * TAX_RATE).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _quantity(line: Any) -> int:
    return int(getattr(line, "quantity", None) or 1)


def _line_amount(line: Any) -> Decimal:
    return to_money(to_money(line.price) * _quantity(line))


def recompute_totals(line_items: Iterable[LineItem]) -> Totals:
    subtotal = to_money(sum((item.amount for item in line_items), ZERO))
    taxes = tax_on(subtotal)
    return Totals(subtotal=subtotal, taxes=taxes, total=subtotal + taxes)


def price_order_draft(
    flight_price: Decimal,
    passenger_count: int,
    seat_upgrade_fees: Iterable[Decimal],
    service_lines: Iterable[Any],
) -> Totals:
    items = [LineItem("fare", "flight", to_money(flight_price), max(1, passenger_count))]
    items.extend(LineItem("seat", f"seat-{index}", to_money(fee)) for index, fee in enumerate(seat_upgrade_fees))
    items.extend(
        LineItem("service", str(getattr(line, "service_id", index)), to_money(line.price), _quantity(line))
        for index, line in enumerate(service_lines)
    )
    return recompute_totals(items)


def price_additional_services(service_lines: Iterable[Any]) -> Quote:
    amount = to_money(sum((_line_amount(line) for line in service_lines), ZERO))
    tax_amount = tax_on(amount)
    return Quote(amount=amount, tax_amount=tax_amount, total=amount + tax_amount)


def price_service_removal(removed_line: Any) -> Refund:
    refund_amount = _line_amount(removed_line)
    tax_refund = tax_on(refund_amount)
    return Refund(refund_amount=refund_amount, tax_refund=tax_refund, total_refund=refund_amount + tax_refund)


def price_seat_upgrade(seat_price: Decimal) -> Quote:
    cost = to_money(seat_price)
    tax_amount = tax_on(cost)
    return Quote(amount=cost, tax_amount=tax_amount, total=cost + tax_amount)


def order_line_items(order: Order) -> list[LineItem]:
    """Rebuild the priced lines an order is made of: fare per passenger, seat charges, services."""
    items = [LineItem("fare", f"flight-{order.flight_id}", order.fare_price, order.passenger_count)]
    items.extend(LineItem("seat", f"seat-{charge.seat_id}", charge.price) for charge in order.seat_charges)
    items.extend(
        LineItem("service", f"service-{line.service_id}", line.price, line.quantity) for line in order.selected_services
    )
    return items


def price_order(order: Order) -> Totals:
    return recompute_totals(order_line_items(order))


def price_delta(before: Totals, after: Totals) -> Quote:
    """Signed change between two totals; positive means the customer owes more."""
    return Quote(
        amount=after.subtotal - before.subtotal,
        tax_amount=after.taxes - before.taxes,
        total=after.total - before.total,
    )
