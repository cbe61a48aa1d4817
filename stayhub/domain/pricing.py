"""Cost composition for room selections, commissions and booking categories."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Mapping, Optional, Sequence

from stayhub.domain.models import (
    ZERO,
    BookingCategory,
    PaymentStatus,
    PriceBreakdown,
    PropertyType,
    RoomSelection,
    StayRange,
)


CENT = Decimal("0.01")
HUNDRED = Decimal("100")
SECONDS_PER_DAY = 24 * 60 * 60
DEFAULT_OCCUPANCY_PER_ROOM = 2


def money(value: Decimal | int | float | str) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Discount:
    """Flat amount entered by staff, or a percentage of the subtotal."""

    value: Decimal = ZERO
    is_percentage: bool = False

    def amount_for(self, subtotal: Decimal) -> Decimal:
        if self.is_percentage:
            return money(subtotal * self.value / HUNDRED)
        return money(self.value)


NO_DISCOUNT = Discount()


@dataclass(frozen=True)
class PricingRequest:
    category: BookingCategory
    selections: Sequence[RoomSelection]
    stay_range: StayRange
    property_types: Mapping[int, PropertyType]
    occupants: int
    commission_percentage: Optional[Decimal] = None
    discount: Discount = field(default=NO_DISCOUNT)
    advance_paid: Decimal = ZERO
    manual_cost: Decimal = ZERO


def count_nights(start: date | datetime, end: date | datetime) -> int:
    """Billable nights, never fewer than one."""
    seconds = (end - start).total_seconds()
    return max(1, math.ceil(seconds / SECONDS_PER_DAY))


def apply_commission(rate: Decimal, percentage: Decimal) -> Decimal:
    return rate * (1 - Decimal(percentage) / HUNDRED)


def compose_cost(
    selections: Sequence[RoomSelection],
    stay_range: StayRange,
    property_types: Mapping[int, PropertyType],
    occupants: int,
    commission_percentage: Optional[Decimal] = None,
    discount: Discount = NO_DISCOUNT,
    advance_paid: Decimal = ZERO,
    occupancy_per_room: int = DEFAULT_OCCUPANCY_PER_ROOM,
) -> PriceBreakdown:
    """Price a multi-property-type selection.

    Extra occupants beyond `occupancy_per_room` per room are charged at the
    average extra-person rate of all selected rooms rather than being pinned
    to a specific property type. Agent commission is folded into the nightly
    rates, never shown as a discount line.
    """
    nights = count_nights(stay_range.start, stay_range.end)

    total_room_cost = ZERO
    total_extra_person_cost = ZERO
    total_rooms = 0
    for selection in selections:
        property_type = property_types.get(selection.property_type_id)
        if property_type is None:
            raise ValueError(f"property_type_id {selection.property_type_id} is not known")
        base_rate = Decimal(property_type.base_cost_per_night)
        extra_rate = Decimal(property_type.extra_person_cost_per_night)
        if commission_percentage is not None:
            base_rate = apply_commission(base_rate, commission_percentage)
            extra_rate = apply_commission(extra_rate, commission_percentage)

        rooms = selection.rooms_requested
        total_room_cost += base_rate * rooms * nights
        total_extra_person_cost += extra_rate * rooms * nights
        total_rooms += rooms

    subtotal = total_room_cost
    base_capacity = total_rooms * occupancy_per_room
    extra_occupants = max(0, occupants - base_capacity)
    if extra_occupants > 0 and total_rooms > 0:
        average_extra_person_cost = total_extra_person_cost / total_rooms
        subtotal += extra_occupants * average_extra_person_cost

    subtotal = money(subtotal)
    discount_amount = discount.amount_for(subtotal)
    total = subtotal - discount_amount
    advance = money(advance_paid)
    return PriceBreakdown(
        subtotal=subtotal,
        discount=discount_amount,
        total=total,
        advance_paid=advance,
        due_amount=total - advance,
    )


def _manual_rule(request: PricingRequest, occupancy_per_room: int) -> PriceBreakdown:
    # Negotiated and prepaid on the external channel.
    amount = money(request.manual_cost)
    return PriceBreakdown(
        subtotal=amount,
        discount=money(ZERO),
        total=amount,
        advance_paid=amount,
        due_amount=money(ZERO),
    )


def _complimentary_rule(request: PricingRequest, occupancy_per_room: int) -> PriceBreakdown:
    nothing = money(ZERO)
    return PriceBreakdown(
        subtotal=nothing,
        discount=nothing,
        total=nothing,
        advance_paid=nothing,
        due_amount=nothing,
    )


def _general_rule(request: PricingRequest, occupancy_per_room: int) -> PriceBreakdown:
    return compose_cost(
        selections=request.selections,
        stay_range=request.stay_range,
        property_types=request.property_types,
        occupants=request.occupants,
        commission_percentage=request.commission_percentage,
        discount=request.discount,
        advance_paid=request.advance_paid,
        occupancy_per_room=occupancy_per_room,
    )


CostRule = Callable[[PricingRequest, int], PriceBreakdown]

COST_RULES: dict[BookingCategory, CostRule] = {
    BookingCategory.NORMAL: _general_rule,
    BookingCategory.B2B: _general_rule,
    BookingCategory.OTHER: _general_rule,
    BookingCategory.AIRBNB: _manual_rule,
    BookingCategory.MMT: _manual_rule,
    BookingCategory.PROMOTION: _complimentary_rule,
}


def cost_for_category(
    request: PricingRequest,
    occupancy_per_room: int = DEFAULT_OCCUPANCY_PER_ROOM,
) -> PriceBreakdown:
    return COST_RULES[request.category](request, occupancy_per_room)


def derive_payment_status(total: Decimal, paid: Decimal) -> PaymentStatus:
    if paid >= total:
        return PaymentStatus.PAID
    if paid > ZERO:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PENDING


def agent_request_amounts(
    subtotal: Decimal,
    commission_percentage: Decimal,
    advance_ratio: Decimal,
) -> tuple[Decimal, Decimal]:
    """Return (agent_rate, advance_amount) for an agent booking request."""
    agent_rate = money(apply_commission(subtotal, commission_percentage))
    return agent_rate, money(agent_rate * advance_ratio)


def refund_for_cancellation(
    paid_amount: Decimal,
    check_in: date,
    cancelled_on: date,
    refund_window_days: int,
) -> Decimal:
    """Full refund when cancelled at least `refund_window_days` before check-in."""
    if (check_in - cancelled_on).days >= refund_window_days:
        return money(paid_amount)
    return money(ZERO)


def payment_status_after_cancellation(refund_amount: Decimal) -> PaymentStatus:
    """A refunded cancellation stays partially settled; otherwise nothing is owed or paid."""
    if refund_amount > ZERO:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PENDING


def split_amount(total: Decimal, weights: Sequence[Decimal]) -> list[Decimal]:
    """Split `total` proportionally to `weights`; the last share absorbs rounding."""
    if not weights:
        return []
    weight_sum = sum(weights, ZERO)
    shares: list[Decimal] = []
    allocated = ZERO
    for weight in weights[:-1]:
        share = money(total * weight / weight_sum) if weight_sum > 0 else money(ZERO)
        shares.append(share)
        allocated += share
    shares.append(money(total - allocated))
    return shares
