"""Tests for cost composition, category rules and payment helpers."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest

from stayhub.domain.models import BookingCategory, PaymentStatus, PropertyType, RoomSelection, StayRange
from stayhub.domain.pricing import (
    Discount,
    PricingRequest,
    agent_request_amounts,
    compose_cost,
    cost_for_category,
    count_nights,
    derive_payment_status,
    refund_for_cancellation,
    split_amount,
)


TENT = PropertyType(
    property_type_id=1,
    name="Deluxe Tent",
    total_room_count=5,
    base_cost_per_night=Decimal("2000"),
    extra_person_cost_per_night=Decimal("500"),
)
COTTAGE = PropertyType(
    property_type_id=2,
    name="Premium Cottage",
    total_room_count=3,
    base_cost_per_night=Decimal("1000"),
    extra_person_cost_per_night=Decimal("300"),
)
PROPERTY_TYPES = {TENT.property_type_id: TENT, COTTAGE.property_type_id: COTTAGE}


def _three_nights() -> StayRange:
    return StayRange(start=date(2026, 3, 1), end=date(2026, 3, 4))


# --- composeCost ---

def test_extra_occupants_are_charged_per_night() -> None:
    breakdown = compose_cost(
        selections=[RoomSelection(property_type_id=1, room_count=2)],
        stay_range=_three_nights(),
        property_types=PROPERTY_TYPES,
        occupants=6,
    )
    assert breakdown.subtotal == Decimal("15000.00")
    assert breakdown.total == Decimal("15000.00")
    assert breakdown.due_amount == Decimal("15000.00")


def test_commission_discounts_the_nightly_rate() -> None:
    breakdown = compose_cost(
        selections=[RoomSelection(property_type_id=2, room_count=1)],
        stay_range=StayRange(start=date(2026, 3, 1), end=date(2026, 3, 3)),
        property_types=PROPERTY_TYPES,
        occupants=2,
        commission_percentage=Decimal("10"),
    )
    assert breakdown.subtotal == Decimal("1800.00")


def test_zero_commission_leaves_rates_unchanged() -> None:
    with_zero = compose_cost(
        selections=[RoomSelection(property_type_id=1, room_count=1)],
        stay_range=_three_nights(),
        property_types=PROPERTY_TYPES,
        occupants=3,
        commission_percentage=Decimal("0"),
    )
    without = compose_cost(
        selections=[RoomSelection(property_type_id=1, room_count=1)],
        stay_range=_three_nights(),
        property_types=PROPERTY_TYPES,
        occupants=3,
    )
    assert with_zero == without


def test_full_commission_prices_everything_at_zero() -> None:
    breakdown = compose_cost(
        selections=[RoomSelection(property_type_id=1, room_count=2)],
        stay_range=_three_nights(),
        property_types=PROPERTY_TYPES,
        occupants=6,
        commission_percentage=Decimal("100"),
    )
    assert breakdown.subtotal == Decimal("0.00")


def test_no_extra_charge_within_base_capacity() -> None:
    breakdown = compose_cost(
        selections=[RoomSelection(property_type_id=1, room_count=2)],
        stay_range=_three_nights(),
        property_types=PROPERTY_TYPES,
        occupants=4,
    )
    assert breakdown.subtotal == Decimal("12000.00")


def test_extra_person_rate_is_averaged_across_property_types() -> None:
    # Two rooms, extra rates 500 and 300 -> average 400 per night.
    breakdown = compose_cost(
        selections=[
            RoomSelection(property_type_id=1, room_count=1),
            RoomSelection(property_type_id=2, room_count=1),
        ],
        stay_range=StayRange(start=date(2026, 3, 1), end=date(2026, 3, 2)),
        property_types=PROPERTY_TYPES,
        occupants=5,
    )
    assert breakdown.subtotal == Decimal("3400.00")


def test_room_ids_take_precedence_over_room_count() -> None:
    breakdown = compose_cost(
        selections=[RoomSelection(property_type_id=1, room_count=1, room_ids=("DT1", "DT2"))],
        stay_range=StayRange(start=date(2026, 3, 1), end=date(2026, 3, 2)),
        property_types=PROPERTY_TYPES,
        occupants=2,
    )
    assert breakdown.subtotal == Decimal("4000.00")


def test_flat_and_percentage_discounts_reconcile_with_subtotal() -> None:
    for discount in (Discount(Decimal("750")), Discount(Decimal("12.5"), is_percentage=True)):
        breakdown = compose_cost(
            selections=[RoomSelection(property_type_id=1, room_count=2)],
            stay_range=_three_nights(),
            property_types=PROPERTY_TYPES,
            occupants=4,
            discount=discount,
            advance_paid=Decimal("2000"),
        )
        assert breakdown.total + breakdown.discount == breakdown.subtotal
        assert breakdown.due_amount == breakdown.total - breakdown.advance_paid

    percent = compose_cost(
        selections=[RoomSelection(property_type_id=1, room_count=2)],
        stay_range=_three_nights(),
        property_types=PROPERTY_TYPES,
        occupants=4,
        discount=Discount(Decimal("12.5"), is_percentage=True),
    )
    assert percent.discount == Decimal("1500.00")


def test_overpayment_leaves_negative_due_but_nothing_payable() -> None:
    breakdown = compose_cost(
        selections=[RoomSelection(property_type_id=2, room_count=1)],
        stay_range=StayRange(start=date(2026, 3, 1), end=date(2026, 3, 2)),
        property_types=PROPERTY_TYPES,
        occupants=1,
        advance_paid=Decimal("1500"),
    )
    assert breakdown.due_amount == Decimal("-500.00")
    assert breakdown.amount_payable == Decimal("0")


def test_unknown_property_type_raises() -> None:
    with pytest.raises(ValueError):
        compose_cost(
            selections=[RoomSelection(property_type_id=99, room_count=1)],
            stay_range=_three_nights(),
            property_types=PROPERTY_TYPES,
            occupants=2,
        )


def test_count_nights_rounds_up_and_never_drops_below_one() -> None:
    assert count_nights(date(2026, 3, 1), date(2026, 3, 4)) == 3
    assert count_nights(datetime(2026, 3, 1, 14), datetime(2026, 3, 2, 11)) == 1
    assert count_nights(datetime(2026, 3, 1, 10), datetime(2026, 3, 2, 11)) == 2


# --- category rules ---

def _request(category: BookingCategory, **overrides) -> PricingRequest:
    defaults = {
        "category": category,
        "selections": [RoomSelection(property_type_id=1, room_count=2)],
        "stay_range": _three_nights(),
        "property_types": PROPERTY_TYPES,
        "occupants": 6,
        "advance_paid": Decimal("1000"),
        "manual_cost": Decimal("9999"),
    }
    defaults.update(overrides)
    return PricingRequest(**defaults)


@pytest.mark.parametrize("category", [BookingCategory.AIRBNB, BookingCategory.MMT])
def test_channel_bookings_use_the_manual_cost_and_are_prepaid(category: BookingCategory) -> None:
    breakdown = cost_for_category(_request(category))
    assert breakdown.subtotal == breakdown.total == Decimal("9999.00")
    assert breakdown.advance_paid == Decimal("9999.00")
    assert breakdown.due_amount == Decimal("0.00")


def test_promotion_bookings_are_free() -> None:
    breakdown = cost_for_category(_request(BookingCategory.PROMOTION))
    assert breakdown.total == Decimal("0.00")
    assert breakdown.due_amount == Decimal("0.00")


def test_normal_bookings_use_the_composed_cost() -> None:
    breakdown = cost_for_category(_request(BookingCategory.NORMAL))
    assert breakdown.subtotal == Decimal("15000.00")
    assert breakdown.due_amount == Decimal("14000.00")


# --- payment helpers ---

def test_payment_status_follows_amount_paid() -> None:
    assert derive_payment_status(Decimal("1000"), Decimal("0")) is PaymentStatus.PENDING
    assert derive_payment_status(Decimal("1000"), Decimal("400")) is PaymentStatus.PARTIAL
    assert derive_payment_status(Decimal("1000"), Decimal("1000")) is PaymentStatus.PAID
    assert derive_payment_status(Decimal("0"), Decimal("0")) is PaymentStatus.PAID


def test_refund_only_outside_the_window() -> None:
    check_in = date(2026, 3, 10)
    assert refund_for_cancellation(Decimal("500"), check_in, date(2026, 3, 7), 3) == Decimal("500.00")
    assert refund_for_cancellation(Decimal("500"), check_in, date(2026, 3, 8), 3) == Decimal("0.00")


def test_agent_request_amounts() -> None:
    agent_rate, advance = agent_request_amounts(Decimal("10000"), Decimal("12"), Decimal("0.5"))
    assert agent_rate == Decimal("8800.00")
    assert advance == Decimal("4400.00")


def test_split_amount_preserves_the_total() -> None:
    shares = split_amount(Decimal("100.00"), [Decimal("1"), Decimal("1"), Decimal("1")])
    assert shares == [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]
    assert sum(shares) == Decimal("100.00")
    assert split_amount(Decimal("10"), []) == []
