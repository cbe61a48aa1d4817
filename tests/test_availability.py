"""Tests for the overlap predicate and room availability counting."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from stayhub.domain.availability import (
    available_rooms,
    bookable_property_types,
    held_room_ids,
    occupancy_on,
    overlaps,
    to_day,
)
from stayhub.domain.models import BookingStatus, PropertyType, RoomAllocation, StayRange


def _tent(total_rooms: int = 5, **overrides) -> PropertyType:
    defaults = {
        "property_type_id": 1,
        "name": "Deluxe Tent",
        "total_room_count": total_rooms,
        "base_cost_per_night": Decimal("2000"),
        "extra_person_cost_per_night": Decimal("500"),
    }
    defaults.update(overrides)
    return PropertyType(**defaults)


def _allocation(
    start: date,
    end: date,
    rooms: int,
    status: BookingStatus = BookingStatus.CONFIRMED,
    is_deleted: bool = False,
    property_type_id: int = 1,
    room_ids: tuple[str, ...] = (),
) -> RoomAllocation:
    return RoomAllocation(
        property_type_id=property_type_id,
        stay_range=StayRange(start=start, end=end),
        room_count=rooms,
        booking_status=status,
        is_deleted=is_deleted,
        room_ids=room_ids,
    )


JAN_10 = date(2026, 1, 10)
JAN_12 = date(2026, 1, 12)
JAN_14 = date(2026, 1, 14)
JAN_15 = date(2026, 1, 15)
JAN_20 = date(2026, 1, 20)


# --- overlap predicate ---

def test_back_to_back_ranges_do_not_overlap() -> None:
    assert overlaps(JAN_10, JAN_15, JAN_15, JAN_20) is False
    assert overlaps(JAN_15, JAN_20, JAN_10, JAN_15) is False


def test_overlap_is_symmetric() -> None:
    pairs = [
        (JAN_10, JAN_15, JAN_12, JAN_14),
        (JAN_10, JAN_15, JAN_14, JAN_20),
        (JAN_10, JAN_12, JAN_14, JAN_20),
    ]
    for a_start, a_end, b_start, b_end in pairs:
        assert overlaps(a_start, a_end, b_start, b_end) == overlaps(b_start, b_end, a_start, a_end)


def test_containment_overlaps() -> None:
    assert overlaps(JAN_10, JAN_20, JAN_12, JAN_14) is True
    assert overlaps(JAN_12, JAN_14, JAN_10, JAN_20) is True


def test_identical_ranges_overlap() -> None:
    assert overlaps(JAN_10, JAN_15, JAN_10, JAN_15) is True


def test_to_day_drops_time_of_day() -> None:
    assert to_day(datetime(2026, 1, 15, 23, 59)) == JAN_15
    assert to_day(JAN_15) == JAN_15


# --- availableRooms ---

def test_partial_overlap_reduces_free_rooms() -> None:
    allocations = [_allocation(JAN_10, JAN_15, rooms=2)]
    assert available_rooms(_tent(), StayRange(JAN_12, JAN_14), allocations) == 3


def test_soft_deleted_allocation_is_ignored() -> None:
    allocations = [_allocation(JAN_10, JAN_15, rooms=2, is_deleted=True)]
    assert available_rooms(_tent(), StayRange(JAN_12, JAN_14), allocations) == 5


def test_back_to_back_stay_gets_full_inventory() -> None:
    allocations = [_allocation(JAN_10, JAN_15, rooms=2)]
    assert available_rooms(_tent(), StayRange(JAN_15, JAN_20), allocations) == 5


def test_cancelled_allocation_releases_rooms() -> None:
    allocations = [_allocation(JAN_10, JAN_15, rooms=4, status=BookingStatus.CANCELLED)]
    assert available_rooms(_tent(), StayRange(JAN_12, JAN_14), allocations) == 5


def test_checked_out_allocation_still_counts() -> None:
    allocations = [_allocation(JAN_10, JAN_15, rooms=2, status=BookingStatus.CHECKED_OUT)]
    assert available_rooms(_tent(), StayRange(JAN_12, JAN_14), allocations) == 3


def test_other_property_types_are_ignored() -> None:
    allocations = [_allocation(JAN_10, JAN_15, rooms=5, property_type_id=2)]
    assert available_rooms(_tent(), StayRange(JAN_12, JAN_14), allocations) == 5


def test_overbooked_legacy_data_clamps_to_zero() -> None:
    allocations = [
        _allocation(JAN_10, JAN_15, rooms=4),
        _allocation(JAN_12, JAN_14, rooms=3),
    ]
    assert available_rooms(_tent(), StayRange(JAN_12, JAN_14), allocations) == 0


def test_available_rooms_stays_within_bounds_and_is_repeatable() -> None:
    allocations = [
        _allocation(JAN_10, JAN_15, rooms=1),
        _allocation(JAN_14, JAN_20, rooms=2, status=BookingStatus.PENDING),
        _allocation(JAN_10, JAN_12, rooms=3, is_deleted=True),
    ]
    candidate = StayRange(JAN_12, JAN_20)
    first = available_rooms(_tent(), candidate, allocations)
    second = available_rooms(_tent(), candidate, allocations)
    assert first == second == 2
    assert 0 <= first <= 5


# --- bookable listing ---

def test_bookable_types_skip_sold_out_and_closed_and_sort_by_price() -> None:
    cottage = _tent(property_type_id=2, name="Cottage", total_room_count=3, base_cost_per_night=Decimal("3500"))
    dome = _tent(property_type_id=3, name="Dome", total_room_count=2, base_cost_per_night=Decimal("5000"))
    closed = _tent(property_type_id=4, name="Closed", is_available=False)
    allocations = [_allocation(JAN_10, JAN_15, rooms=2, property_type_id=3)]

    result = bookable_property_types(
        [_tent(), cottage, dome, closed],
        StayRange(JAN_12, JAN_14),
        allocations,
    )

    assert [item.property_type.name for item in result] == ["Cottage", "Deluxe Tent"]
    assert [item.available_rooms for item in result] == [3, 5]


# --- single-day occupancy ---

def test_occupancy_on_counts_only_nights_that_include_the_day() -> None:
    allocations = [
        _allocation(JAN_10, JAN_15, rooms=2),
        _allocation(JAN_15, JAN_20, rooms=1),
    ]
    [row_14] = occupancy_on(JAN_14, [_tent()], allocations)
    [row_15] = occupancy_on(JAN_15, [_tent()], allocations)

    assert (row_14.booked_rooms, row_14.available_rooms) == (2, 3)
    assert (row_15.booked_rooms, row_15.available_rooms) == (1, 4)


def test_held_room_ids_come_from_live_overlapping_allocations() -> None:
    allocations = [
        _allocation(JAN_10, JAN_15, 2, room_ids=("DT1", "DT2")),
        _allocation(JAN_10, JAN_15, 1, status=BookingStatus.CANCELLED, room_ids=("DT3",)),
        _allocation(JAN_10, JAN_15, 1, is_deleted=True, room_ids=("DT4",)),
        _allocation(JAN_15, JAN_20, 1, room_ids=("DT5",)),
        _allocation(JAN_10, JAN_15, 1, property_type_id=2, room_ids=("DT1",)),
        _allocation(JAN_10, JAN_15, 1, status=BookingStatus.CHECKED_OUT, room_ids=("DT6",)),
    ]
    assert held_room_ids(1, StayRange(JAN_12, JAN_14), allocations) == {"DT1", "DT2", "DT6"}
