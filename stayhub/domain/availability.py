"""Date-overlap and room availability computations.

Everything here is pure: callers load property types and allocations from the
store, then ask these functions how many rooms are still free.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Iterable, Sequence

from stayhub.domain.models import (
    AvailableProperty,
    BookingStatus,
    OccupancyRow,
    PropertyType,
    RoomAllocation,
    StayRange,
)


def to_day(value: date | datetime) -> date:
    """Truncate a timestamp to its calendar day."""
    if isinstance(value, datetime):
        return value.date()
    return value


def overlaps(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """Return True when half-open ranges [a_start, a_end) and [b_start, b_end) share a day.

    A check-out on day N and a check-in on day N do not conflict.
    """
    return a_start < b_end and b_start < a_end


def ranges_overlap(first: StayRange, second: StayRange) -> bool:
    return overlaps(first.start, first.end, second.start, second.end)


def is_live(allocation: RoomAllocation) -> bool:
    """Only cancelled and soft-deleted allocations release their rooms."""
    return not allocation.is_deleted and allocation.booking_status != BookingStatus.CANCELLED


def booked_rooms(
    property_type_id: int,
    candidate: StayRange,
    allocations: Iterable[RoomAllocation],
) -> int:
    total = 0
    for allocation in allocations:
        if allocation.property_type_id != property_type_id:
            continue
        if not is_live(allocation):
            continue
        if ranges_overlap(candidate, allocation.stay_range):
            total += allocation.room_count
    return total


def available_rooms(
    property_type: PropertyType,
    candidate: StayRange,
    allocations: Iterable[RoomAllocation],
) -> int:
    """Rooms of `property_type` still free over `candidate`, clamped at zero."""
    booked = booked_rooms(property_type.property_type_id, candidate, allocations)
    return max(0, property_type.total_room_count - booked)


def held_room_ids(
    property_type_id: int,
    candidate: StayRange,
    allocations: Iterable[RoomAllocation],
) -> set[str]:
    """Named rooms of a property type claimed by live allocations overlapping `candidate`."""
    held: set[str] = set()
    for allocation in allocations:
        if allocation.property_type_id != property_type_id or not is_live(allocation):
            continue
        if ranges_overlap(candidate, allocation.stay_range):
            held.update(allocation.room_ids)
    return held


def bookable_property_types(
    property_types: Sequence[PropertyType],
    candidate: StayRange,
    allocations: Sequence[RoomAllocation],
) -> list[AvailableProperty]:
    """Property types open for booking with at least one free room, priciest first."""
    result: list[AvailableProperty] = []
    for property_type in property_types:
        if not property_type.is_available:
            continue
        free = available_rooms(property_type, candidate, allocations)
        if free > 0:
            result.append(AvailableProperty(property_type=property_type, available_rooms=free))
    result.sort(key=lambda item: item.property_type.base_cost_per_night, reverse=True)
    return result


def occupancy_on(
    day: date,
    property_types: Sequence[PropertyType],
    allocations: Sequence[RoomAllocation],
) -> list[OccupancyRow]:
    """Single-night occupancy per property type, for the admin dashboard."""
    candidate = StayRange(start=day, end=day + timedelta(days=1))
    rows: list[OccupancyRow] = []
    for property_type in property_types:
        booked = booked_rooms(property_type.property_type_id, candidate, allocations)
        rows.append(
            OccupancyRow(
                property_type_id=property_type.property_type_id,
                name=property_type.name,
                total_rooms=property_type.total_room_count,
                booked_rooms=booked,
                available_rooms=max(0, property_type.total_room_count - booked),
            )
        )
    return rows
