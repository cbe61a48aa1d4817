"""Domain-level validation rules for booking and pricing inputs."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from stayhub.domain.models import RoomSelection, StayRange


@dataclass(frozen=True)
class PricingConfig:
    default_commission_percentage: Decimal
    occupancy_per_room: int
    b2b_advance_ratio: Decimal
    refund_window_days: int


def validate_pricing_config(config: PricingConfig) -> None:
    validate_commission_percentage(config.default_commission_percentage)
    if config.occupancy_per_room <= 0:
        raise ValueError("occupancy_per_room must be > 0")
    if not Decimal("0") <= config.b2b_advance_ratio <= Decimal("1"):
        raise ValueError("b2b_advance_ratio must be between 0 and 1")
    if config.refund_window_days < 0:
        raise ValueError("refund_window_days must be >= 0")


def validate_commission_percentage(percentage: Decimal) -> None:
    if not Decimal("0") <= Decimal(percentage) < Decimal("100"):
        raise ValueError("commission percentage must be in [0, 100)")


def validate_stay_range(stay_range: StayRange) -> None:
    if stay_range.end <= stay_range.start:
        raise ValueError("check-out date must be after check-in date")


def validate_selections(selections: Sequence[RoomSelection]) -> None:
    if not selections:
        raise ValueError("at least one room selection is required")
    seen: set[int] = set()
    for selection in selections:
        if selection.property_type_id in seen:
            raise ValueError(
                f"property_type_id {selection.property_type_id} is selected more than once"
            )
        seen.add(selection.property_type_id)
        if selection.room_count < 0:
            raise ValueError("room_count must not be negative")
        if selection.rooms_requested < 1:
            raise ValueError("each selection must request at least one room")
        validate_room_ids(selection.room_ids)


def validate_room_ids(room_ids: Sequence[str]) -> None:
    # Stored comma-joined, so a comma cannot appear inside one id.
    for room_id in room_ids:
        if not room_id.strip():
            raise ValueError("room ids must not be blank")
        if "," in room_id:
            raise ValueError(f"room id {room_id!r} must not contain a comma")
    if len(set(room_ids)) != len(room_ids):
        raise ValueError("a room may only be selected once")


def validate_known_rooms(property_type_id: int, room_ids: Sequence[str], known: Sequence[str]) -> None:
    unknown = sorted(set(room_ids) - set(known))
    if unknown:
        raise ValueError(
            f"room(s) {', '.join(unknown)} do not belong to property_type_id {property_type_id}"
        )


def validate_occupants(adults: int, kids: int) -> None:
    if adults < 1:
        raise ValueError("at least one adult is required")
    if kids < 0:
        raise ValueError("number of kids must not be negative")


def validate_money(name: str, amount: Decimal) -> None:
    if Decimal(amount) < Decimal("0"):
        raise ValueError(f"{name} must not be negative")
