"""Availability queries over the record store."""

from __future__ import annotations

from datetime import date
from typing import Any, Optional

from stayhub.domain.availability import available_rooms, bookable_property_types
from stayhub.domain.constraints import validate_stay_range
from stayhub.domain.models import StayRange
from stayhub.repository.data_repository import BookingRepository
from stayhub.utils.config import Settings, get_settings
from stayhub.utils.logger import format_fields, get_logger


logger = get_logger(__name__)


class AvailabilityValidationError(Exception):
    """Raised when an availability query has an invalid stay range."""


class PropertyTypeNotFoundError(Exception):
    """Raised when a property type id does not exist."""


def build_stay_range(check_in: date, check_out: date) -> StayRange:
    stay_range = StayRange(start=check_in, end=check_out)
    try:
        validate_stay_range(stay_range)
    except ValueError as exc:
        raise AvailabilityValidationError(str(exc)) from exc
    return stay_range


class AvailabilityService:
    """Answers "what can still be booked for these dates".

    Store failures propagate as StoreUnavailableError so callers can show an
    error state instead of a sold-out property.
    """

    def __init__(
        self,
        repository: Optional[BookingRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or BookingRepository(self._settings)

    def list_bookable(self, *, check_in: date, check_out: date) -> list[dict[str, Any]]:
        stay_range = build_stay_range(check_in, check_out)
        property_types = self._repository.list_property_types(only_available=True)
        allocations = self._repository.list_allocations(
            property_type_ids=[item.property_type_id for item in property_types],
        )
        bookable = bookable_property_types(property_types, stay_range, allocations)
        logger.info(
            "Availability computed | %s",
            format_fields(
                check_in=check_in,
                check_out=check_out,
                property_types=len(property_types),
                bookable=len(bookable),
            ),
        )
        return [
            {
                "property_type_id": item.property_type.property_type_id,
                "name": item.property_type.name,
                "available_rooms": item.available_rooms,
                "total_rooms": item.property_type.total_room_count,
                "base_cost_per_night": item.property_type.base_cost_per_night,
                "extra_person_cost_per_night": item.property_type.extra_person_cost_per_night,
            }
            for item in bookable
        ]

    def rooms_free(
        self,
        *,
        property_type_id: int,
        check_in: date,
        check_out: date,
        exclude_booking_id: Optional[int] = None,
    ) -> int:
        stay_range = build_stay_range(check_in, check_out)
        property_type = self._repository.get_property_type(property_type_id)
        if property_type is None:
            raise PropertyTypeNotFoundError(f"property_type_id {property_type_id} not found")
        allocations = self._repository.list_allocations(
            property_type_ids=[property_type_id],
            exclude_booking_id=exclude_booking_id,
        )
        return available_rooms(property_type, stay_range, allocations)
