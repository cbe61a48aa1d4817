"""Booking lifecycle: create, update, status changes, cancellation."""

from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional, Sequence

from stayhub.domain.models import (
    ZERO,
    Booking,
    BookingCategory,
    BookingStatus,
    RoomSelection,
)
from stayhub.domain.pricing import (
    NO_DISCOUNT,
    Discount,
    payment_status_after_cancellation,
    refund_for_cancellation,
)
from stayhub.repository.data_repository import BookingDraft, BookingRepository
from stayhub.services.availability_service import build_stay_range
from stayhub.services.quote_service import Quote, QuoteService
from stayhub.utils.config import Settings, get_settings
from stayhub.utils.logger import format_fields, get_logger


logger = get_logger(__name__)

_BASE36 = string.digits + string.ascii_uppercase

ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CHECKED_IN, BookingStatus.CANCELLED}),
    BookingStatus.CHECKED_IN: frozenset({BookingStatus.CHECKED_OUT}),
    BookingStatus.CHECKED_OUT: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}


class BookingError(Exception):
    """Base failure for booking workflows."""


class BookingValidationError(BookingError):
    """Raised when booking inputs are invalid."""


class BookingNotFoundError(BookingError):
    """Raised when a booking id or confirmation number does not exist."""


class InvalidStatusTransitionError(BookingError):
    """Raised when a status change is not allowed from the current status."""


@dataclass(frozen=True)
class BookingRequest:
    guest_name: str
    check_in: date
    check_out: date
    selections: Sequence[RoomSelection]
    number_of_adults: int
    number_of_kids: int = 0
    phone: str = ""
    category: BookingCategory = BookingCategory.NORMAL
    agent_id: Optional[int] = None
    discount: Discount = field(default=NO_DISCOUNT)
    advance_paid: Decimal = ZERO
    manual_cost: Decimal = ZERO


def _to_base36(value: int) -> str:
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits)) or "0"


def generate_confirmation_number(prefix: str) -> str:
    """Prefix + base36 millisecond timestamp + 5 random base36 characters."""
    timestamp = _to_base36(int(time.time() * 1000))
    suffix = "".join(random.choices(_BASE36, k=5))
    return f"{prefix}{timestamp}{suffix}".upper()


def cancellation_message(booking: Booking, refund: Decimal, days_before: int, window: int) -> str:
    if refund > 0:
        refund_line = (
            f"Full refund of {refund} will be processed as cancellation was made "
            f"{days_before} days before check-in."
        )
    else:
        refund_line = (
            f"No refund applicable as cancellation was made less than {window} days "
            f"before check-in ({days_before} days)."
        )
    return (
        f"Booking {booking.confirmation_number} for {booking.guest_name} "
        f"({booking.stay_range.start.isoformat()} to {booking.stay_range.end.isoformat()}) "
        f"has been cancelled. {refund_line}"
    )


class BookingService:
    """Prices bookings and hands them to the repository's guarded write."""

    def __init__(
        self,
        repository: Optional[BookingRepository] = None,
        settings: Optional[Settings] = None,
        quote_service: Optional[QuoteService] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or BookingRepository(self._settings)
        self._quote_service = quote_service or QuoteService(
            repository=self._repository,
            settings=self._settings,
        )

    def _new_confirmation_number(self) -> str:
        while True:
            candidate = generate_confirmation_number(self._settings.confirmation_prefix)
            if not self._repository.confirmation_number_exists(candidate):
                return candidate

    def _require(self, booking_id: int) -> Booking:
        booking = self._repository.get_booking(booking_id)
        if booking is None or booking.is_deleted:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        return booking

    def get_booking(self, booking_id: int) -> Booking:
        return self._require(booking_id)

    def find_by_confirmation(self, confirmation_number: str) -> Booking:
        booking = self._repository.get_booking_by_confirmation(confirmation_number.strip().upper())
        if booking is None:
            raise BookingNotFoundError(f"Booking {confirmation_number} not found")
        return booking

    def list_bookings(self, status: Optional[BookingStatus] = None) -> list[Booking]:
        return self._repository.list_bookings(status=status)

    def create_booking(self, request: BookingRequest) -> tuple[Booking, Quote]:
        if not request.guest_name.strip():
            raise BookingValidationError("guest_name must not be empty")
        property_types = self._quote_service.property_type_map(request.selections)
        closed = sorted(
            property_types[selection.property_type_id].name
            for selection in request.selections
            if not property_types[selection.property_type_id].is_available
        )
        if closed:
            raise BookingValidationError(f"Not open for booking: {', '.join(closed)}")

        quote = self._quote_service.quote(
            category=request.category,
            check_in=request.check_in,
            check_out=request.check_out,
            selections=request.selections,
            number_of_adults=request.number_of_adults,
            number_of_kids=request.number_of_kids,
            agent_id=request.agent_id,
            discount=request.discount,
            advance_paid=request.advance_paid,
            manual_cost=request.manual_cost,
        )
        draft = BookingDraft(
            confirmation_number=self._new_confirmation_number(),
            guest_name=request.guest_name.strip(),
            phone=request.phone,
            number_of_adults=request.number_of_adults,
            number_of_kids=request.number_of_kids,
            stay_range=build_stay_range(request.check_in, request.check_out),
            status=BookingStatus.CONFIRMED,
            category=request.category,
            agent_id=request.agent_id if request.category is BookingCategory.B2B else None,
            manual_cost=request.manual_cost if request.category.is_manually_priced else ZERO,
        )
        booking_id = self._repository.reserve_booking(
            draft=draft,
            selections=request.selections,
            breakdown=quote.breakdown,
            payment_status=quote.payment_status,
        )
        logger.info(
            "Booking created | %s",
            format_fields(
                booking_id=booking_id,
                category=request.category.value,
                total=quote.breakdown.total,
                payment_status=quote.payment_status.value,
            ),
        )
        return self._require(booking_id), quote

    def update_booking(
        self,
        booking_id: int,
        *,
        check_in: date,
        check_out: date,
        selections: Sequence[RoomSelection],
        number_of_adults: int,
        number_of_kids: int = 0,
        discount: Discount = NO_DISCOUNT,
        advance_paid: Optional[Decimal] = None,
    ) -> tuple[Booking, Quote]:
        """Re-price and re-reserve; the booking's own rooms do not count against it."""
        booking = self._require(booking_id)
        if booking.status in (BookingStatus.CANCELLED, BookingStatus.CHECKED_OUT):
            raise InvalidStatusTransitionError(
                f"Booking {booking_id} is {booking.status.value} and cannot be changed"
            )
        if advance_paid is None:
            advance_paid = booking.payment.paid_amount if booking.payment else ZERO

        quote = self._quote_service.quote(
            category=booking.category,
            check_in=check_in,
            check_out=check_out,
            selections=selections,
            number_of_adults=number_of_adults,
            number_of_kids=number_of_kids,
            agent_id=booking.agent_id,
            discount=discount,
            advance_paid=advance_paid,
            manual_cost=booking.manual_cost,
        )
        self._repository.update_reservation(
            booking_id=booking_id,
            stay_range=build_stay_range(check_in, check_out),
            number_of_adults=number_of_adults,
            number_of_kids=number_of_kids,
            selections=selections,
            breakdown=quote.breakdown,
            payment_status=quote.payment_status,
        )
        logger.info(
            "Booking updated | %s",
            format_fields(booking_id=booking_id, total=quote.breakdown.total),
        )
        return self._require(booking_id), quote

    def change_status(self, booking_id: int, status: BookingStatus) -> Booking:
        if status is BookingStatus.CANCELLED:
            return self.cancel_booking(booking_id)
        booking = self._require(booking_id)
        if status not in ALLOWED_TRANSITIONS[booking.status]:
            raise InvalidStatusTransitionError(
                f"Cannot move booking from {booking.status.value} to {status.value}"
            )
        check_in_time = None
        if status is BookingStatus.CHECKED_IN:
            check_in_time = datetime.now(timezone.utc).isoformat()
        self._repository.update_booking_status(booking_id, status, actual_check_in_time=check_in_time)
        logger.info(
            "Booking status changed | %s",
            format_fields(booking_id=booking_id, old=booking.status.value, new=status.value),
        )
        return self._require(booking_id)

    def cancel_booking(self, booking_id: int, today: Optional[date] = None) -> Booking:
        booking = self._require(booking_id)
        if BookingStatus.CANCELLED not in ALLOWED_TRANSITIONS[booking.status]:
            raise InvalidStatusTransitionError(
                f"Cannot cancel a booking that is {booking.status.value}"
            )
        cancelled_on = today or datetime.now(timezone.utc).date()
        paid = booking.payment.paid_amount if booking.payment else ZERO
        window = self._settings.refund_window_days
        refund = refund_for_cancellation(paid, booking.stay_range.start, cancelled_on, window)
        days_before = (booking.stay_range.start - cancelled_on).days
        self._repository.cancel_booking(
            booking_id,
            cancellation_message(booking, refund, days_before, window),
            refund,
            payment_status_after_cancellation(refund),
        )
        logger.info(
            "Booking cancelled | %s",
            format_fields(booking_id=booking_id, refund=refund, days_before=days_before),
        )
        return self._require(booking_id)

    def delete_booking(self, booking_id: int) -> None:
        self._require(booking_id)
        self._repository.soft_delete_booking(booking_id)
        logger.info("Booking soft-deleted | %s", format_fields(booking_id=booking_id))
