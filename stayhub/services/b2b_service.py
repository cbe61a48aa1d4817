"""Agent booking requests: submission, approval into bookings, rejection."""

from __future__ import annotations

import random
import string
import time
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from stayhub.domain.models import (
    ZERO,
    B2BBookingRequest,
    BookingCategory,
    BookingStatus,
    PriceBreakdown,
    RequestStatus,
    RoomSelection,
)
from stayhub.domain.pricing import agent_request_amounts, derive_payment_status, split_amount
from stayhub.repository.data_repository import (
    BookingDraft,
    BookingRepository,
    RequestNotPendingError,
)
from stayhub.services.availability_service import AvailabilityService, build_stay_range
from stayhub.services.booking_service import BookingValidationError
from stayhub.services.commission_service import CommissionService
from stayhub.services.quote_service import QuoteService
from stayhub.utils.config import Settings, get_settings
from stayhub.utils.logger import format_fields, get_logger


logger = get_logger(__name__)


class B2BRequestNotFoundError(Exception):
    """Raised when a B2B booking request id does not exist."""


class B2BRequestStateError(Exception):
    """Raised when a request has already been approved or rejected."""


def generate_request_number(prefix: str) -> str:
    """Prefix + last 6 millisecond-timestamp digits + 3 random characters."""
    timestamp = str(int(time.time() * 1000))[-6:]
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=3))
    return f"{prefix}{timestamp}{suffix}"


class B2BRequestService:
    """Agents request rooms at their commissioned rate; admins approve or reject."""

    def __init__(
        self,
        repository: Optional[BookingRepository] = None,
        settings: Optional[Settings] = None,
        availability_service: Optional[AvailabilityService] = None,
        commission_service: Optional[CommissionService] = None,
        quote_service: Optional[QuoteService] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or BookingRepository(self._settings)
        self._availability_service = availability_service or AvailabilityService(
            repository=self._repository,
            settings=self._settings,
        )
        self._commission_service = commission_service or CommissionService(
            repository=self._repository,
            settings=self._settings,
        )
        self._quote_service = quote_service or QuoteService(
            repository=self._repository,
            settings=self._settings,
            commission_service=self._commission_service,
        )

    def submit(
        self,
        *,
        agent_id: int,
        guest_name: str,
        guest_phone: str,
        check_in: date,
        check_out: date,
        selections: Sequence[RoomSelection],
        number_of_adults: int,
        number_of_kids: int = 0,
    ) -> list[B2BBookingRequest]:
        """Create one pending request per selected property type.

        The whole stay is priced once at base rates; each request carries its
        share of that subtotal weighted by room count and nightly rate.
        """
        if not guest_name.strip():
            raise BookingValidationError("guest_name must not be empty")
        self._commission_service.validate_agent(agent_id)

        for selection in selections:
            free = self._availability_service.rooms_free(
                property_type_id=selection.property_type_id,
                check_in=check_in,
                check_out=check_out,
            )
            if selection.rooms_requested > free:
                raise BookingValidationError(
                    f"Only {free} room(s) free for property_type_id {selection.property_type_id}"
                )

        quote = self._quote_service.quote(
            category=BookingCategory.NORMAL,
            check_in=check_in,
            check_out=check_out,
            selections=selections,
            number_of_adults=number_of_adults,
            number_of_kids=number_of_kids,
        )
        property_types = self._quote_service.property_type_map(selections)
        weights = [
            property_types[selection.property_type_id].base_cost_per_night * selection.rooms_requested
            for selection in selections
        ]
        shares = split_amount(quote.breakdown.subtotal, weights)

        base_number = self._new_request_number()
        stay_range = build_stay_range(check_in, check_out)
        pending: list[B2BBookingRequest] = []
        for index, (selection, share) in enumerate(zip(selections, shares), start=1):
            commission = self._commission_service.resolve(
                agent_id=agent_id,
                property_type_id=selection.property_type_id,
                booking_date=check_in,
            )
            agent_rate, advance = agent_request_amounts(
                share,
                commission.percentage,
                self._settings.b2b_advance_ratio,
            )
            pending.append(
                B2BBookingRequest(
                    request_id=0,
                    agent_id=agent_id,
                    guest_name=guest_name.strip(),
                    guest_phone=guest_phone,
                    number_of_adults=number_of_adults,
                    number_of_kids=number_of_kids,
                    stay_range=stay_range,
                    property_type_id=selection.property_type_id,
                    room_count=selection.rooms_requested,
                    total_cost=share,
                    agent_rate=agent_rate,
                    advance_amount=advance,
                    status=RequestStatus.PENDING,
                    confirmation_number=(
                        f"{base_number}-{index}" if len(selections) > 1 else base_number
                    ),
                )
            )

        request_ids = self._repository.create_b2b_requests(pending)
        logger.info(
            "B2B requests submitted | %s",
            format_fields(agent_id=agent_id, requests=len(request_ids), base_number=base_number),
        )
        return [self._require(request_id) for request_id in request_ids]

    def _new_request_number(self) -> str:
        while True:
            candidate = generate_request_number(self._settings.b2b_confirmation_prefix)
            if not self._repository.request_number_in_use(candidate):
                return candidate

    def _require(self, request_id: int) -> B2BBookingRequest:
        request = self._repository.get_b2b_request(request_id)
        if request is None:
            raise B2BRequestNotFoundError(f"B2B request {request_id} not found")
        return request

    def _require_pending(self, request_id: int) -> B2BBookingRequest:
        request = self._require(request_id)
        if request.status is not RequestStatus.PENDING:
            raise B2BRequestStateError(
                f"B2B request {request_id} is already {request.status.value}"
            )
        return request

    def list_requests(
        self,
        agent_id: Optional[int] = None,
        status: Optional[RequestStatus] = None,
    ) -> list[B2BBookingRequest]:
        return self._repository.list_b2b_requests(agent_id=agent_id, status=status)

    def approve(self, request_id: int, admin_notes: Optional[str] = None) -> B2BBookingRequest:
        request = self._require_pending(request_id)
        self._commission_service.validate_agent(request.agent_id)

        balance = request.agent_rate - request.advance_amount
        breakdown = PriceBreakdown(
            subtotal=request.agent_rate,
            discount=ZERO,
            total=request.agent_rate,
            advance_paid=request.advance_amount,
            due_amount=balance,
        )
        draft = BookingDraft(
            confirmation_number=request.confirmation_number,
            guest_name=request.guest_name,
            phone=request.guest_phone,
            number_of_adults=request.number_of_adults,
            number_of_kids=request.number_of_kids,
            stay_range=request.stay_range,
            status=BookingStatus.CONFIRMED,
            category=BookingCategory.B2B,
            agent_id=request.agent_id,
            manual_cost=Decimal("0"),
        )
        try:
            booking_id = self._repository.approve_b2b_request(
                request_id=request_id,
                draft=draft,
                selection=RoomSelection(
                    property_type_id=request.property_type_id,
                    room_count=request.room_count,
                ),
                breakdown=breakdown,
                payment_status=derive_payment_status(request.agent_rate, request.advance_amount),
                admin_notes=admin_notes,
            )
        except RequestNotPendingError as exc:
            raise B2BRequestStateError(str(exc)) from exc
        logger.info(
            "B2B request approved | %s",
            format_fields(request_id=request_id, booking_id=booking_id),
        )
        return self._require(request_id)

    def reject(self, request_id: int, admin_notes: str) -> B2BBookingRequest:
        self._require_pending(request_id)
        if not admin_notes.strip():
            raise BookingValidationError("a rejection reason is required")
        try:
            self._repository.reject_b2b_request(request_id, admin_notes.strip())
        except RequestNotPendingError as exc:
            raise B2BRequestStateError(str(exc)) from exc
        logger.info("B2B request rejected | %s", format_fields(request_id=request_id))
        return self._require(request_id)
