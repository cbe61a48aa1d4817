"""HTTP controller layer for availability, quotes and bookings."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, Field, field_validator, model_validator

from stayhub.controllers.dependencies import (
    get_availability_service,
    get_booking_service,
    get_commission_service,
    get_quote_service,
    require_admin,
)
from stayhub.domain.models import (
    ZERO,
    Booking,
    BookingCategory,
    BookingStatus,
    PaymentStatus,
    RoomSelection,
)
from stayhub.domain.pricing import Discount
from stayhub.repository.data_repository import (
    CapacityExceededError,
    RoomUnavailableError,
    StoreUnavailableError,
    UnknownPropertyTypeError,
    UnknownRoomError,
    WriteConflictError,
)
from stayhub.services.availability_service import (
    AvailabilityService,
    AvailabilityValidationError,
    PropertyTypeNotFoundError,
)
from stayhub.services.booking_service import (
    BookingNotFoundError,
    BookingRequest,
    BookingService,
    BookingValidationError,
    InvalidStatusTransitionError,
)
from stayhub.services.commission_service import CommissionError, CommissionService
from stayhub.services.quote_service import Quote, QuoteService, QuoteValidationError
from stayhub.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["bookings"])


class StayDatesRequest(BaseModel):
    check_in: date
    check_out: date

    @model_validator(mode="after")
    def validate_range(self) -> "StayDatesRequest":
        if self.check_out <= self.check_in:
            raise ValueError("check_out must be after check_in")
        return self


class RoomSelectionPayload(BaseModel):
    property_type_id: int = Field(gt=0)
    room_count: int = Field(default=0, ge=0)
    room_ids: list[str] = Field(default_factory=list)

    def to_selection(self) -> RoomSelection:
        return RoomSelection(
            property_type_id=self.property_type_id,
            room_count=self.room_count,
            room_ids=tuple(self.room_ids),
        )


class DiscountPayload(BaseModel):
    value: Decimal = Field(default=ZERO, ge=0)
    is_percentage: bool = False

    def to_discount(self) -> Discount:
        return Discount(value=self.value, is_percentage=self.is_percentage)


class QuoteRequest(StayDatesRequest):
    """Input DTO validated before entering service layer."""

    category: BookingCategory = BookingCategory.NORMAL
    selections: list[RoomSelectionPayload] = Field(min_length=1)
    number_of_adults: int = Field(ge=1)
    number_of_kids: int = Field(default=0, ge=0)
    agent_id: Optional[int] = Field(default=None, gt=0)
    discount: DiscountPayload = Field(default_factory=DiscountPayload)
    advance_paid: Decimal = Field(default=ZERO, ge=0)
    manual_cost: Decimal = Field(default=ZERO, ge=0)


class BookingCreateRequest(QuoteRequest):
    guest_name: str = Field(min_length=1, max_length=120)
    phone: str = Field(default="", max_length=32)

    @field_validator("guest_name")
    @classmethod
    def validate_guest_name(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("guest_name must not be blank")
        return value.strip()


class BookingUpdateRequest(StayDatesRequest):
    selections: list[RoomSelectionPayload] = Field(min_length=1)
    number_of_adults: int = Field(ge=1)
    number_of_kids: int = Field(default=0, ge=0)
    discount: DiscountPayload = Field(default_factory=DiscountPayload)
    advance_paid: Optional[Decimal] = Field(default=None, ge=0)


class StatusChangeRequest(BaseModel):
    status: BookingStatus


class AvailablePropertyResponse(BaseModel):
    property_type_id: int
    name: str
    available_rooms: int = Field(ge=0)
    total_rooms: int = Field(ge=0)
    base_cost_per_night: Decimal
    extra_person_cost_per_night: Decimal


class AvailabilityResponse(BaseModel):
    check_in: date
    check_out: date
    property_types: list[AvailablePropertyResponse]


class QuoteResponse(BaseModel):
    category: BookingCategory
    nights: int = Field(ge=1)
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    advance_paid: Decimal
    due_amount: Decimal
    amount_payable: Decimal = Field(ge=0)
    payment_status: PaymentStatus
    commission_percentage: Optional[Decimal] = None
    commission_source: Optional[str] = None


class PaymentResponse(BaseModel):
    total_amount: Decimal
    paid_amount: Decimal
    balance_due: Decimal
    payment_status: PaymentStatus
    refund_amount: Decimal


class BookingResponse(BaseModel):
    booking_id: int
    confirmation_number: str
    guest_name: str
    phone: str
    number_of_adults: int
    number_of_kids: int
    check_in: date
    check_out: date
    status: BookingStatus
    category: BookingCategory
    agent_id: Optional[int] = None
    rooms: list[RoomSelectionPayload]
    payment: Optional[PaymentResponse] = None
    cancellation_message: Optional[str] = None
    actual_check_in_time: Optional[str] = None


class BookingWithQuoteResponse(BaseModel):
    booking: BookingResponse
    quote: QuoteResponse


class CommissionResponse(BaseModel):
    agent_id: int
    property_type_id: int
    booking_date: date
    commission_percentage: Decimal
    source: str
    override_id: Optional[int] = None


def to_quote_response(quote: Quote) -> QuoteResponse:
    breakdown = quote.breakdown
    return QuoteResponse(
        category=quote.category,
        nights=quote.nights,
        subtotal=breakdown.subtotal,
        discount=breakdown.discount,
        total=breakdown.total,
        advance_paid=breakdown.advance_paid,
        due_amount=breakdown.due_amount,
        amount_payable=breakdown.amount_payable,
        payment_status=quote.payment_status,
        commission_percentage=quote.commission_percentage,
        commission_source=quote.commission_source,
    )


def to_booking_response(booking: Booking) -> BookingResponse:
    payment = None
    if booking.payment is not None:
        payment = PaymentResponse(
            total_amount=booking.payment.total_amount,
            paid_amount=booking.payment.paid_amount,
            balance_due=booking.payment.balance_due,
            payment_status=booking.payment.payment_status,
            refund_amount=booking.payment.refund_amount,
        )
    return BookingResponse(
        booking_id=booking.booking_id,
        confirmation_number=booking.confirmation_number,
        guest_name=booking.guest_name,
        phone=booking.phone,
        number_of_adults=booking.number_of_adults,
        number_of_kids=booking.number_of_kids,
        check_in=booking.stay_range.start,
        check_out=booking.stay_range.end,
        status=booking.status,
        category=booking.category,
        agent_id=booking.agent_id,
        rooms=[
            RoomSelectionPayload(
                property_type_id=selection.property_type_id,
                room_count=selection.room_count,
                room_ids=list(selection.room_ids),
            )
            for selection in booking.selections
        ],
        payment=payment,
        cancellation_message=booking.cancellation_message,
        actual_check_in_time=booking.actual_check_in_time,
    )


@router.post(
    "/availability",
    response_model=AvailabilityResponse,
    status_code=status.HTTP_200_OK,
)
async def availability(
    payload: StayDatesRequest,
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityResponse:
    """Bookable property types with at least one free room, priciest first."""
    try:
        rows = service.list_bookable(check_in=payload.check_in, check_out=payload.check_out)
        return AvailabilityResponse(
            check_in=payload.check_in,
            check_out=payload.check_out,
            property_types=[AvailablePropertyResponse(**row) for row in rows],
        )
    except AvailabilityValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except StoreUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Availability could not be loaded. Please retry.",
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected availability failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute availability",
        ) from exc


@router.post("/quote", response_model=QuoteResponse, status_code=status.HTTP_200_OK)
async def quote(
    payload: QuoteRequest,
    service: QuoteService = Depends(get_quote_service),
) -> QuoteResponse:
    try:
        result = service.quote(
            category=payload.category,
            check_in=payload.check_in,
            check_out=payload.check_out,
            selections=[item.to_selection() for item in payload.selections],
            number_of_adults=payload.number_of_adults,
            number_of_kids=payload.number_of_kids,
            agent_id=payload.agent_id,
            discount=payload.discount.to_discount(),
            advance_paid=payload.advance_paid,
            manual_cost=payload.manual_cost,
        )
        return to_quote_response(result)
    except (QuoteValidationError, CommissionError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except PropertyTypeNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except StoreUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected quote failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute quote",
        ) from exc


@router.post(
    "/bookings",
    response_model=BookingWithQuoteResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_booking(
    payload: BookingCreateRequest,
    service: BookingService = Depends(get_booking_service),
) -> BookingWithQuoteResponse:
    """Price and reserve in one guarded write; a lost race is reported as 409."""
    try:
        booking, result = service.create_booking(
            BookingRequest(
                guest_name=payload.guest_name,
                phone=payload.phone,
                check_in=payload.check_in,
                check_out=payload.check_out,
                selections=[item.to_selection() for item in payload.selections],
                number_of_adults=payload.number_of_adults,
                number_of_kids=payload.number_of_kids,
                category=payload.category,
                agent_id=payload.agent_id,
                discount=payload.discount.to_discount(),
                advance_paid=payload.advance_paid,
                manual_cost=payload.manual_cost,
            )
        )
        return BookingWithQuoteResponse(
            booking=to_booking_response(booking),
            quote=to_quote_response(result),
        )
    except (BookingValidationError, QuoteValidationError, CommissionError, UnknownRoomError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except (PropertyTypeNotFoundError, UnknownPropertyTypeError) as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except (CapacityExceededError, RoomUnavailableError, WriteConflictError) as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except StoreUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected booking failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create booking",
        ) from exc


@router.get(
    "/bookings",
    response_model=list[BookingResponse],
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_admin)],
)
async def list_bookings(
    booking_status: Optional[BookingStatus] = Query(default=None, alias="status"),
    service: BookingService = Depends(get_booking_service),
) -> list[BookingResponse]:
    try:
        return [to_booking_response(item) for item in service.list_bookings(status=booking_status)]
    except StoreUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc


@router.get(
    "/bookings/{confirmation_number}",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
)
async def find_booking(
    confirmation_number: str,
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        return to_booking_response(service.find_by_confirmation(confirmation_number))
    except BookingNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except StoreUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc


@router.patch(
    "/bookings/{booking_id}",
    response_model=BookingWithQuoteResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_admin)],
)
async def update_booking(
    booking_id: int,
    payload: BookingUpdateRequest,
    service: BookingService = Depends(get_booking_service),
) -> BookingWithQuoteResponse:
    try:
        booking, result = service.update_booking(
            booking_id,
            check_in=payload.check_in,
            check_out=payload.check_out,
            selections=[item.to_selection() for item in payload.selections],
            number_of_adults=payload.number_of_adults,
            number_of_kids=payload.number_of_kids,
            discount=payload.discount.to_discount(),
            advance_paid=payload.advance_paid,
        )
        return BookingWithQuoteResponse(
            booking=to_booking_response(booking),
            quote=to_quote_response(result),
        )
    except (BookingValidationError, QuoteValidationError, CommissionError, UnknownRoomError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except (BookingNotFoundError, PropertyTypeNotFoundError, UnknownPropertyTypeError) as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except (
        CapacityExceededError,
        RoomUnavailableError,
        WriteConflictError,
        InvalidStatusTransitionError,
    ) as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except StoreUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected booking update failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update booking",
        ) from exc


@router.post(
    "/bookings/{booking_id}/status",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_admin)],
)
async def change_status(
    booking_id: int,
    payload: StatusChangeRequest,
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        return to_booking_response(service.change_status(booking_id, payload.status))
    except BookingNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except InvalidStatusTransitionError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except StoreUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc


@router.post(
    "/bookings/{booking_id}/cancel",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_admin)],
)
async def cancel_booking(
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        return to_booking_response(service.cancel_booking(booking_id))
    except BookingNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except InvalidStatusTransitionError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except StoreUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc


@router.delete(
    "/bookings/{booking_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
async def delete_booking(
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
) -> Response:
    try:
        service.delete_booking(booking_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except BookingNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except StoreUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc


@router.get(
    "/agents/{agent_id}/commission",
    response_model=CommissionResponse,
    status_code=status.HTTP_200_OK,
)
async def agent_commission(
    agent_id: int,
    property_type_id: int = Query(gt=0),
    booking_date: date = Query(),
    service: CommissionService = Depends(get_commission_service),
) -> CommissionResponse:
    try:
        resolved = service.resolve(
            agent_id=agent_id,
            property_type_id=property_type_id,
            booking_date=booking_date,
        )
        return CommissionResponse(
            agent_id=agent_id,
            property_type_id=property_type_id,
            booking_date=booking_date,
            commission_percentage=resolved.percentage,
            source=resolved.source,
            override_id=resolved.override_id,
        )
    except CommissionError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except StoreUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
