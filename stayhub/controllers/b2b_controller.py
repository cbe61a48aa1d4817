"""HTTP controller layer for agent booking requests."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from stayhub.controllers.booking_controller import RoomSelectionPayload, StayDatesRequest
from stayhub.controllers.dependencies import get_b2b_service, require_admin
from stayhub.domain.models import B2BBookingRequest, RequestStatus
from stayhub.repository.data_repository import (
    CapacityExceededError,
    StoreUnavailableError,
    WriteConflictError,
)
from stayhub.services.availability_service import PropertyTypeNotFoundError
from stayhub.services.b2b_service import (
    B2BRequestNotFoundError,
    B2BRequestService,
    B2BRequestStateError,
)
from stayhub.services.booking_service import BookingValidationError
from stayhub.services.commission_service import CommissionError
from stayhub.services.quote_service import QuoteValidationError
from stayhub.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/b2b", tags=["b2b"])


class B2BSubmitRequest(StayDatesRequest):
    agent_id: int = Field(gt=0)
    guest_name: str = Field(min_length=1, max_length=120)
    guest_phone: str = Field(default="", max_length=32)
    selections: list[RoomSelectionPayload] = Field(min_length=1)
    number_of_adults: int = Field(ge=1)
    number_of_kids: int = Field(default=0, ge=0)


class ApproveRequest(BaseModel):
    admin_notes: Optional[str] = Field(default=None, max_length=500)


class RejectRequest(BaseModel):
    admin_notes: str = Field(min_length=1, max_length=500)


class B2BRequestResponse(BaseModel):
    request_id: int
    agent_id: int
    guest_name: str
    guest_phone: str
    number_of_adults: int
    number_of_kids: int
    check_in: date
    check_out: date
    property_type_id: int
    room_count: int
    total_cost: Decimal
    agent_rate: Decimal
    advance_amount: Decimal
    status: RequestStatus
    confirmation_number: str
    admin_notes: Optional[str] = None
    booking_id: Optional[int] = None


def to_request_response(request: B2BBookingRequest) -> B2BRequestResponse:
    return B2BRequestResponse(
        request_id=request.request_id,
        agent_id=request.agent_id,
        guest_name=request.guest_name,
        guest_phone=request.guest_phone,
        number_of_adults=request.number_of_adults,
        number_of_kids=request.number_of_kids,
        check_in=request.stay_range.start,
        check_out=request.stay_range.end,
        property_type_id=request.property_type_id,
        room_count=request.room_count,
        total_cost=request.total_cost,
        agent_rate=request.agent_rate,
        advance_amount=request.advance_amount,
        status=request.status,
        confirmation_number=request.confirmation_number,
        admin_notes=request.admin_notes,
        booking_id=request.booking_id,
    )


@router.post(
    "/requests",
    response_model=list[B2BRequestResponse],
    status_code=status.HTTP_201_CREATED,
)
async def submit_requests(
    payload: B2BSubmitRequest,
    service: B2BRequestService = Depends(get_b2b_service),
) -> list[B2BRequestResponse]:
    try:
        created = service.submit(
            agent_id=payload.agent_id,
            guest_name=payload.guest_name,
            guest_phone=payload.guest_phone,
            check_in=payload.check_in,
            check_out=payload.check_out,
            selections=[item.to_selection() for item in payload.selections],
            number_of_adults=payload.number_of_adults,
            number_of_kids=payload.number_of_kids,
        )
        return [to_request_response(item) for item in created]
    except (BookingValidationError, QuoteValidationError, CommissionError) as exc:
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
        logger.exception("Unexpected B2B submission failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to submit booking request",
        ) from exc


@router.get(
    "/requests",
    response_model=list[B2BRequestResponse],
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_admin)],
)
async def list_requests(
    agent_id: Optional[int] = Query(default=None, gt=0),
    request_status: Optional[RequestStatus] = Query(default=None, alias="status"),
    service: B2BRequestService = Depends(get_b2b_service),
) -> list[B2BRequestResponse]:
    try:
        return [
            to_request_response(item)
            for item in service.list_requests(agent_id=agent_id, status=request_status)
        ]
    except StoreUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc


@router.post(
    "/requests/{request_id}/approve",
    response_model=B2BRequestResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_admin)],
)
async def approve_request(
    request_id: int,
    payload: ApproveRequest,
    service: B2BRequestService = Depends(get_b2b_service),
) -> B2BRequestResponse:
    try:
        return to_request_response(service.approve(request_id, payload.admin_notes))
    except B2BRequestNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except CommissionError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except (B2BRequestStateError, CapacityExceededError, WriteConflictError) as exc:
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
        logger.exception("Unexpected B2B approval failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to approve booking request",
        ) from exc


@router.post(
    "/requests/{request_id}/reject",
    response_model=B2BRequestResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_admin)],
)
async def reject_request(
    request_id: int,
    payload: RejectRequest,
    service: B2BRequestService = Depends(get_b2b_service),
) -> B2BRequestResponse:
    try:
        return to_request_response(service.reject(request_id, payload.admin_notes))
    except B2BRequestNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except BookingValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except B2BRequestStateError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except StoreUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
