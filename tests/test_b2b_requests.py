from __future__ import annotations

import threading
from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from stayhub.domain.models import (
    AgentStatus,
    BookingCategory,
    BookingStatus,
    PaymentStatus,
    PriceBreakdown,
    RequestStatus,
    RoomSelection,
)
from stayhub.repository.data_repository import (
    BookingDraft,
    BookingRepository,
    CapacityExceededError,
    RequestNotPendingError,
)
from stayhub.services import b2b_service
from stayhub.services.b2b_service import B2BRequestService, B2BRequestStateError
from stayhub.services.booking_service import BookingRequest, BookingService, BookingValidationError
from stayhub.services.commission_service import AgentNotFoundError
from stayhub.utils.config import get_settings


CHECK_IN = date(2026, 2, 1)
CHECK_OUT = date(2026, 2, 3)


def _build_test_settings(tmp_path, filename: str):
    get_settings.cache_clear()
    base = get_settings()
    return replace(
        base,
        database_path=tmp_path / filename,
        b2b_advance_ratio=Decimal("0.5"),
        store_retry_base_delay_seconds=0.0,
    )


def _setup(tmp_path):
    settings = _build_test_settings(tmp_path, "b2b.db")
    repository = BookingRepository(settings)
    repository.initialize_database()
    tent_id = repository.create_property_type("Deluxe Tent", 2, Decimal("2000"), Decimal("500"), "DT")
    cottage_id = repository.create_property_type("Premium Cottage", 1, Decimal("3000"), Decimal("800"), "PC")
    agent_id = repository.create_agent(
        "Demo Travels",
        status=AgentStatus.APPROVED,
        commission_percentage=Decimal("10"),
    )
    repository.create_commission_override(
        start_date=date(2026, 1, 1),
        end_date=date(2026, 12, 31),
        commission_percentage=Decimal("20"),
        agent_id=agent_id,
        property_type_id=cottage_id,
    )
    service = B2BRequestService(repository=repository, settings=settings)
    bookings = BookingService(repository=repository, settings=settings)
    return repository, service, bookings, agent_id, tent_id, cottage_id


def _submit(service: B2BRequestService, agent_id: int, selections, adults: int = 2):
    return service.submit(
        agent_id=agent_id,
        guest_name="Ravi Kumar",
        guest_phone="+919999999999",
        check_in=CHECK_IN,
        check_out=CHECK_OUT,
        selections=selections,
        number_of_adults=adults,
    )


def test_submission_creates_one_request_per_property_type(tmp_path):
    _, service, _, agent_id, tent_id, cottage_id = _setup(tmp_path)

    created = _submit(
        service,
        agent_id,
        [
            RoomSelection(property_type_id=tent_id, room_count=1),
            RoomSelection(property_type_id=cottage_id, room_count=1),
        ],
    )

    assert len(created) == 2
    tent_request, cottage_request = sorted(created, key=lambda item: item.property_type_id)
    assert tent_request.confirmation_number.startswith("B2BREQ")
    assert tent_request.confirmation_number.endswith("-1")
    assert cottage_request.confirmation_number.endswith("-2")
    assert tent_request.confirmation_number[:-2] == cottage_request.confirmation_number[:-2]

    # Two nights: tent 4000 at the agent default 10%, cottage 6000 at the 20% override.
    assert tent_request.total_cost == Decimal("4000.00")
    assert tent_request.agent_rate == Decimal("3600.00")
    assert tent_request.advance_amount == Decimal("1800.00")
    assert cottage_request.total_cost == Decimal("6000.00")
    assert cottage_request.agent_rate == Decimal("4800.00")
    assert cottage_request.advance_amount == Decimal("2400.00")
    assert all(item.status is RequestStatus.PENDING for item in created)


def test_single_property_request_has_no_suffix(tmp_path):
    _, service, _, agent_id, tent_id, _ = _setup(tmp_path)
    [request] = _submit(service, agent_id, [RoomSelection(property_type_id=tent_id, room_count=1)])
    assert "-" not in request.confirmation_number


def test_unknown_agent_cannot_submit(tmp_path):
    _, service, _, _, tent_id, _ = _setup(tmp_path)
    with pytest.raises(AgentNotFoundError):
        _submit(service, 999, [RoomSelection(property_type_id=tent_id, room_count=1)])


def test_submission_beyond_free_rooms_is_refused(tmp_path):
    _, service, _, agent_id, _, cottage_id = _setup(tmp_path)
    with pytest.raises(BookingValidationError):
        _submit(service, agent_id, [RoomSelection(property_type_id=cottage_id, room_count=2)])


def test_approval_creates_a_confirmed_b2b_booking(tmp_path):
    repository, service, bookings, agent_id, tent_id, _ = _setup(tmp_path)
    [request] = _submit(service, agent_id, [RoomSelection(property_type_id=tent_id, room_count=1)])

    approved = service.approve(request.request_id, admin_notes="ok")

    assert approved.status is RequestStatus.APPROVED
    assert approved.booking_id is not None
    booking = bookings.get_booking(approved.booking_id)
    assert booking.category is BookingCategory.B2B
    assert booking.confirmation_number == request.confirmation_number
    assert booking.payment.total_amount == Decimal("3600.00")
    assert booking.payment.paid_amount == Decimal("1800.00")
    assert booking.payment.payment_status is PaymentStatus.PARTIAL

    with pytest.raises(B2BRequestStateError):
        service.approve(request.request_id)
    with pytest.raises(B2BRequestStateError):
        service.reject(request.request_id, "too late")


def test_approval_is_capacity_guarded(tmp_path):
    _, service, bookings, agent_id, _, cottage_id = _setup(tmp_path)
    [request] = _submit(service, agent_id, [RoomSelection(property_type_id=cottage_id, room_count=1)])
    bookings.create_booking(
        BookingRequest(
            guest_name="Walk-in",
            check_in=CHECK_IN,
            check_out=CHECK_OUT,
            selections=[RoomSelection(property_type_id=cottage_id, room_count=1)],
            number_of_adults=2,
        )
    )

    with pytest.raises(CapacityExceededError):
        service.approve(request.request_id)
    assert service.list_requests(status=RequestStatus.PENDING)[0].request_id == request.request_id


def test_rejection_requires_notes_and_stores_them(tmp_path):
    _, service, _, agent_id, tent_id, _ = _setup(tmp_path)
    [request] = _submit(service, agent_id, [RoomSelection(property_type_id=tent_id, room_count=1)])

    with pytest.raises(BookingValidationError):
        service.reject(request.request_id, "   ")

    rejected = service.reject(request.request_id, "Dates blocked for maintenance")
    assert rejected.status is RequestStatus.REJECTED
    assert rejected.admin_notes == "Dates blocked for maintenance"
    assert service.list_requests(agent_id=agent_id, status=RequestStatus.PENDING) == []


def test_a_decided_request_cannot_be_decided_again_in_the_store(tmp_path):
    repository, service, _, agent_id, tent_id, _ = _setup(tmp_path)
    [request] = _submit(service, agent_id, [RoomSelection(property_type_id=tent_id, room_count=1)])
    repository.reject_b2b_request(request.request_id, "Dates blocked")

    with pytest.raises(RequestNotPendingError):
        repository.reject_b2b_request(request.request_id, "again")
    with pytest.raises(RequestNotPendingError):
        repository.approve_b2b_request(
            request_id=request.request_id,
            draft=BookingDraft(
                confirmation_number=request.confirmation_number,
                guest_name=request.guest_name,
                phone=request.guest_phone,
                number_of_adults=request.number_of_adults,
                number_of_kids=request.number_of_kids,
                stay_range=request.stay_range,
                status=BookingStatus.CONFIRMED,
                category=BookingCategory.B2B,
                agent_id=agent_id,
            ),
            selection=RoomSelection(property_type_id=tent_id, room_count=1),
            breakdown=PriceBreakdown(
                subtotal=request.agent_rate,
                discount=Decimal("0"),
                total=request.agent_rate,
                advance_paid=request.advance_amount,
                due_amount=request.agent_rate - request.advance_amount,
            ),
            payment_status=PaymentStatus.PARTIAL,
            admin_notes=None,
        )
    assert repository.count_bookings() == 0
    assert repository.get_b2b_request(request.request_id).admin_notes == "Dates blocked"


def test_concurrent_approvals_book_once_and_report_a_state_conflict(tmp_path):
    repository, service, _, agent_id, tent_id, _ = _setup(tmp_path)
    [request] = _submit(service, agent_id, [RoomSelection(property_type_id=tent_id, room_count=1)])

    barrier = threading.Barrier(2)
    outcomes: list[str] = []
    lock = threading.Lock()

    def attempt() -> None:
        barrier.wait()
        try:
            service.approve(request.request_id)
            result = "approved"
        except B2BRequestStateError:
            result = "conflict"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=attempt) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(outcomes) == ["approved", "conflict"]
    assert repository.count_bookings() == 1


def test_request_numbers_already_in_use_are_drawn_again(tmp_path, monkeypatch):
    _, service, _, agent_id, tent_id, cottage_id = _setup(tmp_path)
    numbers = iter(["B2BREQ000001AAA", "B2BREQ000001AAA", "B2BREQ000002BBB"])
    monkeypatch.setattr(b2b_service, "generate_request_number", lambda prefix: next(numbers))

    first = _submit(
        service,
        agent_id,
        [
            RoomSelection(property_type_id=tent_id, room_count=1),
            RoomSelection(property_type_id=cottage_id, room_count=1),
        ],
    )
    [second] = _submit(service, agent_id, [RoomSelection(property_type_id=tent_id, room_count=1)])

    assert {item.confirmation_number for item in first} == {"B2BREQ000001AAA-1", "B2BREQ000001AAA-2"}
    assert second.confirmation_number == "B2BREQ000002BBB"
