"""Domain models for availability, pricing and booking workflows."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional


ZERO = Decimal("0")


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked-in"
    CHECKED_OUT = "checked-out"
    CANCELLED = "cancelled"


class BookingCategory(str, Enum):
    """Sales channel of a booking; decides which cost rule applies."""

    NORMAL = "normal"
    B2B = "b2b"
    AIRBNB = "airbnb"
    MMT = "mmt"
    PROMOTION = "promotion"
    OTHER = "other"

    @property
    def is_manually_priced(self) -> bool:
        return self in (BookingCategory.AIRBNB, BookingCategory.MMT)

    @property
    def is_complimentary(self) -> bool:
        return self is BookingCategory.PROMOTION


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


class AgentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class StayRange:
    """Half-open interval [start, end) of calendar days."""

    start: date
    end: date


@dataclass(frozen=True)
class PropertyType:
    property_type_id: int
    name: str
    total_room_count: int
    base_cost_per_night: Decimal
    extra_person_cost_per_night: Decimal = ZERO
    is_available: bool = True


@dataclass(frozen=True)
class RoomAllocation:
    """One booking's claim on rooms of a property type."""

    property_type_id: int
    stay_range: StayRange
    room_count: int
    booking_status: BookingStatus
    is_deleted: bool = False
    booking_id: Optional[int] = None
    room_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class RoomSelection:
    property_type_id: int
    room_count: int = 0
    room_ids: tuple[str, ...] = ()

    @property
    def rooms_requested(self) -> int:
        if self.room_ids:
            return len(self.room_ids)
        return self.room_count


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    advance_paid: Decimal
    due_amount: Decimal

    @property
    def amount_payable(self) -> Decimal:
        """Outstanding balance; overpayment is not a refund owed."""
        return max(ZERO, self.due_amount)

    def to_dict(self) -> dict[str, str]:
        return {
            "subtotal": str(self.subtotal),
            "discount": str(self.discount),
            "total": str(self.total),
            "advance_paid": str(self.advance_paid),
            "due_amount": str(self.due_amount),
        }


@dataclass(frozen=True)
class AvailableProperty:
    property_type: PropertyType
    available_rooms: int


@dataclass(frozen=True)
class Agent:
    agent_id: int
    name: str
    company_name: str
    status: AgentStatus
    commission_percentage: Optional[Decimal] = None


@dataclass(frozen=True)
class CommissionOverride:
    override_id: int
    start_date: date
    end_date: date
    commission_percentage: Decimal
    agent_id: Optional[int] = None
    property_type_id: Optional[int] = None
    is_active: bool = True


@dataclass(frozen=True)
class Payment:
    booking_id: int
    total_amount: Decimal
    paid_amount: Decimal
    balance_due: Decimal
    payment_status: PaymentStatus
    refund_amount: Decimal = ZERO


@dataclass(frozen=True)
class Booking:
    booking_id: int
    confirmation_number: str
    guest_name: str
    phone: str
    number_of_adults: int
    number_of_kids: int
    stay_range: StayRange
    status: BookingStatus
    category: BookingCategory
    agent_id: Optional[int] = None
    manual_cost: Decimal = ZERO
    is_deleted: bool = False
    cancellation_message: Optional[str] = None
    actual_check_in_time: Optional[str] = None
    selections: tuple[RoomSelection, ...] = field(default_factory=tuple)
    payment: Optional[Payment] = None


@dataclass(frozen=True)
class B2BBookingRequest:
    request_id: int
    agent_id: int
    guest_name: str
    guest_phone: str
    number_of_adults: int
    number_of_kids: int
    stay_range: StayRange
    property_type_id: int
    room_count: int
    total_cost: Decimal
    agent_rate: Decimal
    advance_amount: Decimal
    status: RequestStatus
    confirmation_number: str
    admin_notes: Optional[str] = None
    booking_id: Optional[int] = None


@dataclass(frozen=True)
class OccupancyRow:
    property_type_id: int
    name: str
    total_rooms: int
    booked_rooms: int
    available_rooms: int
