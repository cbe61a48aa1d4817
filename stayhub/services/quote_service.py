"""Price quotes shared by direct bookings, booking updates and agent requests."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from stayhub.domain.constraints import (
    PricingConfig,
    validate_known_rooms,
    validate_money,
    validate_occupants,
    validate_pricing_config,
    validate_selections,
)
from stayhub.domain.models import (
    ZERO,
    BookingCategory,
    PaymentStatus,
    PriceBreakdown,
    PropertyType,
    RoomSelection,
)
from stayhub.domain.pricing import (
    NO_DISCOUNT,
    Discount,
    PricingRequest,
    cost_for_category,
    count_nights,
    derive_payment_status,
)
from stayhub.repository.data_repository import BookingRepository
from stayhub.services.availability_service import (
    AvailabilityValidationError,
    PropertyTypeNotFoundError,
    build_stay_range,
)
from stayhub.services.commission_service import CommissionService
from stayhub.utils.config import Settings, get_settings


class QuoteValidationError(Exception):
    """Raised when quote inputs are invalid."""


@dataclass(frozen=True)
class Quote:
    category: BookingCategory
    nights: int
    breakdown: PriceBreakdown
    payment_status: PaymentStatus
    commission_percentage: Optional[Decimal] = None
    commission_source: Optional[str] = None

    def to_dict(self) -> dict[str, object]:
        return {
            "category": self.category.value,
            "nights": self.nights,
            **self.breakdown.to_dict(),
            "amount_payable": str(self.breakdown.amount_payable),
            "payment_status": self.payment_status.value,
            "commission_percentage": (
                None if self.commission_percentage is None else str(self.commission_percentage)
            ),
            "commission_source": self.commission_source,
        }


def pricing_config_from(settings: Settings) -> PricingConfig:
    config = PricingConfig(
        default_commission_percentage=settings.default_commission_percentage,
        occupancy_per_room=settings.base_occupancy_per_room,
        b2b_advance_ratio=settings.b2b_advance_ratio,
        refund_window_days=settings.refund_window_days,
    )
    validate_pricing_config(config)
    return config


class QuoteService:
    """Resolves property types and commission, then runs the cost composer."""

    def __init__(
        self,
        repository: Optional[BookingRepository] = None,
        settings: Optional[Settings] = None,
        commission_service: Optional[CommissionService] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._config = pricing_config_from(self._settings)
        self._repository = repository or BookingRepository(self._settings)
        self._commission_service = commission_service or CommissionService(
            repository=self._repository,
            settings=self._settings,
        )

    @property
    def config(self) -> PricingConfig:
        return self._config

    def property_type_map(self, selections: Sequence[RoomSelection]) -> dict[int, PropertyType]:
        property_types = {
            item.property_type_id: item for item in self._repository.list_property_types()
        }
        for selection in selections:
            if selection.property_type_id not in property_types:
                raise PropertyTypeNotFoundError(
                    f"property_type_id {selection.property_type_id} not found"
                )
        return property_types

    def quote(
        self,
        *,
        category: BookingCategory,
        check_in: date,
        check_out: date,
        selections: Sequence[RoomSelection],
        number_of_adults: int,
        number_of_kids: int = 0,
        agent_id: Optional[int] = None,
        discount: Discount = NO_DISCOUNT,
        advance_paid: Decimal = ZERO,
        manual_cost: Decimal = ZERO,
    ) -> Quote:
        try:
            stay_range = build_stay_range(check_in, check_out)
        except AvailabilityValidationError as exc:
            raise QuoteValidationError(str(exc)) from exc
        try:
            validate_selections(selections)
            validate_occupants(number_of_adults, number_of_kids)
            validate_money("advance_paid", advance_paid)
            validate_money("discount", discount.value)
            validate_money("manual_cost", manual_cost)
        except ValueError as exc:
            raise QuoteValidationError(str(exc)) from exc
        if discount.is_percentage and discount.value > 100:
            raise QuoteValidationError("percentage discount must not exceed 100")
        property_types = self.property_type_map(selections)
        self._check_named_rooms(selections)

        commission_percentage: Optional[Decimal] = None
        commission_source: Optional[str] = None
        if category is BookingCategory.B2B:
            if agent_id is None:
                raise QuoteValidationError("agent_id is required for b2b bookings")
            # Resolved against the first selected property type on the check-in date.
            resolved = self._commission_service.resolve(
                agent_id=agent_id,
                property_type_id=selections[0].property_type_id,
                booking_date=check_in,
            )
            commission_percentage = resolved.percentage
            commission_source = resolved.source

        breakdown = cost_for_category(
            PricingRequest(
                category=category,
                selections=selections,
                stay_range=stay_range,
                property_types=property_types,
                occupants=number_of_adults,
                commission_percentage=commission_percentage,
                discount=discount,
                advance_paid=advance_paid,
                manual_cost=manual_cost,
            ),
            occupancy_per_room=self._config.occupancy_per_room,
        )
        if breakdown.discount > breakdown.subtotal:
            raise QuoteValidationError("discount must not exceed the subtotal")
        return Quote(
            category=category,
            nights=count_nights(stay_range.start, stay_range.end),
            breakdown=breakdown,
            payment_status=derive_payment_status(breakdown.total, breakdown.advance_paid),
            commission_percentage=commission_percentage,
            commission_source=commission_source,
        )

    def _check_named_rooms(self, selections: Sequence[RoomSelection]) -> None:
        for selection in selections:
            if not selection.room_ids:
                continue
            try:
                validate_known_rooms(
                    selection.property_type_id,
                    selection.room_ids,
                    self._repository.list_room_numbers(selection.property_type_id),
                )
            except ValueError as exc:
                raise QuoteValidationError(str(exc)) from exc
