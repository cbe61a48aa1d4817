"""Occupancy reporting for the admin dashboard."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Optional

import pandas as pd

from stayhub.domain.availability import occupancy_on
from stayhub.domain.models import BookingStatus, RequestStatus
from stayhub.repository.data_repository import BookingRepository
from stayhub.utils.config import Settings, get_settings
from stayhub.utils.logger import format_fields, get_logger


logger = get_logger(__name__)

MAX_TREND_DAYS = 90


class DashboardValidationError(Exception):
    """Raised when dashboard query inputs are invalid."""


class DashboardService:
    """Summarises booked and free rooms using the shared availability engine."""

    def __init__(
        self,
        repository: Optional[BookingRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or BookingRepository(self._settings)

    def _occupancy_frame(self, day: date) -> pd.DataFrame:
        property_types = self._repository.list_property_types()
        allocations = self._repository.list_allocations(
            property_type_ids=[item.property_type_id for item in property_types],
        )
        frame = pd.DataFrame(
            [
                {
                    "property_type_id": row.property_type_id,
                    "name": row.name,
                    "total_rooms": row.total_rooms,
                    "booked_rooms": row.booked_rooms,
                    "available_rooms": row.available_rooms,
                }
                for row in occupancy_on(day, property_types, allocations)
            ],
            columns=["property_type_id", "name", "total_rooms", "booked_rooms", "available_rooms"],
        )
        if frame.empty:
            frame["occupancy_rate"] = pd.Series(dtype=float)
            return frame

        # Capped at 1.0; legacy rows may be overbooked.
        frame["occupancy_rate"] = (
            frame["booked_rooms"].clip(upper=frame["total_rooms"])
            / frame["total_rooms"].where(frame["total_rooms"] > 0)
        ).fillna(0.0).round(4)
        return frame

    def occupancy(self, day: date) -> dict[str, Any]:
        frame = self._occupancy_frame(day)
        total_rooms = int(frame["total_rooms"].sum()) if not frame.empty else 0
        booked_rooms = int(frame["booked_rooms"].sum()) if not frame.empty else 0
        available_rooms = int(frame["available_rooms"].sum()) if not frame.empty else 0

        summary = {
            "total_rooms": total_rooms,
            "booked_rooms": booked_rooms,
            "available_rooms": available_rooms,
            "occupancy_rate": round(min(booked_rooms, total_rooms) / total_rooms, 4) if total_rooms else 0.0,
            "checked_in_bookings": len(self._repository.list_bookings(status=BookingStatus.CHECKED_IN)),
            "pending_b2b_requests": len(
                self._repository.list_b2b_requests(status=RequestStatus.PENDING)
            ),
        }
        logger.info(
            "Occupancy computed | %s",
            format_fields(day=day, booked_rooms=booked_rooms, total_rooms=total_rooms),
        )
        return {
            "day": day,
            "property_types": [
                {
                    "property_type_id": int(row.property_type_id),
                    "name": str(row.name),
                    "total_rooms": int(row.total_rooms),
                    "booked_rooms": int(row.booked_rooms),
                    "available_rooms": int(row.available_rooms),
                    "occupancy_rate": float(row.occupancy_rate),
                }
                for row in frame.itertuples(index=False)
            ],
            "summary": summary,
        }

    def occupancy_trend(self, start: date, days: int) -> list[dict[str, Any]]:
        """Booked rooms per night from `start`, one row per day."""
        if days < 1 or days > MAX_TREND_DAYS:
            raise DashboardValidationError(f"days must be between 1 and {MAX_TREND_DAYS}")
        property_types = self._repository.list_property_types()
        allocations = self._repository.list_allocations(
            property_type_ids=[item.property_type_id for item in property_types],
        )
        total_rooms = sum(item.total_room_count for item in property_types)

        records = []
        for offset in range(days):
            day = start + timedelta(days=offset)
            booked = sum(row.booked_rooms for row in occupancy_on(day, property_types, allocations))
            records.append({"day": day, "booked_rooms": booked})

        frame = pd.DataFrame(records, columns=["day", "booked_rooms"])
        frame["total_rooms"] = total_rooms
        frame["occupancy_rate"] = (
            (frame["booked_rooms"].clip(upper=total_rooms) / total_rooms).round(4)
            if total_rooms
            else 0.0
        )
        return [
            {
                "day": row.day,
                "booked_rooms": int(row.booked_rooms),
                "total_rooms": int(row.total_rooms),
                "occupancy_rate": float(row.occupancy_rate),
            }
            for row in frame.itertuples(index=False)
        ]
