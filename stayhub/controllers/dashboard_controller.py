"""Controller layer for staff login, health and the occupancy dashboard."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel, Field

from stayhub.controllers.dependencies import (
    bearer_scheme,
    get_auth_service,
    get_dashboard_service,
    require_admin,
)
from stayhub.repository.data_repository import StoreUnavailableError
from stayhub.services.auth_service import (
    AdminTokenNotConfiguredError,
    AuthService,
    InvalidAdminTokenError,
)
from stayhub.services.dashboard_service import DashboardService, DashboardValidationError
from stayhub.utils.config import get_settings
from stayhub.utils.logger import get_logger


logger = get_logger(__name__)
settings = get_settings()

router = APIRouter(tags=["dashboard"])


class LoginRequest(BaseModel):
    admin_token: str = Field(min_length=1)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in_minutes: int = Field(gt=0)


class HealthResponse(BaseModel):
    status: str
    app_name: str
    version: str


class OccupancyRowResponse(BaseModel):
    property_type_id: int
    name: str
    total_rooms: int = Field(ge=0)
    booked_rooms: int = Field(ge=0)
    available_rooms: int = Field(ge=0)
    occupancy_rate: float = Field(ge=0.0, le=1.0)


class OccupancySummaryResponse(BaseModel):
    total_rooms: int = Field(ge=0)
    booked_rooms: int = Field(ge=0)
    available_rooms: int = Field(ge=0)
    occupancy_rate: float = Field(ge=0.0, le=1.0)
    checked_in_bookings: int = Field(ge=0)
    pending_b2b_requests: int = Field(ge=0)


class OccupancyResponse(BaseModel):
    day: date
    property_types: list[OccupancyRowResponse]
    summary: OccupancySummaryResponse


class TrendRowResponse(BaseModel):
    day: date
    booked_rooms: int = Field(ge=0)
    total_rooms: int = Field(ge=0)
    occupancy_rate: float = Field(ge=0.0, le=1.0)


@router.get("/health", response_model=HealthResponse, status_code=status.HTTP_200_OK)
async def health() -> HealthResponse:
    return HealthResponse(status="ok", app_name=settings.app_name, version=settings.app_version)


@router.post("/login", response_model=LoginResponse, status_code=status.HTTP_200_OK)
async def login(
    payload: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    try:
        bearer = auth_service.login(payload.admin_token)
        return LoginResponse(
            access_token=bearer,
            expires_in_minutes=auth_service.session_ttl_minutes,
        )
    except (AdminTokenNotConfiguredError, InvalidAdminTokenError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected login failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to login",
        ) from exc


@router.post(
    "/logout",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
async def logout(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> Response:
    """End the caller's session; other staff sessions stay valid."""
    if credentials is not None:
        auth_service.logout(credentials.credentials)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.get(
    "/dashboard/occupancy",
    response_model=OccupancyResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_admin)],
)
async def occupancy(
    day: date = Query(),
    service: DashboardService = Depends(get_dashboard_service),
) -> OccupancyResponse:
    try:
        return OccupancyResponse(**service.occupancy(day))
    except StoreUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected occupancy failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute occupancy",
        ) from exc


@router.get(
    "/dashboard/occupancy/trend",
    response_model=list[TrendRowResponse],
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_admin)],
)
async def occupancy_trend(
    start: date = Query(),
    days: int = Query(default=14),
    service: DashboardService = Depends(get_dashboard_service),
) -> list[TrendRowResponse]:
    try:
        return [TrendRowResponse(**row) for row in service.occupancy_trend(start, days)]
    except DashboardValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except StoreUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
