"""
app.py: FastAPI application factory and startup lifecycle.

Wires the repository and services into app.state, registers routers, and
prepares the record store before the first request.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from stayhub.controllers.b2b_controller import router as b2b_router
from stayhub.controllers.booking_controller import router as booking_router
from stayhub.controllers.dashboard_controller import router as dashboard_router
from stayhub.repository.data_repository import BookingRepository
from stayhub.services.auth_service import AuthService
from stayhub.services.availability_service import AvailabilityService
from stayhub.services.b2b_service import B2BRequestService
from stayhub.services.booking_service import BookingService
from stayhub.services.commission_service import CommissionService
from stayhub.services.dashboard_service import DashboardService
from stayhub.services.quote_service import QuoteService
from stayhub.utils.config import Settings, get_settings
from stayhub.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Every service shares one repository, so the guarded reservation write and
    the availability reads see the same record store.
    """
    settings = settings or get_settings()

    repository = BookingRepository(settings)
    availability_service = AvailabilityService(repository=repository, settings=settings)
    commission_service = CommissionService(repository=repository, settings=settings)
    quote_service = QuoteService(
        repository=repository,
        settings=settings,
        commission_service=commission_service,
    )
    booking_service = BookingService(
        repository=repository,
        settings=settings,
        quote_service=quote_service,
    )
    b2b_service = B2BRequestService(
        repository=repository,
        settings=settings,
        availability_service=availability_service,
        commission_service=commission_service,
        quote_service=quote_service,
    )
    dashboard_service = DashboardService(repository=repository, settings=settings)
    auth_service = AuthService(settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app, settings)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.include_router(dashboard_router)
    app.include_router(booking_router)
    app.include_router(b2b_router)

    app.state.repository = repository
    app.state.availability_service = availability_service
    app.state.commission_service = commission_service
    app.state.quote_service = quote_service
    app.state.booking_service = booking_service
    app.state.b2b_service = b2b_service
    app.state.dashboard_service = dashboard_service
    app.state.auth_service = auth_service

    return app


def _startup(app: FastAPI, settings: Settings) -> None:
    """Idempotent: the schema uses IF NOT EXISTS and the seed skips a populated store."""
    repository: BookingRepository = app.state.repository

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    if settings.seed_demo_data:
        logger.info("Startup: seeding demo inventory (skipped if property types exist)")
        repository.seed_demo_data()

    if not settings.admin_token:
        logger.warning("ADMIN_TOKEN is not set; staff endpoints are unauthenticated")

    logger.info("Startup complete, system ready")


# Module-level app object for uvicorn
app = create_app()
