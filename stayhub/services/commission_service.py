"""Agent validation and commission lookup."""

from __future__ import annotations

from datetime import date
from typing import Optional

from stayhub.domain.commission import ResolvedCommission, resolve_commission
from stayhub.domain.models import Agent, AgentStatus
from stayhub.repository.data_repository import BookingRepository
from stayhub.utils.config import Settings, get_settings
from stayhub.utils.logger import format_fields, get_logger


logger = get_logger(__name__)


class CommissionError(Exception):
    """Base failure for agent-priced bookings."""


class AgentNotFoundError(CommissionError):
    """Raised when the agent id does not exist."""


class AgentNotApprovedError(CommissionError):
    """Raised when the agent exists but may not book."""


class CommissionService:
    """Resolves the commission an agent gets for a property type on a date.

    There is no fallback to the default rate for unknown or unapproved agents;
    the booking must be refused instead.
    """

    def __init__(
        self,
        repository: Optional[BookingRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or BookingRepository(self._settings)

    def validate_agent(self, agent_id: int) -> Agent:
        agent = self._repository.get_agent(agent_id)
        if agent is None:
            raise AgentNotFoundError(f"Agent {agent_id} not found")
        if agent.status != AgentStatus.APPROVED:
            raise AgentNotApprovedError(
                f"Agent status is {agent.status.value}. Only approved agents can book."
            )
        return agent

    def resolve(
        self,
        *,
        agent_id: int,
        property_type_id: int,
        booking_date: date,
    ) -> ResolvedCommission:
        agent = self.validate_agent(agent_id)
        overrides = self._repository.list_commission_overrides(booking_date)
        resolved = resolve_commission(
            agent=agent,
            property_type_id=property_type_id,
            booking_date=booking_date,
            overrides=overrides,
            global_default=self._settings.default_commission_percentage,
        )
        logger.debug(
            "Commission resolved | %s",
            format_fields(
                agent_id=agent_id,
                property_type_id=property_type_id,
                booking_date=booking_date,
                percentage=resolved.percentage,
                source=resolved.source,
            ),
        )
        return resolved
