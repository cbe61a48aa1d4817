"""Agent commission resolution as an ordered list of override rules."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, Optional, Sequence

from stayhub.domain.models import Agent, CommissionOverride


OverrideMatcher = Callable[[CommissionOverride, int, int], bool]


@dataclass(frozen=True)
class CommissionRule:
    name: str
    matches: OverrideMatcher


COMMISSION_RULES: tuple[CommissionRule, ...] = (
    CommissionRule(
        name="agent_and_property",
        matches=lambda override, agent_id, property_type_id: (
            override.agent_id == agent_id and override.property_type_id == property_type_id
        ),
    ),
    CommissionRule(
        name="agent",
        matches=lambda override, agent_id, property_type_id: (
            override.agent_id == agent_id and override.property_type_id is None
        ),
    ),
    CommissionRule(
        name="property",
        matches=lambda override, agent_id, property_type_id: (
            override.agent_id is None and override.property_type_id == property_type_id
        ),
    ),
)


@dataclass(frozen=True)
class ResolvedCommission:
    percentage: Decimal
    source: str
    override_id: Optional[int] = None


def override_in_effect(override: CommissionOverride, booking_date: date) -> bool:
    return override.is_active and override.start_date <= booking_date <= override.end_date


def resolve_commission(
    agent: Agent,
    property_type_id: int,
    booking_date: date,
    overrides: Sequence[CommissionOverride],
    global_default: Decimal,
) -> ResolvedCommission:
    """First matching rule wins; falls back to the agent default, then the global default.

    The agent must already be validated by the caller.
    """
    in_effect = [override for override in overrides if override_in_effect(override, booking_date)]
    for rule in COMMISSION_RULES:
        for override in in_effect:
            if rule.matches(override, agent.agent_id, property_type_id):
                return ResolvedCommission(
                    percentage=Decimal(override.commission_percentage),
                    source=rule.name,
                    override_id=override.override_id,
                )

    # A zero agent default counts as unset.
    if agent.commission_percentage:
        return ResolvedCommission(percentage=Decimal(agent.commission_percentage), source="agent_default")
    return ResolvedCommission(percentage=Decimal(global_default), source="global_default")
