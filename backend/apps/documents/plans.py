"""Plan limits applied when creating documents and clients."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from .dto import Plan

UNLIMITED = -1


@dataclass(frozen=True, slots=True)
class PlanLimits:
    max_quotes_per_month: int
    max_invoices_per_month: int
    max_clients: int
    facturx: bool


PLAN_LIMITS: Dict[Plan, PlanLimits] = {
    Plan.FREE: PlanLimits(
        max_quotes_per_month=3,
        max_invoices_per_month=3,
        max_clients=5,
        facturx=False,
    ),
    Plan.STARTER: PlanLimits(UNLIMITED, UNLIMITED, UNLIMITED, facturx=False),
    Plan.PRO: PlanLimits(UNLIMITED, UNLIMITED, UNLIMITED, facturx=True),
    Plan.BUSINESS: PlanLimits(UNLIMITED, UNLIMITED, UNLIMITED, facturx=True),
}


def get_plan_limits(plan: Plan | str) -> PlanLimits:
    return PLAN_LIMITS[Plan(plan)]


def within_limit(limit: int, current_count: int) -> bool:
    return limit == UNLIMITED or current_count < limit


__all__ = ["PLAN_LIMITS", "PlanLimits", "UNLIMITED", "get_plan_limits", "within_limit"]
