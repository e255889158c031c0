"""
Goal Contribution Processor

Distributes a month's available balance across the active savings goals.

Policy: first-come-first-funded. Active goals are visited in creation
order and each takes its full monthly ask while the balance lasts; the
first goal the balance cannot cover gets what is left, marked
incomplete, and the goals after it get nothing. There is no proportional
distribution.

CRITICAL: Processing is idempotent per period. A goal that already has a
contribution for the month is skipped, and the balance handed in is
already net of that month's contributions, so a second run finds nothing
to do. A goal added later is funded from whatever remains.
"""

import datetime as dt
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from pydantic import BaseModel, Field

from fintra.models.finance import (
    ZERO,
    Goal,
    GoalContribution,
    Money,
    Period,
    utcnow,
)


class ContributionPlan(BaseModel):
    """Outcome of one processing pass, not yet persisted."""

    period: Period
    contributions: list[GoalContribution] = Field(default_factory=list)
    updated_goals: list[Goal] = Field(
        default_factory=list,
        description="Every goal, with current_amount raised by its new contribution"
    )
    starting_balance: Money
    remaining_balance: Money

    @property
    def is_empty(self) -> bool:
        return not self.contributions


def has_contribution(
    contributions: Iterable[GoalContribution],
    goal_id: str,
    period: Period,
) -> bool:
    """Whether `goal_id` was already funded for `period`."""
    return any(
        c.goal_id == goal_id and c.month == period.month and c.year == period.year
        for c in contributions
    )


def plan_month_contributions(
    goals: Sequence[Goal],
    contributions: Sequence[GoalContribution],
    available: Decimal,
    period: Period,
    now: Optional[dt.datetime] = None,
) -> ContributionPlan:
    """
    Allocate `available` to the goals that still lack a contribution.

    Args:
        goals: All goals, in creation order
        contributions: Every existing contribution (any period)
        available: Available balance of the period, already net of its
            existing contributions
        period: The month being funded
        now: Processing timestamp stamped on new contributions

    Returns:
        The plan: new contributions plus the full goal list with updated
        accumulators. Inputs are not modified.
    """
    now = now or utcnow()
    remaining = available
    new_contributions: list[GoalContribution] = []
    updated_goals: list[Goal] = []

    for goal in goals:
        if not goal.is_active or goal.is_reached:
            updated_goals.append(goal)
            continue

        if has_contribution(contributions, goal.id, period):
            updated_goals.append(goal)
            continue

        if remaining <= 0:
            updated_goals.append(goal)
            continue

        ask = goal.contribution_ask(remaining)
        if ask <= 0:
            updated_goals.append(goal)
            continue

        grant = min(ask, remaining)
        new_contributions.append(GoalContribution(
            goal_id=goal.id,
            amount=grant,
            month=period.month,
            year=period.year,
            is_complete=grant == ask,
            date=now,
        ))
        updated_goals.append(
            goal.model_copy(update={"current_amount": goal.current_amount + grant})
        )
        remaining -= grant

    return ContributionPlan(
        period=period,
        contributions=new_contributions,
        updated_goals=updated_goals,
        starting_balance=available,
        remaining_balance=remaining,
    )


def contributed_total(contributions: Iterable[GoalContribution], goal_id: str) -> Decimal:
    """Sum of a goal's contributions, what its current_amount must equal."""
    return sum((c.amount for c in contributions if c.goal_id == goal_id), ZERO)
