"""Monthly visibility, balance and goal contribution engine."""

from fintra.engine.aggregation import (
    MonthlyTotals,
    available_balance,
    balance,
    contributions_for_month,
    monthly_totals,
    summarize,
    transactions_for_month,
)
from fintra.engine.contributions import (
    ContributionPlan,
    contributed_total,
    has_contribution,
    plan_month_contributions,
)
from fintra.engine.visibility import (
    installment_number,
    is_visible,
    visible_periods,
)

__all__ = [
    "ContributionPlan",
    "MonthlyTotals",
    "available_balance",
    "balance",
    "contributed_total",
    "contributions_for_month",
    "has_contribution",
    "installment_number",
    "is_visible",
    "monthly_totals",
    "plan_month_contributions",
    "summarize",
    "transactions_for_month",
    "visible_periods",
]
