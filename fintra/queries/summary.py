"""
Monthly Summary

Read-only view of one month as the dashboard shows it: salary, totals by
kind, headline and available balance, the visible transactions (with the
installment position of recurring ones) and the progress of every goal.

Built entirely from in-memory collections; no I/O.
"""

from typing import Optional, Sequence

from pydantic import BaseModel, Field

from fintra.engine.aggregation import (
    MonthlyTotals,
    contributions_for_month,
    summarize,
    transactions_for_month,
)
from fintra.engine.visibility import installment_number
from fintra.models.finance import (
    ZERO,
    Goal,
    GoalContribution,
    Money,
    Period,
    Transaction,
)


class TransactionLine(BaseModel):
    """A transaction as listed for one month."""

    transaction: Transaction
    installment: int = Field(..., ge=1, description="Position in the recurring window")
    installments: int = Field(..., ge=1, description="Length of the recurring window")


class GoalProgress(BaseModel):
    """A goal and what it received in the month."""

    goal_id: str
    name: str
    is_active: bool
    current_amount: Money
    total_target: Money
    progress: float = Field(..., ge=0, le=100)
    contribution: Optional[Money] = None
    contribution_complete: Optional[bool] = None


class MonthlySummary(BaseModel):
    period: Period
    salary: Money
    totals: MonthlyTotals
    balance: Money
    allocated_to_goals: Money
    available_balance: Money
    transactions: list[TransactionLine] = Field(default_factory=list)
    goals: list[GoalProgress] = Field(default_factory=list)


def build_monthly_summary(
    salary,
    transactions: Sequence[Transaction],
    goals: Sequence[Goal],
    contributions: Sequence[GoalContribution],
    period: Period,
) -> MonthlySummary:
    """Compute the summary of `period`."""
    visible = transactions_for_month(transactions, period.month, period.year)
    totals = summarize(visible)
    month_contributions = contributions_for_month(
        contributions, period.month, period.year
    )
    by_goal = {c.goal_id: c for c in month_contributions}
    allocated = sum((c.amount for c in month_contributions), ZERO)
    balance = salary + totals.total_income - totals.total_expenses

    lines = [
        TransactionLine(
            transaction=t,
            installment=installment_number(t, period.month, period.year) or 1,
            installments=(t.recurring_months or 1) if t.is_recurring else 1,
        )
        for t in visible
    ]

    goal_lines = []
    for goal in goals:
        contribution = by_goal.get(goal.id)
        goal_lines.append(GoalProgress(
            goal_id=goal.id,
            name=goal.name,
            is_active=goal.is_active,
            current_amount=goal.current_amount,
            total_target=goal.total_target,
            progress=goal.progress,
            contribution=contribution.amount if contribution else None,
            contribution_complete=contribution.is_complete if contribution else None,
        ))

    return MonthlySummary(
        period=period,
        salary=salary,
        totals=totals,
        balance=balance,
        allocated_to_goals=allocated,
        available_balance=balance - allocated,
        transactions=lines,
        goals=goal_lines,
    )
