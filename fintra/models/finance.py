"""
Core Data Models for Fintra

These models define the strict schemas for every record the finance store
holds and persists:
1. Transactions (income and expenses, some recurring on a credit cycle)
2. Savings goals with their contribution policy
3. Goal contributions, one per goal and month
4. The persisted configuration and the (month, year) period value

Python attributes are snake_case. The serialized form keeps the camelCase
field names of the stored documents (isRecurring, totalTarget, goalId...),
so `model_dump(mode="json", by_alias=True)` is the wire format.

Money is a Decimal rounded to cents on the way in (stored and imported
data may carry float noise such as 0.30000000000000004), written to JSON
as a number.
"""

import datetime as dt
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


CENT = Decimal("0.01")
ZERO = Decimal("0")


def _round_cents(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
        return value
    try:
        return to_money(value)
    except (InvalidOperation, ValueError):
        return value


Money = Annotated[
    Decimal,
    BeforeValidator(_round_cents),
    PlainSerializer(float, return_type=float, when_used="json"),
]


def new_id() -> str:
    """Generate a record id that cannot collide within a session."""
    return str(uuid4())


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def to_money(value: Any) -> Decimal:
    """Coerce a number to a Decimal rounded to cents."""
    if isinstance(value, Decimal):
        amount = value
    else:
        amount = Decimal(str(value))
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionCategory(str, Enum):
    """Whether a transaction adds to or takes from the month."""
    EXPENSE = "expense"
    INCOME = "income"


class TransactionType(str, Enum):
    """
    How a transaction was paid or received.

    income pairs with the INCOME category; credit and debit pair with
    EXPENSE. Only credit expenses can recur.
    """
    CREDIT = "credit"
    DEBIT = "debit"
    INCOME = "income"


class ContributionType(str, Enum):
    """Monthly contribution policy of a savings goal."""
    FIXED = "fixed"              # contribution_value is an amount
    PERCENTAGE = "percentage"    # contribution_value is a % of the available balance


# =============================================================================
# PERIOD
# =============================================================================

class Period(BaseModel):
    """A calendar month, the unit every balance is computed for."""
    model_config = ConfigDict(frozen=True)

    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1, le=9999)

    @classmethod
    def from_date(cls, value: dt.date) -> "Period":
        return cls(month=value.month, year=value.year)

    @classmethod
    def from_index(cls, index: int) -> "Period":
        """Inverse of `index`."""
        year, month = divmod(index - 1, 12)
        return cls(month=month + 1, year=year)

    @classmethod
    def current(cls, today: Optional[dt.date] = None) -> "Period":
        return cls.from_date(today or dt.date.today())

    @property
    def index(self) -> int:
        """Months elapsed since year 0, so consecutive months differ by one."""
        return self.year * 12 + self.month

    def next(self) -> "Period":
        return Period.from_index(self.index + 1)

    def previous(self) -> "Period":
        return Period.from_index(self.index - 1)

    def contains(self, value: dt.date) -> bool:
        return value.month == self.month and value.year == self.year

    def __str__(self) -> str:
        return f"{self.month:02d}/{self.year}"


# =============================================================================
# BASE MODEL
# =============================================================================

class FinanceModel(BaseModel):
    """Shared configuration of every persisted record."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def to_record(self) -> dict[str, Any]:
        """Serialize to the stored/exported document shape."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# TRANSACTIONS
# =============================================================================

class TransactionDraft(FinanceModel):
    """
    A transaction as entered by the user, before it gets an id.

    `date` is the registration (anchor) date. A recurring credit expense is
    visible during `recurring_months` consecutive months starting at
    (start_month, start_year), which default to the month of `date`.
    """

    description: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="What the money was spent on or received for"
    )
    amount: Money = Field(
        ...,
        gt=0,
        description="Positive amount in currency units"
    )
    date: dt.date = Field(
        default_factory=dt.date.today,
        description="Registration date"
    )
    category: TransactionCategory = Field(
        ...,
        description="expense or income"
    )
    type: TransactionType = Field(
        ...,
        description="credit, debit or income"
    )

    # Credit-card recurrence
    is_recurring: bool = False
    due_day: Optional[int] = Field(
        default=None,
        ge=1,
        le=31,
        description="Day of the month the installment is due"
    )
    recurring_months: Optional[int] = Field(
        default=None,
        ge=1,
        description="Number of consecutive months the transaction is visible"
    )
    start_month: Optional[int] = Field(default=None, ge=1, le=12)
    start_year: Optional[int] = Field(default=None, ge=1, le=9999)

    @model_validator(mode='before')
    @classmethod
    def derive_category(cls, data: Any) -> Any:
        """An income type implies the income category when none is given."""
        if isinstance(data, dict) and data.get("category") is None:
            kind = data.get("type")
            if kind is not None:
                data = dict(data)
                data["category"] = (
                    TransactionCategory.INCOME
                    if str(getattr(kind, "value", kind)) == TransactionType.INCOME.value
                    else TransactionCategory.EXPENSE
                )
        return data

    @field_validator('date', mode='before')
    @classmethod
    def parse_anchor_date(cls, v: Any) -> Any:
        """Accept full ISO timestamps (as stored by older versions) and keep the date."""
        if isinstance(v, dt.datetime):
            return v.date()
        if isinstance(v, str) and len(v) > 10:
            return dt.datetime.fromisoformat(v.replace("Z", "+00:00")).date()
        return v

    @model_validator(mode='after')
    def validate_type_and_recurrence(self) -> 'TransactionDraft':
        """Validate the category/type pairing and the recurrence fields."""
        if self.category == TransactionCategory.INCOME and self.type != TransactionType.INCOME:
            raise ValueError("Income transactions must have type 'income'")
        if self.category == TransactionCategory.EXPENSE and self.type == TransactionType.INCOME:
            raise ValueError("Expenses must be paid by credit or debit")

        if self.is_recurring:
            if self.type != TransactionType.CREDIT:
                raise ValueError("Only credit expenses can be recurring")
            if self.due_day is None:
                raise ValueError("Recurring transactions need a due day (1-31)")
            if self.recurring_months is None:
                raise ValueError("Recurring transactions need a number of months")
            if self.start_month is None:
                self.start_month = self.date.month
            if self.start_year is None:
                self.start_year = self.date.year
        else:
            if self.due_day is not None or self.recurring_months is not None:
                raise ValueError(
                    "Due day and recurring months only apply to recurring transactions"
                )
            self.start_month = None
            self.start_year = None

        return self

    @property
    def period(self) -> Period:
        """The month the transaction was registered in."""
        return Period.from_date(self.date)

    @property
    def start_period(self) -> Period:
        """First visible month (the registration month unless recurring)."""
        return Period(
            month=self.start_month or self.date.month,
            year=self.start_year or self.date.year,
        )


class Transaction(TransactionDraft):
    """A stored transaction. `id` never changes once assigned."""

    id: str = Field(
        default_factory=new_id,
        min_length=1,
        description="Unique transaction id"
    )


# =============================================================================
# GOALS
# =============================================================================

class GoalDraft(FinanceModel):
    """A savings goal as entered by the user."""

    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Goal name"
    )
    total_target: Money = Field(
        ...,
        gt=0,
        description="Cumulative amount to reach"
    )
    contribution_type: ContributionType = Field(
        default=ContributionType.FIXED,
        description="fixed amount or percentage of the available balance"
    )
    contribution_value: Money = Field(
        ...,
        gt=0,
        description="Monthly amount (fixed) or percentage (percentage)"
    )
    is_active: bool = True

    @model_validator(mode='after')
    def validate_percentage(self) -> 'GoalDraft':
        if (
            self.contribution_type == ContributionType.PERCENTAGE
            and self.contribution_value > 100
        ):
            raise ValueError("A percentage contribution cannot exceed 100%")
        return self


class Goal(GoalDraft):
    """
    A stored savings goal.

    CRITICAL: current_amount is the sum of this goal's contributions.
    Only the contribution processor changes it.
    """

    id: str = Field(
        default_factory=new_id,
        min_length=1,
        description="Unique goal id"
    )
    current_amount: Money = Field(
        default=ZERO,
        ge=0,
        description="Total contributed so far"
    )
    created_at: dt.datetime = Field(
        default_factory=utcnow,
        description="When the goal was created"
    )

    @property
    def outstanding(self) -> Decimal:
        """What is still missing to reach the target."""
        return max(self.total_target - self.current_amount, ZERO)

    @property
    def is_reached(self) -> bool:
        return self.current_amount >= self.total_target

    @property
    def progress(self) -> float:
        """Percentage of the target reached, capped at 100."""
        return min(float(self.current_amount / self.total_target * 100), 100.0)

    def contribution_ask(self, remaining: Decimal) -> Decimal:
        """
        The nominal contribution this goal asks for in a month.

        Fixed goals ask for their amount regardless of the balance, so a
        short grant is visible as an incomplete contribution. Percentage
        goals ask for a share of `remaining`. Neither asks for more than
        the outstanding amount.
        """
        if self.contribution_type == ContributionType.PERCENTAGE:
            if remaining <= 0:
                return ZERO
            ask = to_money(remaining * self.contribution_value / 100)
        else:
            ask = self.contribution_value
        return min(ask, self.outstanding)


class GoalContribution(FinanceModel):
    """
    A monthly allocation from the available balance to a goal.

    At most one exists per (goal_id, month, year).
    """

    id: str = Field(default_factory=new_id, min_length=1)
    goal_id: str = Field(..., min_length=1)
    amount: Money = Field(
        ...,
        ge=0,
        description="Amount actually allocated"
    )
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1, le=9999)
    is_complete: bool = Field(
        ...,
        description="False when the balance could not cover the full ask"
    )
    date: dt.datetime = Field(
        default_factory=utcnow,
        description="When the contribution was processed"
    )

    @property
    def period(self) -> Period:
        return Period(month=self.month, year=self.year)


# =============================================================================
# CONFIGURATION
# =============================================================================

class FinanceConfig(FinanceModel):
    """Persisted user configuration."""

    goal_contribution_day: int = Field(
        default=1,
        ge=1,
        le=31,
        description="Day of the month from which goals are funded automatically"
    )
