"""
Tests for Fintra

Test strategy:
1. Unit tests for individual components (models, engine, validators)
2. Integration tests for the store (with in-memory or mocked storage)
3. No real API calls in tests (use mocks)
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

from fintra.models.finance import (
    ContributionType,
    FinanceConfig,
    Goal,
    GoalContribution,
    GoalDraft,
    Period,
    Transaction,
    TransactionCategory,
    TransactionDraft,
    TransactionType,
    to_money,
)
from fintra.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from fintra.models.validation import ValidationIssue, ValidationResult


class TestTransactionModels:
    """Tests for transaction Pydantic models."""

    def test_debit_expense_creation(self):
        """Test a one-off debit expense."""
        transaction = TransactionDraft(
            description="Groceries",
            amount=Decimal("120.50"),
            date=date(2025, 3, 10),
            category=TransactionCategory.EXPENSE,
            type=TransactionType.DEBIT,
        )
        assert transaction.amount == Decimal("120.50")
        assert transaction.is_recurring is False
        assert transaction.start_month is None
        assert transaction.period == Period(month=3, year=2025)

    def test_description_strips_whitespace(self):
        """Test that whitespace is stripped from the description."""
        transaction = TransactionDraft(
            description="  Rent  ",
            amount=Decimal("900"),
            category="expense",
            type="debit",
        )
        assert transaction.description == "Rent"

    def test_category_derived_from_type(self):
        """Test that a missing category follows the type."""
        salary_bonus = TransactionDraft(description="Bonus", amount=Decimal("50"), type="income")
        coffee = TransactionDraft(description="Coffee", amount=Decimal("5"), type="debit")
        assert salary_bonus.category == TransactionCategory.INCOME
        assert coffee.category == TransactionCategory.EXPENSE

    def test_rejects_non_positive_amount(self):
        """Test that zero and negative amounts are rejected."""
        for amount in (Decimal("0"), Decimal("-10")):
            with pytest.raises(ValueError):
                TransactionDraft(
                    description="Test",
                    amount=amount,
                    category="expense",
                    type="debit",
                )

    def test_amounts_rounded_to_cents(self):
        """Test that amounts finer than a cent are rounded half up."""
        for raw, expected in ((Decimal("10.005"), "10.01"), (0.1 + 0.2, "0.30"), ("7.1", "7.10")):
            transaction = TransactionDraft(
                description="Test",
                amount=raw,
                category="expense",
                type="debit",
            )
            assert transaction.amount == Decimal(expected)

    def test_income_must_have_income_type(self):
        """Test the category/type pairing."""
        with pytest.raises(ValueError, match="Income transactions must have type 'income'"):
            TransactionDraft(
                description="Refund",
                amount=Decimal("10"),
                category="income",
                type="debit",
            )
        with pytest.raises(ValueError, match="Expenses must be paid by credit or debit"):
            TransactionDraft(
                description="Refund",
                amount=Decimal("10"),
                category="expense",
                type="income",
            )

    def test_recurring_credit_defaults_start_to_date(self):
        """Test that a recurring credit expense starts in its registration month."""
        transaction = TransactionDraft(
            description="TV",
            amount=Decimal("300"),
            date=date(2025, 1, 20),
            category="expense",
            type="credit",
            is_recurring=True,
            due_day=10,
            recurring_months=3,
        )
        assert transaction.start_month == 1
        assert transaction.start_year == 2025
        assert transaction.start_period == Period(month=1, year=2025)

    def test_only_credit_can_recur(self):
        """Test that debit expenses cannot be recurring."""
        with pytest.raises(ValueError, match="Only credit expenses can be recurring"):
            TransactionDraft(
                description="Gym",
                amount=Decimal("80"),
                category="expense",
                type="debit",
                is_recurring=True,
                due_day=5,
                recurring_months=12,
            )

    def test_recurring_requires_due_day_and_months(self):
        """Test that recurrence fields are mandatory when recurring."""
        with pytest.raises(ValueError, match="due day"):
            TransactionDraft(
                description="TV",
                amount=Decimal("300"),
                category="expense",
                type="credit",
                is_recurring=True,
                recurring_months=3,
            )
        with pytest.raises(ValueError, match="number of months"):
            TransactionDraft(
                description="TV",
                amount=Decimal("300"),
                category="expense",
                type="credit",
                is_recurring=True,
                due_day=10,
            )

    def test_due_day_range(self):
        """Test due day must be between 1 and 31."""
        with pytest.raises(ValueError):
            TransactionDraft(
                description="TV",
                amount=Decimal("300"),
                category="expense",
                type="credit",
                is_recurring=True,
                due_day=32,
                recurring_months=3,
            )

    def test_non_recurring_rejects_recurrence_fields(self):
        """Test that a one-off transaction cannot carry a due day."""
        with pytest.raises(ValueError, match="only apply to recurring"):
            TransactionDraft(
                description="Shoes",
                amount=Decimal("150"),
                category="expense",
                type="credit",
                due_day=10,
            )

    def test_stored_record_uses_camel_case(self):
        """Test the persisted shape of a transaction."""
        transaction = Transaction(
            id="t-1",
            description="TV",
            amount=Decimal("300.00"),
            date=date(2025, 1, 20),
            category="expense",
            type="credit",
            is_recurring=True,
            due_day=10,
            recurring_months=3,
        )
        record = transaction.to_record()
        assert record["id"] == "t-1"
        assert record["amount"] == 300.0
        assert record["date"] == "2025-01-20"
        assert record["isRecurring"] is True
        assert record["dueDay"] == 10
        assert record["recurringMonths"] == 3
        assert record["startMonth"] == 1
        assert record["startYear"] == 2025

    def test_parses_camel_case_and_timestamps(self):
        """Test loading a record with a full ISO timestamp as date."""
        transaction = Transaction.model_validate({
            "id": "1700000000000",
            "description": "Pharmacy",
            "amount": 42.9,
            "date": "2025-03-01T14:30:00.000Z",
            "category": "expense",
            "type": "debit",
            "isRecurring": False,
        })
        assert transaction.date == date(2025, 3, 1)
        assert transaction.amount == Decimal("42.9")


class TestGoalModels:
    """Tests for savings goal models."""

    def test_goal_defaults(self):
        """Test a new goal starts active with nothing saved."""
        goal = Goal(name="Trip", total_target=Decimal("1000"), contribution_value=Decimal("100"))
        assert goal.contribution_type == ContributionType.FIXED
        assert goal.current_amount == Decimal("0")
        assert goal.is_active is True
        assert goal.id

    def test_percentage_cannot_exceed_100(self):
        """Test that a percentage policy is capped at 100%."""
        with pytest.raises(ValueError, match="cannot exceed 100%"):
            GoalDraft(
                name="Trip",
                total_target=Decimal("1000"),
                contribution_type="percentage",
                contribution_value=Decimal("120"),
            )

    def test_current_amount_cannot_be_negative(self):
        """Test the accumulator lower bound."""
        with pytest.raises(ValueError):
            Goal(
                name="Trip",
                total_target=Decimal("1000"),
                contribution_value=Decimal("100"),
                current_amount=Decimal("-1"),
            )

    def test_progress_is_capped(self):
        """Test progress percentage."""
        goal = Goal(
            name="Trip",
            total_target=Decimal("1000"),
            contribution_value=Decimal("100"),
            current_amount=Decimal("500"),
        )
        assert goal.progress == 50.0
        assert goal.outstanding == Decimal("500")

        reached = goal.model_copy(update={"current_amount": Decimal("1200")})
        assert reached.progress == 100.0
        assert reached.is_reached is True
        assert reached.outstanding == Decimal("0")

    def test_fixed_ask_ignores_balance(self):
        """Test that a fixed goal asks for its amount even with a short balance."""
        goal = Goal(name="Trip", total_target=Decimal("1000"), contribution_value=Decimal("100"))
        assert goal.contribution_ask(Decimal("50")) == Decimal("100")

    def test_percentage_ask_rounds_half_up(self):
        """Test percentage asks are rounded to cents."""
        goal = Goal(
            name="Emergency fund",
            total_target=Decimal("10000"),
            contribution_type="percentage",
            contribution_value=Decimal("10"),
        )
        assert goal.contribution_ask(Decimal("333.35")) == Decimal("33.34")
        assert goal.contribution_ask(Decimal("0")) == Decimal("0")

    def test_ask_capped_at_outstanding(self):
        """Test a goal never asks for more than what it is missing."""
        goal = Goal(
            name="Trip",
            total_target=Decimal("1000"),
            contribution_value=Decimal("100"),
            current_amount=Decimal("950"),
        )
        assert goal.contribution_ask(Decimal("5000")) == Decimal("50")

    def test_legacy_monthly_target_is_not_a_field(self):
        """Test unknown fields are ignored rather than mapped."""
        goal = GoalDraft.model_validate({
            "name": "Car",
            "totalTarget": 20000,
            "contributionType": "fixed",
            "contributionValue": 500,
            "monthlyTarget": 999,
        })
        assert goal.contribution_value == Decimal("500")


class TestContributionAndConfig:
    """Tests for contribution and configuration records."""

    def test_contribution_record(self):
        """Test the persisted shape of a contribution."""
        contribution = GoalContribution(
            goal_id="g-1",
            amount=Decimal("50.00"),
            month=3,
            year=2025,
            is_complete=False,
            date=datetime(2025, 3, 15, tzinfo=timezone.utc),
        )
        record = contribution.to_record()
        assert record["goalId"] == "g-1"
        assert record["amount"] == 50.0
        assert record["isComplete"] is False
        assert contribution.period == Period(month=3, year=2025)

    def test_contribution_month_range(self):
        """Test the contribution month must be 1-12."""
        with pytest.raises(ValueError):
            GoalContribution(goal_id="g-1", amount=Decimal("1"), month=13, year=2025, is_complete=True)

    def test_config_day_range(self):
        """Test goal contribution day must be between 1 and 31."""
        assert FinanceConfig().goal_contribution_day == 1
        assert FinanceConfig.model_validate({"goalContributionDay": 31}).goal_contribution_day == 31
        with pytest.raises(ValueError):
            FinanceConfig(goal_contribution_day=0)


class TestPeriod:
    """Tests for the (month, year) value."""

    def test_navigation_wraps_years(self):
        """Test next/previous across a year boundary."""
        assert Period(month=12, year=2024).next() == Period(month=1, year=2025)
        assert Period(month=1, year=2025).previous() == Period(month=12, year=2024)

    def test_index_round_trip(self):
        """Test from_index is the inverse of index."""
        period = Period(month=7, year=2031)
        assert Period.from_index(period.index) == period

    def test_str(self):
        """Test display format."""
        assert str(Period(month=3, year=2025)) == "03/2025"

    def test_rejects_invalid_month(self):
        """Test month bounds."""
        with pytest.raises(ValueError):
            Period(month=13, year=2025)

    def test_to_money_rounds_half_up(self):
        """Test cent rounding."""
        assert to_money("2.005") == Decimal("2.01")
        assert to_money(Decimal("2.004")) == Decimal("2.00")


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.SALARY_SET,
            description="Salary set to 3500.00",
        )
        assert event.event_type == AuditEventType.SALARY_SET
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.GOAL_ADDED,
            description="Goal added",
            details={"name": "Trip", "total_target": "1000"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "goal_added"
        assert log_dict["details"]["name"] == "Trip"

    def test_audit_event_builder_record_changed(self):
        """Test AuditEventBuilder.record_changed."""
        correlation_id = uuid4()

        event = AuditEventBuilder.record_changed(
            event_type=AuditEventType.TRANSACTION_ADDED,
            entity_type="transaction",
            entity_id="t-1",
            description="Transaction added",
            correlation_id=correlation_id,
        )

        assert event.event_type == AuditEventType.TRANSACTION_ADDED
        assert event.entity_id == "t-1"
        assert event.correlation_id == correlation_id
        assert event.is_user_action is True

    def test_audit_event_builder_persistence_failed(self):
        """Test AuditEventBuilder.persistence_failed."""
        event = AuditEventBuilder.persistence_failed(
            key="@Fintra:goals",
            error_message="disk full",
            correlation_id=uuid4(),
        )

        assert event.event_type == AuditEventType.PERSISTENCE_FAILED
        assert event.severity == AuditSeverity.ERROR
        assert event.entity_id == "@Fintra:goals"

    def test_data_loaded_reports_migration(self):
        """Test that a load which upcast records is flagged as a migration."""
        plain = AuditEventBuilder.data_loaded({"goals": 1}, {"goals": 0}, uuid4())
        migrated = AuditEventBuilder.data_loaded({"goals": 1}, {"goals": 1}, uuid4())
        assert plain.event_type == AuditEventType.DATA_LOADED
        assert migrated.event_type == AuditEventType.LEGACY_RECORDS_MIGRATED


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = ValidationResult(
            entity_type="transaction",
            schema_valid=False,
            semantic_valid=False,
            is_valid=False,
            issues=[
                ValidationIssue(
                    field="amount",
                    issue_type="missing",
                    message="Amount required",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.error_count == 1

    def test_validation_result_warnings_only(self):
        """Test that warnings don't count as errors."""
        result = ValidationResult(
            entity_type="transaction",
            schema_valid=True,
            semantic_valid=True,
            is_valid=True,
            issues=[
                ValidationIssue(
                    field="date",
                    issue_type="future_date",
                    message="Date in future",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.error_count == 0


class TestEnums:
    """Tests for the finance enums."""

    def test_transaction_type_values(self):
        """Test transaction type string values."""
        assert [t.value for t in TransactionType] == ["credit", "debit", "income"]

    def test_contribution_type_values(self):
        """Test contribution policy string values."""
        assert ContributionType("fixed") == ContributionType.FIXED
        assert ContributionType("percentage") == ContributionType.PERCENTAGE


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
