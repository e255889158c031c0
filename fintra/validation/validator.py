"""
Two-Stage Validation Pipeline

Every command input goes through two stages before the store touches any
state:

STAGE 1 - SCHEMA VALIDATION:
- Type checking, required fields, ranges
- Category/type pairing and recurrence fields
- Runs the Pydantic model and turns each error into a ValidationIssue

STAGE 2 - SEMANTIC VALIDATION (only when stage 1 passes):
- Dates far in the future
- Unusually high amounts
- A fixed monthly goal contribution above the goal's total target

IMPORTANT: Validation NEVER silently fixes issues. It reports them; the
store refuses the command when any error is reported.
"""

import datetime as dt
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Mapping, Optional, Union

from pydantic import BaseModel, ValidationError

from fintra.config import get_settings
from fintra.config.settings import AppSettings
from fintra.models.finance import (
    ContributionType,
    GoalDraft,
    TransactionDraft,
    to_money,
)
from fintra.models.validation import ValidationIssue, ValidationResult


InputData = Union[Mapping[str, Any], BaseModel]

_AMOUNT_FIELDS = (
    "amount",
    "total_target",
    "totalTarget",
    "contribution_value",
    "contributionValue",
)


def parse_amount(value: Any) -> Decimal:
    """
    Parse a user-typed amount.

    Accepts numbers and strings using either "." or "," as the decimal
    separator ("1500,50").
    """
    if isinstance(value, bool):
        raise ValueError("Amount must be a number")
    if isinstance(value, str):
        value = value.strip().replace(",", ".")
        if not value:
            raise ValueError("Amount is required")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{value!r} is not a number")
    if not amount.is_finite():
        raise ValueError(f"{value!r} is not a number")
    return amount


def _to_payload(data: InputData) -> dict[str, Any]:
    if isinstance(data, BaseModel):
        return data.model_dump()
    payload = dict(data)
    for field in _AMOUNT_FIELDS:
        value = payload.get(field)
        if isinstance(value, str):
            payload[field] = value.strip().replace(",", ".")
    return payload


def _precision_issues(payload: Mapping[str, Any]) -> list[ValidationIssue]:
    """Typed amounts are limited to cents; the models round anything finer."""
    issues = []
    for field in _AMOUNT_FIELDS:
        value = payload.get(field)
        if value is None:
            continue
        try:
            amount = parse_amount(value)
        except ValueError:
            continue
        if amount != to_money(amount):
            issues.append(ValidationIssue(
                field=field,
                issue_type="invalid_format",
                message=f"{field}: cannot have more than two decimal places",
                severity="error",
            ))
    return issues


def _issue_from_error(error: dict) -> ValidationIssue:
    field = ".".join(str(part) for part in error.get("loc", ())) or "record"
    message = str(error.get("msg", "Invalid value"))
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    elif field != "record":
        message = f"{field}: {message}"

    return ValidationIssue(
        field=field,
        issue_type=str(error.get("type", "invalid")),
        message=message,
        severity="error",
    )


class FinanceValidator:
    """
    Validates command input for the finance store.

    Stage 1 needs nothing but the models; stage 2 reads its thresholds
    from AppSettings and "today" from the injected clock.
    """

    def __init__(
        self,
        settings: Optional[AppSettings] = None,
        today: Callable[[], dt.date] = dt.date.today,
    ):
        self._settings = settings or get_settings().app
        self._today = today

    def _validate_schema(
        self,
        model: type[BaseModel],
        data: InputData,
    ) -> tuple[Optional[BaseModel], list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (parsed_record_or_None, list_of_issues)
        """
        payload = _to_payload(data)
        issues = _precision_issues(payload)
        try:
            record = model.model_validate(payload)
        except ValidationError as e:
            return None, issues + [_issue_from_error(error) for error in e.errors()]
        if issues:
            return None, issues
        return record, []

    def _check_amount(self, field: str, amount: Decimal) -> list[ValidationIssue]:
        max_amount = Decimal(str(self._settings.max_transaction_amount))
        if amount > max_amount:
            return [ValidationIssue(
                field=field,
                issue_type="suspicious_value",
                message=f"Amount ({amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            )]
        return []

    def _validate_transaction_semantic(
        self,
        transaction: TransactionDraft,
    ) -> list[ValidationIssue]:
        """
        Stage 2 for transactions.

        Checks:
        - Future dates (with tolerance)
        - Absurd amounts
        - Very long recurrences
        """
        issues = self._check_amount("amount", transaction.amount)

        tolerance = dt.timedelta(days=self._settings.future_date_tolerance_days)
        if transaction.date > self._today() + tolerance:
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Date ({transaction.date}) is in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        if transaction.is_recurring and (transaction.recurring_months or 0) > 120:
            issues.append(ValidationIssue(
                field="recurring_months",
                issue_type="suspicious_value",
                message=(
                    f"{transaction.recurring_months} monthly installments "
                    "is more than ten years"
                ),
                severity="warning",
                suggested_fix="Please verify the number of months",
            ))

        return issues

    def _validate_goal_semantic(self, goal: GoalDraft) -> list[ValidationIssue]:
        """
        Stage 2 for goals.

        Checks:
        - Fixed monthly amount not above the total target
        - Absurd targets
        """
        issues = self._check_amount("total_target", goal.total_target)

        if (
            goal.contribution_type == ContributionType.FIXED
            and goal.contribution_value > goal.total_target
        ):
            issues.append(ValidationIssue(
                field="contribution_value",
                issue_type="inconsistent",
                message="The monthly amount cannot be greater than the goal's total target",
                severity="error",
                suggested_fix="Lower the monthly amount or raise the target",
            ))

        return issues

    def _result(
        self,
        entity_type: str,
        record: Optional[BaseModel],
        schema_issues: list[ValidationIssue],
        semantic_check: Callable[[Any], list[ValidationIssue]],
    ) -> ValidationResult:
        all_issues = list(schema_issues)
        schema_valid = not any(i.severity == "error" for i in schema_issues)

        semantic_valid = False
        if schema_valid and record is not None:
            semantic_issues = semantic_check(record)
            all_issues.extend(semantic_issues)
            semantic_valid = not any(i.severity == "error" for i in semantic_issues)

        is_valid = schema_valid and semantic_valid
        return ValidationResult(
            entity_type=entity_type,
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=is_valid,
            issues=all_issues,
            warnings=[i.message for i in all_issues if i.severity == "warning"],
            record=record if is_valid else None,
        )

    def validate_transaction(
        self,
        data: InputData,
        model: type[TransactionDraft] = TransactionDraft,
    ) -> ValidationResult:
        """
        Run full two-stage validation on transaction input.

        Args:
            data: Field values (snake_case or camelCase) or a model
            model: TransactionDraft for new input, Transaction for updates

        Returns:
            ValidationResult; `record` holds the parsed model when valid
        """
        record, issues = self._validate_schema(model, data)
        return self._result(
            "transaction", record, issues, self._validate_transaction_semantic
        )

    def validate_goal(
        self,
        data: InputData,
        model: type[GoalDraft] = GoalDraft,
    ) -> ValidationResult:
        """Run full two-stage validation on goal input."""
        record, issues = self._validate_schema(model, data)
        return self._result("goal", record, issues, self._validate_goal_semantic)

    def validate_salary(self, value: Any) -> ValidationResult:
        """The salary must be a non-negative amount with at most two decimals."""
        issues: list[ValidationIssue] = []
        amount: Optional[Decimal] = None

        try:
            amount = parse_amount(value)
        except ValueError as e:
            issues.append(ValidationIssue(
                field="salary",
                issue_type="invalid_format",
                message=str(e),
                severity="error",
                suggested_fix="Enter the salary as a number, e.g. 3500.00",
            ))
        else:
            if amount < 0:
                issues.append(ValidationIssue(
                    field="salary",
                    issue_type="invalid_value",
                    message="Salary cannot be negative",
                    severity="error",
                ))
            elif amount != to_money(amount):
                issues.append(ValidationIssue(
                    field="salary",
                    issue_type="invalid_format",
                    message="Salary cannot have more than two decimal places",
                    severity="error",
                ))

        record = None
        if not issues and amount is not None:
            issues.extend(self._check_amount("salary", amount))
            record = to_money(amount)

        valid = not any(i.severity == "error" for i in issues)
        return ValidationResult(
            entity_type="salary",
            schema_valid=valid,
            semantic_valid=valid,
            is_valid=valid,
            issues=issues,
            warnings=[i.message for i in issues if i.severity == "warning"],
            record=record,
        )

    def validate_contribution_day(self, value: Any) -> ValidationResult:
        """The goal contribution day must be a whole day of the month (1-31)."""
        issues: list[ValidationIssue] = []
        day: Optional[int] = None
        try:
            if isinstance(value, bool):
                raise ValueError
            day = int(str(value).strip())
        except ValueError:
            day = None

        if day is None or not 1 <= day <= 31:
            issues.append(ValidationIssue(
                field="goal_contribution_day",
                issue_type="out_of_range",
                message="Please enter a valid day between 1 and 31",
                severity="error",
            ))

        valid = not issues
        return ValidationResult(
            entity_type="config",
            schema_valid=valid,
            semantic_valid=valid,
            is_valid=valid,
            issues=issues,
            record=day if valid else None,
        )

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is the text shown to the user when a command is refused.
        """
        if result.is_valid and not result.warnings:
            return "All checks passed."

        lines = []

        if result.has_errors:
            lines.append(f"The {result.entity_type} could not be saved:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
