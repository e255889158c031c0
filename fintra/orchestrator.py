"""
Finance Store

This module ties together all the components. The FinanceStore owns the
in-memory collections (salary, transactions, goals, contributions,
configuration), is the only writer to the key-value store and exposes:

1. Queries - pure functions of the in-memory state, no I/O
2. Commands - validate, write the whole affected collection through the
   storage adapter, and only then commit the new state in memory

CRITICAL: If a write fails, the error propagates to the caller and the
in-memory state keeps its value from before the command. There is no
rollback because nothing was changed yet.

Commands are serialized by a lock held by the store: a background
contribution pass and a user command never interleave their read, write
and commit steps.
"""

import asyncio
import datetime as dt
import functools
import inspect
from decimal import Decimal
from typing import Any, Awaitable, Callable, Mapping, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ValidationError

from fintra.audit import AuditLogger, create_correlation_id
from fintra.config import get_settings
from fintra.config.settings import AppSettings
from fintra.engine.aggregation import (
    available_balance,
    balance,
    contributions_for_month,
    transactions_for_month,
)
from fintra.engine.contributions import plan_month_contributions
from fintra.models.audit import AuditEventType
from fintra.models.finance import (
    ZERO,
    FinanceConfig,
    Goal,
    GoalContribution,
    GoalDraft,
    Period,
    Transaction,
    TransactionDraft,
    new_id,
    utcnow,
)
from fintra.models.validation import ValidationIssue, ValidationResult
from fintra.queries.summary import MonthlySummary, build_monthly_summary
from fintra.services.backup import (
    BackupData,
    BackupImportError,
    ImportPreview,
    ImportResult,
    build_export_document,
    dumps_document,
    parse_import_document,
)
from fintra.services.codec import (
    StorageKeys,
    decode_config,
    decode_contributions,
    decode_goals,
    decode_salary,
    decode_transactions,
    encode_config,
    encode_records,
    encode_salary,
)
from fintra.services.storage import (
    KeyValueStoreInterface,
    StorageError,
    create_key_value_store,
)
from fintra.validation import FinanceValidator


InputData = Union[Mapping[str, Any], BaseModel]
MutationListener = Callable[[str], Any]
ConfirmCallback = Callable[[ImportPreview], Union[bool, Awaitable[bool]]]


def serialized(method):
    """Run a store command while holding the store's command lock."""
    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        async with self._lock:
            return await method(self, *args, **kwargs)
    return wrapper


class FinanceStoreError(Exception):
    """Base exception for store commands."""
    pass


class InvalidInputError(FinanceStoreError):
    """The command input failed validation; nothing was changed."""

    def __init__(self, message: str, result: ValidationResult):
        super().__init__(message)
        self.result = result


class RecordNotFoundError(FinanceStoreError):
    """An update or delete referenced an id the store does not hold."""

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(f"{entity_type.capitalize()} not found: {entity_id}")
        self.entity_type = entity_type
        self.entity_id = entity_id


class FinanceStore:
    """
    Orchestrates every query and command on the finance data.

    Call `load()` once before using a store backed by existing data.
    """

    def __init__(
        self,
        storage: KeyValueStoreInterface,
        validator: Optional[FinanceValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
        clock: Callable[[], dt.datetime] = utcnow,
        today: Callable[[], dt.date] = dt.date.today,
    ):
        self._settings = settings or get_settings().app
        self._storage = storage
        self._validator = validator or FinanceValidator(self._settings, today=today)
        self._audit = audit_logger or AuditLogger()
        self._keys = StorageKeys(self._settings.storage_key_prefix)
        self._clock = clock
        self._today = today

        self._salary: Decimal = ZERO
        self._transactions: list[Transaction] = []
        self._goals: list[Goal] = []
        self._contributions: list[GoalContribution] = []
        self._config = FinanceConfig(
            goal_contribution_day=self._settings.default_goal_contribution_day
        )
        self._current_period = Period.current(today())
        self._listeners: list[MutationListener] = []
        self._loaded = False
        self._lock = asyncio.Lock()

    # =========================================================================
    # PLUMBING
    # =========================================================================

    @property
    def keys(self) -> StorageKeys:
        return self._keys

    @property
    def audit_logger(self) -> AuditLogger:
        return self._audit

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def add_listener(self, listener: MutationListener) -> Callable[[], None]:
        """
        Register a callback run after every committed mutation.

        The callback receives the event name (e.g. "transaction_added").
        Returns a function that unregisters it.
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self, event: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                # A listener must never undo a committed command
                self._audit.log_error(
                    error_type="listener_failed",
                    error_message=str(e),
                    details={"event": event},
                )

    async def _write(self, key: str, value: str, correlation_id: UUID) -> None:
        """Write one collection through the adapter or raise StorageError."""
        try:
            saved = await self._storage.set(key, value)
        except StorageError as e:
            self._audit.log_persistence_failed(key, str(e), correlation_id)
            raise
        except Exception as e:
            self._audit.log_persistence_failed(key, str(e), correlation_id)
            raise StorageError(f"Failed to save {key}: {e}") from e

        if saved is False:
            self._audit.log_persistence_failed(key, "storage refused the write", correlation_id)
            raise StorageError(f"Storage refused to save {key}")

    def _require_valid(self, result: ValidationResult, correlation_id: UUID) -> Any:
        if not result.is_valid:
            self._audit.log_input_rejected(
                entity_type=result.entity_type,
                issues=result.issues_as_dicts(),
                correlation_id=correlation_id,
            )
            raise InvalidInputError(
                self._validator.get_user_friendly_summary(result), result
            )
        return result.record

    def _period(self, month: int, year: int, correlation_id: UUID) -> Period:
        try:
            return Period(month=month, year=year)
        except ValidationError as e:
            result = ValidationResult(
                entity_type="period",
                schema_valid=False,
                semantic_valid=False,
                is_valid=False,
                issues=[
                    ValidationIssue(
                        field=".".join(str(p) for p in error["loc"]) or "period",
                        issue_type=str(error["type"]),
                        message=f"Invalid period {month}/{year}: {error['msg']}",
                        severity="error",
                    )
                    for error in e.errors()
                ],
            )
            return self._require_valid(result, correlation_id)

    def _not_found(
        self,
        entity_type: str,
        entity_id: str,
        operation: str,
        correlation_id: UUID,
    ) -> RecordNotFoundError:
        self._audit.log_record_not_found(entity_type, entity_id, operation, correlation_id)
        return RecordNotFoundError(entity_type, entity_id)

    @staticmethod
    def _unique_id(existing: set[str]) -> str:
        record_id = new_id()
        while record_id in existing:
            record_id = new_id()
        return record_id

    # =========================================================================
    # LOADING
    # =========================================================================

    @serialized
    async def load(self) -> None:
        """
        Read every collection from storage into memory.

        Legacy records are upcast on the way in. When the data still sits
        under the legacy `expenses` key, or any record needed upcasting,
        the migrated collection is written back once under its current key.
        """
        correlation_id = create_correlation_id()

        salary = decode_salary(await self._storage.get(self._keys.salary))

        migrated_transactions = 0
        transactions_text = await self._storage.get(self._keys.transactions)
        if transactions_text is None:
            legacy_text = await self._storage.get(self._keys.legacy_expenses)
            if legacy_text is not None:
                transactions, _ = decode_transactions(legacy_text)
                migrated_transactions = len(transactions)
            else:
                transactions = []
        else:
            transactions, migrated_transactions = decode_transactions(transactions_text)

        goals_text = await self._storage.get(self._keys.goals)
        goals, migrated_goals = decode_goals(goals_text) if goals_text else ([], 0)

        contributions_text = await self._storage.get(self._keys.contributions)
        contributions = decode_contributions(contributions_text) if contributions_text else []

        config = decode_config(
            await self._storage.get(self._keys.config),
            default_day=self._settings.default_goal_contribution_day,
        )

        if migrated_transactions:
            await self._write(
                self._keys.transactions, encode_records(transactions), correlation_id
            )
        if migrated_goals:
            await self._write(self._keys.goals, encode_records(goals), correlation_id)

        self._salary = salary
        self._transactions = transactions
        self._goals = goals
        self._contributions = contributions
        self._config = config
        self._loaded = True

        self._audit.log_data_loaded(
            counts={
                "transactions": len(transactions),
                "goals": len(goals),
                "contributions": len(contributions),
            },
            migrated={
                "transactions": migrated_transactions,
                "goals": migrated_goals,
            },
            correlation_id=correlation_id,
        )

    # =========================================================================
    # QUERIES
    # =========================================================================

    @property
    def salary(self) -> Decimal:
        return self._salary

    @property
    def config(self) -> FinanceConfig:
        return self._config

    @property
    def current_period(self) -> Period:
        """The month the caller is looking at."""
        return self._current_period

    def list_transactions(self) -> list[Transaction]:
        return list(self._transactions)

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return next((t for t in self._transactions if t.id == str(transaction_id)), None)

    def list_transactions_for_month(self, month: int, year: int) -> list[Transaction]:
        return transactions_for_month(self._transactions, month, year)

    def balance_for(self, month: int, year: int) -> Decimal:
        """Headline balance: salary + income - expenses."""
        return balance(self._salary, self._transactions, month, year)

    def available_balance_for(self, month: int, year: int) -> Decimal:
        """Balance still available to goals in the month."""
        return available_balance(
            self._salary, self._transactions, self._contributions, month, year
        )

    def list_goals(self) -> list[Goal]:
        """Goals in creation order."""
        return list(self._goals)

    def get_goal(self, goal_id: str) -> Optional[Goal]:
        return next((g for g in self._goals if g.id == str(goal_id)), None)

    def list_contributions(self, goal_id: Optional[str] = None) -> list[GoalContribution]:
        if goal_id is None:
            return list(self._contributions)
        return [c for c in self._contributions if c.goal_id == str(goal_id)]

    def list_contributions_for_month(self, month: int, year: int) -> list[GoalContribution]:
        return contributions_for_month(self._contributions, month, year)

    def monthly_summary(
        self,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> MonthlySummary:
        """
        Dashboard view of a month (the current period by default).

        Raises:
            InvalidInputError: If the month is out of range or only one of
                month and year is given
        """
        period = self._current_period
        if month is not None or year is not None:
            period = self._period(month, year, create_correlation_id())
        return build_monthly_summary(
            self._salary,
            self._transactions,
            self._goals,
            self._contributions,
            period,
        )

    # =========================================================================
    # PERIOD SELECTION (in memory only)
    # =========================================================================

    def set_current_period(self, month: int, year: int) -> Period:
        self._current_period = self._period(month, year, create_correlation_id())
        return self._current_period

    def next_period(self) -> Period:
        self._current_period = self._current_period.next()
        return self._current_period

    def previous_period(self) -> Period:
        self._current_period = self._current_period.previous()
        return self._current_period

    # =========================================================================
    # COMMANDS
    # =========================================================================

    @serialized
    async def set_salary(self, amount: Any) -> Decimal:
        """Set the monthly salary (applies to every month)."""
        correlation_id = create_correlation_id()
        salary = self._require_valid(
            self._validator.validate_salary(amount), correlation_id
        )

        await self._write(self._keys.salary, encode_salary(salary), correlation_id)
        self._salary = salary

        self._audit.log_record_changed(
            AuditEventType.SALARY_SET,
            "salary",
            None,
            f"Salary set to {salary:.2f}",
            correlation_id,
        )
        self._notify(AuditEventType.SALARY_SET.value)
        return salary

    @serialized
    async def set_goal_contribution_day(self, day: Any) -> FinanceConfig:
        """Set the day of the month from which goals are funded automatically."""
        correlation_id = create_correlation_id()
        day = self._require_valid(
            self._validator.validate_contribution_day(day), correlation_id
        )
        config = self._config.model_copy(update={"goal_contribution_day": day})

        await self._write(self._keys.config, encode_config(config), correlation_id)
        self._config = config

        self._audit.log_record_changed(
            AuditEventType.CONFIG_UPDATED,
            "config",
            None,
            f"Goal contribution day set to {day}",
            correlation_id,
        )
        self._notify(AuditEventType.CONFIG_UPDATED.value)
        return config

    @serialized
    async def add_transaction(self, data: InputData) -> Transaction:
        """
        Register a new transaction.

        Args:
            data: Transaction fields without id

        Returns:
            The stored transaction with its new id

        Raises:
            InvalidInputError: If the input is invalid
            StorageError: If it could not be persisted
        """
        correlation_id = create_correlation_id()
        draft: TransactionDraft = self._require_valid(
            self._validator.validate_transaction(data, model=TransactionDraft),
            correlation_id,
        )

        transaction = Transaction(
            **draft.model_dump(),
            id=self._unique_id({t.id for t in self._transactions}),
        )
        transactions = [*self._transactions, transaction]

        await self._write(
            self._keys.transactions, encode_records(transactions), correlation_id
        )
        self._transactions = transactions

        self._audit.log_record_changed(
            AuditEventType.TRANSACTION_ADDED,
            "transaction",
            transaction.id,
            f"Transaction added: {transaction.description} - {transaction.amount:.2f}",
            correlation_id,
            details={
                "category": transaction.category.value,
                "type": transaction.type.value,
                "amount": str(transaction.amount),
            },
        )
        self._notify(AuditEventType.TRANSACTION_ADDED.value)
        return transaction

    @serialized
    async def update_transaction(self, record: InputData) -> Transaction:
        """
        Replace a transaction, keeping its id.

        Raises:
            InvalidInputError: If the record is invalid
            RecordNotFoundError: If no transaction has this id
            StorageError: If it could not be persisted
        """
        correlation_id = create_correlation_id()
        transaction: Transaction = self._require_valid(
            self._validator.validate_transaction(record, model=Transaction),
            correlation_id,
        )

        index = next(
            (i for i, t in enumerate(self._transactions) if t.id == transaction.id),
            None,
        )
        if index is None:
            raise self._not_found("transaction", transaction.id, "update", correlation_id)

        transactions = list(self._transactions)
        transactions[index] = transaction

        await self._write(
            self._keys.transactions, encode_records(transactions), correlation_id
        )
        self._transactions = transactions

        self._audit.log_record_changed(
            AuditEventType.TRANSACTION_UPDATED,
            "transaction",
            transaction.id,
            f"Transaction updated: {transaction.description}",
            correlation_id,
        )
        self._notify(AuditEventType.TRANSACTION_UPDATED.value)
        return transaction

    @serialized
    async def delete_transaction(self, transaction_id: str) -> None:
        """
        Delete a transaction.

        Raises:
            RecordNotFoundError: If nothing was removed
            StorageError: If it could not be persisted
        """
        correlation_id = create_correlation_id()
        transaction_id = str(transaction_id)
        transactions = [t for t in self._transactions if t.id != transaction_id]

        if len(transactions) == len(self._transactions):
            raise self._not_found("transaction", transaction_id, "delete", correlation_id)

        await self._write(
            self._keys.transactions, encode_records(transactions), correlation_id
        )
        self._transactions = transactions

        self._audit.log_record_changed(
            AuditEventType.TRANSACTION_DELETED,
            "transaction",
            transaction_id,
            "Transaction deleted",
            correlation_id,
        )
        self._notify(AuditEventType.TRANSACTION_DELETED.value)

    @serialized
    async def add_goal(self, data: InputData) -> Goal:
        """Create an active savings goal with nothing saved yet."""
        correlation_id = create_correlation_id()
        draft: GoalDraft = self._require_valid(
            self._validator.validate_goal(data, model=GoalDraft),
            correlation_id,
        )

        goal = Goal(
            **draft.model_dump(),
            id=self._unique_id({g.id for g in self._goals}),
            current_amount=ZERO,
            created_at=self._clock(),
        )
        goals = [*self._goals, goal]

        await self._write(self._keys.goals, encode_records(goals), correlation_id)
        self._goals = goals

        self._audit.log_record_changed(
            AuditEventType.GOAL_ADDED,
            "goal",
            goal.id,
            f"Goal added: {goal.name}",
            correlation_id,
            details={
                "total_target": str(goal.total_target),
                "contribution_type": goal.contribution_type.value,
                "contribution_value": str(goal.contribution_value),
            },
        )
        self._notify(AuditEventType.GOAL_ADDED.value)
        return goal

    @serialized
    async def update_goal(self, record: InputData) -> Goal:
        """
        Replace a goal's user-editable fields, keeping its id.

        current_amount and created_at are kept from the stored goal; the
        accumulator only moves through contributions.
        """
        correlation_id = create_correlation_id()
        candidate: Goal = self._require_valid(
            self._validator.validate_goal(record, model=Goal),
            correlation_id,
        )

        index = next(
            (i for i, g in enumerate(self._goals) if g.id == candidate.id),
            None,
        )
        if index is None:
            raise self._not_found("goal", candidate.id, "update", correlation_id)

        existing = self._goals[index]
        goal = candidate.model_copy(update={
            "current_amount": existing.current_amount,
            "created_at": existing.created_at,
        })
        goals = list(self._goals)
        goals[index] = goal

        await self._write(self._keys.goals, encode_records(goals), correlation_id)
        self._goals = goals

        self._audit.log_record_changed(
            AuditEventType.GOAL_UPDATED,
            "goal",
            goal.id,
            f"Goal updated: {goal.name}",
            correlation_id,
            details={"is_active": goal.is_active},
        )
        self._notify(AuditEventType.GOAL_UPDATED.value)
        return goal

    @serialized
    async def delete_goal(self, goal_id: str) -> None:
        """Delete a goal and every contribution made to it."""
        correlation_id = create_correlation_id()
        goal_id = str(goal_id)
        goals = [g for g in self._goals if g.id != goal_id]

        if len(goals) == len(self._goals):
            raise self._not_found("goal", goal_id, "delete", correlation_id)

        contributions = [c for c in self._contributions if c.goal_id != goal_id]
        removed_contributions = len(self._contributions) - len(contributions)

        await self._write(self._keys.goals, encode_records(goals), correlation_id)
        if removed_contributions:
            await self._write(
                self._keys.contributions, encode_records(contributions), correlation_id
            )
        self._goals = goals
        self._contributions = contributions

        self._audit.log_record_changed(
            AuditEventType.GOAL_DELETED,
            "goal",
            goal_id,
            "Goal deleted",
            correlation_id,
            details={"contributions_removed": removed_contributions},
        )
        self._notify(AuditEventType.GOAL_DELETED.value)

    @serialized
    async def process_monthly_goal_contributions(
        self,
        month: int,
        year: int,
    ) -> list[GoalContribution]:
        """
        Fund the active goals from the month's available balance.

        Idempotent: goals already funded for the month are skipped and the
        balance used is net of their contributions, so calling this again
        returns an empty list.

        Returns:
            The contributions created by this call
        """
        correlation_id = create_correlation_id()
        period = self._period(month, year, correlation_id)

        plan = plan_month_contributions(
            self._goals,
            self._contributions,
            self.available_balance_for(period.month, period.year),
            period,
            now=self._clock(),
        )

        if not plan.is_empty:
            contributions = [*self._contributions, *plan.contributions]
            await self._write(
                self._keys.goals, encode_records(plan.updated_goals), correlation_id
            )
            await self._write(
                self._keys.contributions, encode_records(contributions), correlation_id
            )
            self._goals = plan.updated_goals
            self._contributions = contributions

        self._audit.log_contributions_processed(
            month=period.month,
            year=period.year,
            contributions=[
                {
                    "goal_id": c.goal_id,
                    "amount": str(c.amount),
                    "is_complete": c.is_complete,
                }
                for c in plan.contributions
            ],
            remaining=str(plan.remaining_balance),
            correlation_id=correlation_id,
        )
        return list(plan.contributions)

    # =========================================================================
    # BACKUP
    # =========================================================================

    def export_data(self, exported_at: Optional[dt.datetime] = None) -> dict[str, Any]:
        """Build the backup document of the whole dataset."""
        period = self._current_period
        document = build_export_document(
            BackupData(
                salary=self._salary,
                transactions=self._transactions,
                goals=self._goals,
                contributions=self._contributions,
            ),
            period=period,
            balance=self.balance_for(period.month, period.year),
            available_balance=self.available_balance_for(period.month, period.year),
            exported_at=exported_at or self._clock(),
        )
        self._audit.log_import_event(
            AuditEventType.EXPORT_CREATED,
            "Backup exported",
            create_correlation_id(),
            details=document["resumo"],
        )
        return document

    def export_json(self, exported_at: Optional[dt.datetime] = None) -> str:
        return dumps_document(self.export_data(exported_at))

    async def import_data(
        self,
        document: Union[str, bytes, Mapping[str, Any]],
        confirm: ConfirmCallback,
    ) -> ImportResult:
        """
        Replace the whole dataset with a backup.

        The document is validated first; `confirm` then receives a preview
        and must return True (or an awaitable resolving to True) for the
        current data to be overwritten.

        Raises:
            BackupImportError: If the document is rejected
            StorageError: If it could not be persisted
        """
        correlation_id = create_correlation_id()
        try:
            data, warnings = parse_import_document(document)
        except BackupImportError as e:
            self._audit.log_import_event(
                AuditEventType.IMPORT_REJECTED,
                "Backup rejected",
                correlation_id,
                error_message=str(e),
            )
            raise

        preview = ImportPreview(
            incoming_salary=data.salary,
            incoming_transactions=len(data.transactions),
            incoming_goals=len(data.goals),
            incoming_contributions=len(data.contributions),
            current_transactions=len(self._transactions),
            current_goals=len(self._goals),
            current_contributions=len(self._contributions),
            warnings=warnings,
        )

        answer = confirm(preview)
        if inspect.isawaitable(answer):
            answer = await answer
        if not answer:
            self._audit.log_import_event(
                AuditEventType.IMPORT_CANCELLED,
                "Backup import cancelled by the user",
                correlation_id,
            )
            return ImportResult(applied=False, preview=preview)

        async with self._lock:
            await self._write(self._keys.salary, encode_salary(data.salary), correlation_id)
            await self._write(
                self._keys.transactions, encode_records(data.transactions), correlation_id
            )
            await self._write(self._keys.goals, encode_records(data.goals), correlation_id)
            await self._write(
                self._keys.contributions, encode_records(data.contributions), correlation_id
            )

            self._salary = data.salary
            self._transactions = list(data.transactions)
            self._goals = list(data.goals)
            self._contributions = list(data.contributions)

        self._audit.log_import_event(
            AuditEventType.IMPORT_APPLIED,
            "Backup imported",
            correlation_id,
            details=preview.model_dump(mode="json"),
        )
        self._notify(AuditEventType.IMPORT_APPLIED.value)
        return ImportResult(applied=True, preview=preview)


def create_finance_store(
    storage: Optional[KeyValueStoreInterface] = None,
    settings: Optional[AppSettings] = None,
) -> FinanceStore:
    """
    Factory function to create a finance store.

    Args:
        storage: Key-value adapter. Defaults to the backend selected by
            FINTRA_STORAGE_BACKEND.
        settings: Application settings. Defaults to the environment.

    Returns:
        An unloaded FinanceStore; await `load()` before use.
    """
    return FinanceStore(
        storage=storage or create_key_value_store(),
        settings=settings,
    )
