"""
Automatic Goal Contributions

Re-runs the contribution processor in the background after the data
changes, so goals are funded without the user asking.

- Mutations are debounced: a burst of commands schedules a single pass
- A pass only runs when the current period is due (a past month, or the
  current month from the configured contribution day on)
- Processing is idempotent, so running a pass too often is harmless
- Failures are logged and never raised into the command that triggered them
"""

import asyncio
import calendar
import datetime as dt
from typing import Callable, Optional

from fintra.audit import AuditLogger
from fintra.config import get_settings
from fintra.models.audit import AuditEventType
from fintra.models.finance import GoalContribution, Period
from fintra.orchestrator import FinanceStore


def is_contribution_due(period: Period, today: dt.date, contribution_day: int) -> bool:
    """
    Whether `period` can be funded on `today`.

    Past months always can and future months never can. The current month
    can from `contribution_day` on, clamped to the length of the month so
    a day of 31 still fires at the end of a 30-day month.
    """
    current = Period.from_date(today)
    if period.index < current.index:
        return True
    if period.index > current.index:
        return False

    last_day = calendar.monthrange(today.year, today.month)[1]
    return today.day >= min(contribution_day, last_day)


class ContributionScheduler:
    """
    Debounced background processing of the current period.

    Usage:
        scheduler = ContributionScheduler(store)
        scheduler.attach()
        ...
        await scheduler.aclose()
    """

    # Events that do not change what the processor would allocate
    IGNORED_EVENTS = frozenset({AuditEventType.CONFIG_UPDATED.value})

    def __init__(
        self,
        store: FinanceStore,
        debounce_seconds: Optional[float] = None,
        today: Callable[[], dt.date] = dt.date.today,
        audit_logger: Optional[AuditLogger] = None,
    ):
        if debounce_seconds is None:
            debounce_seconds = get_settings().app.auto_process_debounce_seconds
        self._store = store
        self._delay = debounce_seconds
        self._today = today
        self._audit = audit_logger or store.audit_logger
        self._pending: Optional[asyncio.Task] = None
        self._detach: Optional[Callable[[], None]] = None
        self.runs = 0

    @property
    def is_attached(self) -> bool:
        return self._detach is not None

    def attach(self) -> None:
        """Start listening to the store's mutations."""
        if self._detach is None:
            self._detach = self._store.add_listener(self._on_mutation)

    def detach(self) -> None:
        if self._detach is not None:
            self._detach()
            self._detach = None

    def _on_mutation(self, event: str) -> None:
        if event in self.IGNORED_EVENTS:
            return
        self.trigger()

    def trigger(self) -> None:
        """
        Schedule a pass after the debounce delay.

        A pass still waiting out its delay is replaced. A pass already
        processing is left to finish.
        """
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = asyncio.get_running_loop().create_task(self._debounced_run())

    async def _debounced_run(self) -> None:
        await asyncio.sleep(self._delay)
        # Shielded so a later trigger cannot interrupt a write in flight
        await asyncio.shield(self.run_once())

    async def run_once(self) -> list[GoalContribution]:
        """
        Process the store's current period if it is due.

        Returns:
            The contributions created; empty when nothing was due or the
            pass failed
        """
        self.runs += 1
        store = self._store
        period = store.current_period

        if not is_contribution_due(
            period, self._today(), store.config.goal_contribution_day
        ):
            return []

        try:
            return await store.process_monthly_goal_contributions(
                period.month, period.year
            )
        except Exception as e:
            self._audit.log_error(
                error_type="auto_contribution_failed",
                error_message=str(e),
                details={"month": period.month, "year": period.year},
            )
            return []

    async def wait_idle(self) -> None:
        """Wait for the scheduled pass, if any, to finish."""
        while self._pending is not None and not self._pending.done():
            pending = self._pending
            try:
                await pending
            except asyncio.CancelledError:
                if not pending.cancelled():
                    raise
                if pending is self._pending:
                    return

    async def aclose(self) -> None:
        """Stop listening and drop any pass still waiting."""
        self.detach()
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
            try:
                await self._pending
            except asyncio.CancelledError:
                pass
        self._pending = None
