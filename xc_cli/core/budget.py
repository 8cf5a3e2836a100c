"""
Daily budget enforcement.

Checked synchronously before every API call:
1. No daily limit configured - admit
2. Today's spend plus the call's estimated cost within the limit - admit
3. Otherwise apply the configured action:
   block   - raise BudgetExceeded, the call is never dispatched
   warn    - emit a warning and admit
   confirm - ask the operator; declining raises UserCancelled

Checks are read-then-decide with no cross-process locking, so two
concurrent invocations can jointly exceed the limit.
"""

import logging
import sys
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

import typer
from rich.console import Console

from .errors import BudgetExceeded, UserCancelled
from .pricing import COST_TABLE, CostTable
from .spend import Clock, sum_since_local_midnight, system_clock
from xc_cli.storage.budget_store import BudgetStore
from xc_cli.storage.ledger import UsageLedger
from xc_cli.storage.models import BudgetAction, BudgetPolicy, UsageRecord

logger = logging.getLogger(__name__)

ConfirmPrompt = Callable[[str], bool]
WarningSink = Callable[[str], None]

_stderr = Console(stderr=True)


def interactive_confirm(message: str) -> bool:
    """Ask the operator yes/no on stderr.

    Without an interactive stdin there is nobody to answer, so the call is
    declined instead of waiting forever.
    """
    if not sys.stdin or not sys.stdin.isatty():
        logger.warning("stdin is not a terminal; declining over-budget call")
        return False
    return typer.confirm(f"{message}. Continue?", default=False, err=True)


def stderr_warning(message: str) -> None:
    _stderr.print(f"[yellow]Warning:[/] {message}", highlight=False)


@dataclass(frozen=True)
class BudgetDecision:
    """Outcome of an admitted budget check."""
    today_spend: Decimal
    call_cost: Decimal
    over_budget: bool
    action: Optional[BudgetAction] = None


@dataclass(frozen=True)
class BudgetStatus:
    """Budget usage for display."""
    daily_limit: Decimal
    today_spend: Decimal
    remaining: Decimal
    percent_used: Decimal
    action: BudgetAction


class BudgetEnforcer:
    """Compares today's spend against the configured daily budget."""

    def __init__(
        self,
        store: BudgetStore,
        ledger: UsageLedger,
        cost_table: CostTable = COST_TABLE,
        clock: Clock = system_clock,
        confirm: ConfirmPrompt = interactive_confirm,
        warn: WarningSink = stderr_warning,
    ):
        self.store = store
        self.ledger = ledger
        self.cost_table = cost_table
        self.clock = clock
        self.confirm = confirm
        self.warn = warn

    def check(self, operation_id: str) -> BudgetDecision:
        """Decide whether a pending operation may be dispatched.

        Args:
            operation_id: Identifier of the pending operation

        Returns:
            BudgetDecision describing the admitted call

        Raises:
            BudgetExceeded: If the action is BLOCK and the call would exceed the limit
            UserCancelled: If the action is CONFIRM and the operator declines
        """
        policy = self.store.get_policy()
        call_cost = self.cost_table.estimate(operation_id)
        if policy.daily_limit is None:
            return BudgetDecision(Decimal("0"), call_cost, over_budget=False)

        today_spend = sum_since_local_midnight(self.ledger.load_all(), self.clock())
        if today_spend + call_cost <= policy.daily_limit:
            return BudgetDecision(today_spend, call_cost, over_budget=False)

        message = (
            f"Daily budget ${policy.daily_limit:.2f} exceeded "
            f"(today: ${today_spend:.2f} + ${call_cost:.2f})"
        )

        if policy.action == BudgetAction.BLOCK:
            logger.info("Blocked %s: %s", operation_id, message)
            raise BudgetExceeded(
                f"{message}. Use 'xc budget reset' or increase your budget."
            )

        if policy.action == BudgetAction.CONFIRM:
            if not self.confirm(message):
                logger.info("Operator declined %s: %s", operation_id, message)
                raise UserCancelled("Cancelled by user.")
        else:
            logger.info("Over budget for %s: %s", operation_id, message)
            self.warn(message)

        return BudgetDecision(today_spend, call_cost, over_budget=True, action=policy.action)


def budget_status(
    policy: BudgetPolicy,
    records: List[UsageRecord],
    now: datetime,
) -> Optional[BudgetStatus]:
    """Summarize today's spend against the policy, or None if unlimited."""
    if policy.daily_limit is None:
        return None
    today_spend = sum_since_local_midnight(records, now)
    remaining = max(Decimal("0"), policy.daily_limit - today_spend)
    percent = (today_spend / policy.daily_limit) * 100
    return BudgetStatus(
        daily_limit=policy.daily_limit,
        today_spend=today_spend,
        remaining=remaining,
        percent_used=percent,
        action=policy.action,
    )
