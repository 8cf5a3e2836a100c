"""
Builds GuardedClient instances from the on-disk configuration.
"""

from typing import Optional

from xc_cli.config.loader import AppPaths, ConfigStore, default_paths, load_cost_table
from xc_cli.core.budget import BudgetEnforcer, ConfirmPrompt, interactive_confirm
from xc_cli.core.errors import XApiError
from xc_cli.core.spend import Clock, system_clock
from xc_cli.storage.budget_store import JsonBudgetStore
from xc_cli.storage.ledger import JsonlUsageLedger
from .auth import resolve_access_token
from .guarded_client import AccountingContext, GuardedClient
from .x_api import XApi


def build_accounting_context(
    paths: Optional[AppPaths] = None,
    clock: Clock = system_clock,
    confirm: ConfirmPrompt = interactive_confirm,
) -> AccountingContext:
    """Wire the file-backed ledger and budget store into a context."""
    paths = paths or default_paths()
    ledger = JsonlUsageLedger(paths.usage_log)
    cost_table = load_cost_table(paths.pricing_file)
    enforcer = BudgetEnforcer(
        store=JsonBudgetStore(paths.budget_file),
        ledger=ledger,
        cost_table=cost_table,
        clock=clock,
        confirm=confirm,
    )
    return AccountingContext(ledger=ledger, enforcer=enforcer, cost_table=cost_table, clock=clock)


def get_client(account_name: Optional[str] = None, paths: Optional[AppPaths] = None) -> GuardedClient:
    """Create an authenticated, budget-checked client for an account."""
    paths = paths or default_paths()
    token = resolve_access_token(ConfigStore(paths), account_name)
    return GuardedClient(XApi(token), build_accounting_context(paths))


def resolve_authenticated_user_id(
    client: GuardedClient,
    store: ConfigStore,
    account_name: Optional[str] = None,
) -> str:
    """Get the authenticated user's id, caching it in the account store."""
    account = store.get_account(account_name)
    if account and account.user_id:
        return account.user_id

    result = client.users.get_me(user_fields=["id", "username"])
    data = result.get("data") or {}
    user_id = data.get("id")
    if not user_id:
        raise XApiError("Could not resolve authenticated user ID")

    if account:
        account.user_id = user_id
        account.username = data.get("username")
        store.set_account(account_name or store.load().default_account, account)
    return user_id


def resolve_user_id(client: GuardedClient, username: str) -> str:
    """Resolve a @username to a user id."""
    clean = username.lstrip("@")
    result = client.users.get_by_username(clean, user_fields=["id"])
    user_id = (result.get("data") or {}).get("id")
    if not user_id:
        raise XApiError(f"User @{clean} not found")
    return user_id
