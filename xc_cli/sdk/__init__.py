"""
SDK for xc.

Provides the budget-checked X API client used by every command.
"""

from .guarded_client import AccountingContext, GuardedClient
from .factory import build_accounting_context, get_client

__all__ = ["AccountingContext", "GuardedClient", "build_accounting_context", "get_client"]
