"""
Budget policy persistence.

Stores the daily budget in budget.json as {"daily": number?, "action": str}.
A missing file means no budget is configured.
"""

import json
import logging
from decimal import Decimal
from pathlib import Path
from typing import Optional, Protocol, Union

from xc_cli.core.errors import ConfigError
from .models import BudgetAction, BudgetPolicy

logger = logging.getLogger(__name__)

DEFAULT_POLICY = BudgetPolicy()


class BudgetStore(Protocol):
    """Read and write the singleton budget policy."""

    def get_policy(self) -> BudgetPolicy:
        ...

    def set_policy(self, policy: BudgetPolicy) -> None:
        ...

    def clear_policy(self) -> None:
        ...


class JsonBudgetStore:
    """Budget policy kept in a JSON file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def get_policy(self) -> BudgetPolicy:
        """Load the policy, returning the default if none is configured.

        Raises:
            ConfigError: If the file exists but is not a valid budget
        """
        if not self.path.exists():
            return DEFAULT_POLICY

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in budget file {self.path}: {e}") from e

        return parse_budget_policy(raw, str(self.path))

    def set_policy(self, policy: BudgetPolicy) -> None:
        """Write the policy to disk."""
        data = {"action": policy.action.value}
        if policy.daily_limit is not None:
            data["daily"] = float(policy.daily_limit)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            f.write(json.dumps(data, indent=2) + "\n")
        logger.info("Saved budget policy to %s", self.path)

    def clear_policy(self) -> None:
        """Remove the budget file, reverting to the default policy."""
        if self.path.exists():
            self.path.unlink()
            logger.info("Removed budget policy %s", self.path)


class InMemoryBudgetStore:
    """Budget policy held in memory, for tests."""

    def __init__(self, policy: Optional[BudgetPolicy] = None):
        self.policy = policy

    def get_policy(self) -> BudgetPolicy:
        return self.policy or DEFAULT_POLICY

    def set_policy(self, policy: BudgetPolicy) -> None:
        self.policy = policy

    def clear_policy(self) -> None:
        self.policy = None


def parse_budget_policy(raw, path: str = "budget") -> BudgetPolicy:
    """Validate a decoded budget file.

    Args:
        raw: Decoded JSON content
        path: Path for error messages

    Returns:
        Validated BudgetPolicy

    Raises:
        ConfigError: If the content is invalid
    """
    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a JSON object")

    unknown_keys = set(raw.keys()) - {"daily", "action"}
    if unknown_keys:
        raise ConfigError(f"Unknown keys in {path}: {unknown_keys}")

    action_str = raw.get("action", DEFAULT_POLICY.action.value)
    try:
        action = BudgetAction(str(action_str).lower())
    except ValueError:
        valid_actions = [action.value for action in BudgetAction]
        raise ConfigError(f"'action' in {path} must be one of: {valid_actions}")

    daily = raw.get("daily")
    if daily is None:
        return BudgetPolicy(daily_limit=None, action=action)
    if isinstance(daily, bool) or not isinstance(daily, (int, float)) or daily <= 0:
        raise ConfigError(f"'daily' in {path} must be a positive number")

    return BudgetPolicy(daily_limit=Decimal(str(daily)), action=action)
