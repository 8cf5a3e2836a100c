"""
Configuration management and loading.

All state lives under ~/.xc/ (or $XC_CONFIG_DIR): the account store
(config.json), the usage ledger (usage.jsonl), the budget (budget.json)
and optional pricing overrides (pricing.yaml).
"""

import json
import logging
import os
import shutil
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Dict, Optional

import yaml

from xc_cli.core.errors import ConfigError
from xc_cli.core.pricing import COST_TABLE, CostTable, OperationPricing
from xc_cli.storage.models import HttpMethod

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.json"
USAGE_LOG_FILENAME = "usage.jsonl"
BUDGET_FILENAME = "budget.json"
PRICING_FILENAME = "pricing.yaml"


def get_config_dir() -> Path:
    """Return the xc data/config directory."""
    override = os.getenv("XC_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".xc"


def get_legacy_config_dir() -> Path:
    """Return the pre-~/.xc config location used for migration."""
    xdg = os.getenv("XDG_CONFIG_HOME")
    base = Path(xdg).expanduser() if xdg else Path.home() / ".config"
    return base / "xc"


@dataclass(frozen=True)
class AppPaths:
    """Locations of every file the client reads or writes."""
    config_dir: Path

    @property
    def config_file(self) -> Path:
        return self.config_dir / CONFIG_FILENAME

    @property
    def usage_log(self) -> Path:
        return self.config_dir / USAGE_LOG_FILENAME

    @property
    def budget_file(self) -> Path:
        return self.config_dir / BUDGET_FILENAME

    @property
    def pricing_file(self) -> Path:
        return self.config_dir / PRICING_FILENAME


def default_paths() -> AppPaths:
    return AppPaths(get_config_dir())


@dataclass
class AuthCredential:
    """Credential material for one account."""
    type: str
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None  # epoch milliseconds
    bearer_token: Optional[str] = None
    client_id: Optional[str] = None

    def to_dict(self) -> Dict:
        data = {
            "type": self.type,
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "expiresAt": self.expires_at,
            "bearerToken": self.bearer_token,
            "clientId": self.client_id,
        }
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: Dict) -> "AuthCredential":
        return cls(
            type=data.get("type", ""),
            access_token=data.get("accessToken"),
            refresh_token=data.get("refreshToken"),
            expires_at=data.get("expiresAt"),
            bearer_token=data.get("bearerToken"),
            client_id=data.get("clientId"),
        )


@dataclass
class AccountConfig:
    """A named account with its credential and cached identity."""
    name: str
    auth: AuthCredential
    user_id: Optional[str] = None
    username: Optional[str] = None

    def to_dict(self) -> Dict:
        data = {"name": self.name, "auth": self.auth.to_dict()}
        if self.user_id:
            data["userId"] = self.user_id
        if self.username:
            data["username"] = self.username
        return data

    @classmethod
    def from_dict(cls, name: str, data: Dict) -> "AccountConfig":
        if not isinstance(data.get("auth"), dict):
            raise ConfigError(f"Account '{name}' has no 'auth' section")
        return cls(
            name=data.get("name", name),
            auth=AuthCredential.from_dict(data["auth"]),
            user_id=data.get("userId"),
            username=data.get("username"),
        )


@dataclass
class XcConfig:
    """Complete account store."""
    default_account: str = "default"
    accounts: Dict[str, AccountConfig] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "defaultAccount": self.default_account,
            "accounts": {name: acc.to_dict() for name, acc in self.accounts.items()},
        }


class ConfigStore:
    """Reads and writes the JSON account store."""

    def __init__(self, paths: Optional[AppPaths] = None):
        self.paths = paths or default_paths()

    @property
    def path(self) -> Path:
        return self.paths.config_file

    def _migrate_if_needed(self) -> None:
        legacy = get_legacy_config_dir() / CONFIG_FILENAME
        if not self.path.exists() and legacy.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(legacy, self.path)
            logger.warning("Migrated config: %s -> %s", legacy.parent, self.path.parent)

    def load(self) -> XcConfig:
        """Load the account store, returning an empty one if absent.

        Raises:
            ConfigError: If the file is not valid JSON or has the wrong shape
        """
        self._migrate_if_needed()
        if not self.path.exists():
            return XcConfig()

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in config file {self.path}: {e}") from e

        if not isinstance(raw, dict):
            raise ConfigError(f"{self.path} must contain a JSON object")
        accounts_data = raw.get("accounts", {})
        if not isinstance(accounts_data, dict):
            raise ConfigError("'accounts' must be a dictionary")

        return XcConfig(
            default_account=raw.get("defaultAccount", "default"),
            accounts={
                name: AccountConfig.from_dict(name, data)
                for name, data in accounts_data.items()
            },
        )

    def save(self, config: XcConfig) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            f.write(json.dumps(config.to_dict(), indent=2) + "\n")

    def get_account(self, name: Optional[str] = None) -> Optional[AccountConfig]:
        config = self.load()
        return config.accounts.get(name or config.default_account)

    def set_account(self, name: str, account: AccountConfig) -> XcConfig:
        """Store an account; the first account stored becomes the default."""
        config = self.load()
        config.accounts[name] = account
        if len(config.accounts) == 1:
            config.default_account = name
        self.save(config)
        return config

    def set_default_account(self, name: str) -> None:
        config = self.load()
        if name not in config.accounts:
            available = ", ".join(config.accounts) or "none"
            raise ConfigError(f'Account "{name}" not found. Available: {available}')
        config.default_account = name
        self.save(config)

    def remove_account(self, name: Optional[str] = None) -> str:
        """Remove an account, picking a new default if needed.

        Returns:
            The name of the removed account
        """
        config = self.load()
        name = name or config.default_account
        if name not in config.accounts:
            raise ConfigError(f'Account "{name}" not found.')
        del config.accounts[name]
        if config.default_account == name:
            config.default_account = next(iter(config.accounts), "default")
        self.save(config)
        return name


def load_cost_table(path: Optional[Path] = None) -> CostTable:
    """Load the cost table, applying pricing.yaml overrides if present.

    Strict validation ensures a typo in the overrides never silently
    changes what the budget check charges.

    Args:
        path: Path to YAML pricing file (defaults to the config directory)

    Returns:
        Built-in table merged with validated overrides

    Raises:
        ConfigError: If the YAML is invalid or has unknown keys/values
    """
    pricing_path = path or default_paths().pricing_file
    if not pricing_path.exists():
        return COST_TABLE

    with open(pricing_path, "r", encoding="utf-8") as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in pricing file {pricing_path}: {e}") from e

    if not raw_config:
        return COST_TABLE
    if not isinstance(raw_config, dict):
        raise ConfigError("Pricing file must contain a mapping")

    allowed_top_keys = {"default_cost", "operations"}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ConfigError(f"Unknown pricing keys: {unknown_keys}")

    default_cost = None
    if "default_cost" in raw_config:
        default_cost = _parse_cost(raw_config["default_cost"], "default_cost")

    operations_data = raw_config.get("operations") or {}
    if not isinstance(operations_data, dict):
        raise ConfigError("'operations' must be a dictionary")

    overrides = {}
    for operation_id, data in operations_data.items():
        overrides[operation_id] = _parse_operation_pricing(
            data, f"operations.{operation_id}", COST_TABLE.method_of(operation_id)
        )

    logger.debug("Loaded %d pricing overrides from %s", len(overrides), pricing_path)
    return COST_TABLE.with_overrides(overrides, default_cost=default_cost)


def _parse_cost(value, path: str) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ConfigError(f"'{path}' must be a number >= 0")
    return Decimal(str(value))


def _parse_operation_pricing(data, path: str, default_method: HttpMethod) -> OperationPricing:
    """Parse and validate one operation override.

    Args:
        data: Operation override data
        path: Path for error messages
        default_method: Method used when the override omits one

    Returns:
        Validated OperationPricing

    Raises:
        ConfigError: If the override is invalid
    """
    if not isinstance(data, dict):
        raise ConfigError(f"'{path}' must be a dictionary")

    unknown_keys = set(data.keys()) - {"cost", "method"}
    if unknown_keys:
        raise ConfigError(f"Unknown keys in {path}: {unknown_keys}")

    if "cost" not in data:
        raise ConfigError(f"Missing required 'cost' in {path}")
    cost = _parse_cost(data["cost"], f"{path}.cost")

    method = default_method
    if "method" in data:
        try:
            method = HttpMethod(str(data["method"]).upper())
        except ValueError:
            valid_methods = [m.value for m in HttpMethod]
            raise ConfigError(f"'method' in {path} must be one of: {valid_methods}")

    return OperationPricing(cost=cost, method=method)
