"""
Data models for storage layer.

Defines the usage ledger record and its JSON line encoding.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional

from xc_cli.core.errors import MalformedLedgerEntry


class HttpMethod(Enum):
    """HTTP verbs used by X API operations."""
    GET = "GET"
    POST = "POST"
    DELETE = "DELETE"
    PUT = "PUT"


@dataclass(frozen=True)
class UsageRecord:
    """Immutable record of one admitted API call.

    Append-only records that create an auditable ledger of API spend.
    Once written, these records must never be modified.
    """
    timestamp: datetime
    operation_id: str
    http_method: HttpMethod
    estimated_cost: Decimal

    def __post_init__(self):
        """Validate cost is non-negative."""
        if self.estimated_cost < 0:
            raise ValueError("estimated_cost cannot be negative")

    def to_json_dict(self) -> Dict[str, Any]:
        """Encode as a ledger line object."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "endpoint": self.operation_id,
            "method": self.http_method.value,
            "estimatedCost": float(self.estimated_cost),
        }

    @classmethod
    def from_json_dict(cls, data: Any) -> "UsageRecord":
        """Decode a ledger line object.

        Raises:
            MalformedLedgerEntry: If any field is missing or invalid
        """
        if not isinstance(data, dict):
            raise MalformedLedgerEntry("ledger entry must be a JSON object")
        try:
            timestamp = datetime.fromisoformat(
                str(data["timestamp"]).replace("Z", "+00:00")
            )
            cost = data["estimatedCost"]
            if isinstance(cost, bool) or not isinstance(cost, (int, float)):
                raise MalformedLedgerEntry(f"invalid estimatedCost: {cost!r}")
            return cls(
                timestamp=_as_aware(timestamp),
                operation_id=str(data["endpoint"]),
                http_method=HttpMethod(str(data.get("method", "GET")).upper()),
                estimated_cost=Decimal(str(cost)),
            )
        except (KeyError, ValueError, InvalidOperation) as e:
            raise MalformedLedgerEntry(f"invalid ledger entry: {e}") from e


def _as_aware(value: datetime) -> datetime:
    # Naive timestamps are read as local time
    if value.tzinfo is None:
        return value.astimezone()
    return value.astimezone(timezone.utc)


class BudgetAction(Enum):
    """Actions to take when the daily budget would be exceeded."""
    BLOCK = "block"
    WARN = "warn"
    CONFIRM = "confirm"


@dataclass(frozen=True)
class BudgetPolicy:
    """Daily spending cap. A missing limit means unlimited."""
    daily_limit: Optional[Decimal] = None
    action: BudgetAction = BudgetAction.WARN

    def __post_init__(self):
        """Validate limit is positive."""
        if self.daily_limit is not None and self.daily_limit <= 0:
            raise ValueError("daily budget must be > 0")
