"""
Pricing table and cost estimation.

Maps X API operation identifiers to an estimated dollar cost and HTTP verb.
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Dict, Mapping, Optional

from xc_cli.storage.models import HttpMethod


@dataclass(frozen=True)
class OperationPricing:
    """Estimated cost and HTTP method for one operation."""
    cost: Decimal
    method: HttpMethod = HttpMethod.GET

    def __post_init__(self):
        """Validate cost is non-negative."""
        if self.cost < 0:
            raise ValueError("operation cost cannot be negative")


@dataclass(frozen=True)
class CostTable:
    """Fixed per-operation cost table.

    Unknown operations are charged the conservative default cost and are
    assumed to be GET requests.
    """
    prices: Dict[str, OperationPricing]
    default_cost: Decimal = Decimal("0.005")
    default_method: HttpMethod = field(default=HttpMethod.GET)

    def estimate(self, operation_id: str) -> Decimal:
        """Get estimated dollar cost for an operation.

        Args:
            operation_id: Operation identifier such as "posts.create"

        Returns:
            Estimated cost in dollars
        """
        pricing = self.prices.get(operation_id)
        return pricing.cost if pricing else self.default_cost

    def method_of(self, operation_id: str) -> HttpMethod:
        """Get the HTTP method for an operation, defaulting to GET."""
        pricing = self.prices.get(operation_id)
        return pricing.method if pricing else self.default_method

    def with_overrides(
        self,
        prices: Mapping[str, OperationPricing],
        default_cost: Optional[Decimal] = None,
    ) -> "CostTable":
        """Return a new table with entries added or replaced."""
        merged = dict(self.prices)
        merged.update(prices)
        if default_cost is None:
            return replace(self, prices=merged)
        return replace(self, prices=merged, default_cost=default_cost)


# Rough estimates based on X API pricing tiers
COST_TABLE = CostTable({
    "posts.searchRecent": OperationPricing(Decimal("0.01")),
    "posts.searchAll": OperationPricing(Decimal("0.02")),
    "posts.create": OperationPricing(Decimal("0.01"), HttpMethod.POST),
    "users.getMe": OperationPricing(Decimal("0.005")),
    "users.getByUsername": OperationPricing(Decimal("0.005")),
    "users.getPosts": OperationPricing(Decimal("0.005")),
    "users.getTimeline": OperationPricing(Decimal("0.005")),
    "users.likePost": OperationPricing(Decimal("0.005"), HttpMethod.POST),
    "users.unlikePost": OperationPricing(Decimal("0.005"), HttpMethod.DELETE),
    "usage.get": OperationPricing(Decimal("0.00")),
    "media.upload": OperationPricing(Decimal("0.01"), HttpMethod.POST),
    "media.initializeUpload": OperationPricing(Decimal("0.01"), HttpMethod.POST),
    "media.appendUpload": OperationPricing(Decimal("0.00"), HttpMethod.POST),
    "media.finalizeUpload": OperationPricing(Decimal("0.00"), HttpMethod.POST),
    "media.getUploadStatus": OperationPricing(Decimal("0.00")),
})


def estimate_cost(operation_id: str) -> Decimal:
    """Estimated cost of an operation using the built-in table."""
    return COST_TABLE.estimate(operation_id)


def method_of(operation_id: str) -> HttpMethod:
    """HTTP method of an operation using the built-in table."""
    return COST_TABLE.method_of(operation_id)
