"""
Approximate USD pricing for supported models.

Rates are per 1K tokens and only used for budgeting and the usage metrics;
they are not billing-grade.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_PRICING_MODEL = "gpt-3.5-turbo"


@dataclass(frozen=True)
class ModelPricing:
    prompt_per_1k: float
    completion_per_1k: float


@dataclass(frozen=True)
class PricingTable:
    prices: dict[str, ModelPricing]

    def get_pricing(self, model: str) -> ModelPricing:
        """Rates for ``model``; unknown models fall back to the default rates."""
        return self.prices.get(model) or self.prices[DEFAULT_PRICING_MODEL]


PRICING_TABLE = PricingTable(
    prices={
        "gpt-4-turbo-preview": ModelPricing(0.01, 0.03),
        "gpt-3.5-turbo": ModelPricing(0.0005, 0.0015),
        "claude-3-5-sonnet-20241022": ModelPricing(0.003, 0.015),
    }
)


def estimate_cost(
    provider: str,
    model: str,
    prompt_tokens: int,
    completion_tokens: int,
    table: PricingTable = PRICING_TABLE,
) -> float:
    """
    Estimate the cost of one call.

    ``provider`` is accepted for symmetry with the usage records; rates are
    keyed by model name only.
    """
    rates = table.get_pricing(model)
    return (prompt_tokens / 1000) * rates.prompt_per_1k + (
        completion_tokens / 1000
    ) * rates.completion_per_1k
