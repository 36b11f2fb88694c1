"""
Pricing calculations and rate management.

Maps model identifiers to per-million-token price schedules and computes
costs for the four token categories.

Unknown model identifiers are priced with the sonnet schedule by default,
so a future model name matching none of the known families is mis-priced
without notice. Set ``unknown_model_pricing: unpriced`` in the config to
price them at zero and flag the breakdown instead.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .token_counter import TokenUsage


class UnknownModelPolicy(Enum):
    """How to price a model identifier that matches no known family."""
    SONNET = "sonnet"      # Price as sonnet (historical behavior)
    UNPRICED = "unpriced"  # Price at zero and mark as unpriced


@dataclass(frozen=True)
class ModelPricing:
    """Price schedule in USD per one million tokens."""
    input: float
    output: float
    cache_creation: float
    cache_read: float

    def cost(self, usage: TokenUsage) -> float:
        """Cost of the given token sums under this schedule."""
        return (
            usage.input_tokens * self.input
            + usage.output_tokens * self.output
            + usage.cache_creation_tokens * self.cache_creation
            + usage.cache_read_tokens * self.cache_read
        ) / 1_000_000


OPUS_4_5_PRICING = ModelPricing(input=5.0, output=25.0, cache_creation=6.25, cache_read=0.50)
OPUS_PRICING = ModelPricing(input=15.0, output=75.0, cache_creation=18.75, cache_read=1.50)
SONNET_PRICING = ModelPricing(input=3.0, output=15.0, cache_creation=3.75, cache_read=0.30)
HAIKU_PRICING = ModelPricing(input=1.0, output=5.0, cache_creation=1.25, cache_read=0.10)
UNPRICED = ModelPricing(input=0.0, output=0.0, cache_creation=0.0, cache_read=0.0)


@dataclass(frozen=True)
class PricingTable:
    """Substring-matched pricing table for model families.

    Rules are checked in order; a rule matches when any of its substrings
    occurs in the lowercased model identifier.
    """
    rules: Tuple[Tuple[Tuple[str, ...], ModelPricing], ...]
    unknown_model_policy: UnknownModelPolicy = UnknownModelPolicy.SONNET

    def match(self, model: str) -> Optional[ModelPricing]:
        """Return the pricing of the first matching rule, or None."""
        lower = model.lower()
        for needles, pricing in self.rules:
            if any(needle in lower for needle in needles):
                return pricing
        return None

    def get_pricing(self, model: str) -> ModelPricing:
        """Get pricing for a model identifier.

        Args:
            model: Model identifier, matched case-insensitively

        Returns:
            ModelPricing for the model, falling back per unknown_model_policy
        """
        pricing = self.match(model)
        if pricing is not None:
            return pricing
        if self.unknown_model_policy == UnknownModelPolicy.UNPRICED:
            return UNPRICED
        return SONNET_PRICING

    def is_known(self, model: str) -> bool:
        """Whether the model identifier matches a known family."""
        return self.match(model) is not None

    def is_priced(self, model: str) -> bool:
        """False only for unknown models under the UNPRICED policy."""
        return self.is_known(model) or self.unknown_model_policy == UnknownModelPolicy.SONNET

    def with_policy(self, policy: UnknownModelPolicy) -> "PricingTable":
        """Copy of this table with a different unknown-model policy."""
        return PricingTable(rules=self.rules, unknown_model_policy=policy)


# Order matters: the cheaper opus generation must be checked before generic opus
PRICING_TABLE = PricingTable(rules=(
    (("opus-4-5", "opus-4.5"), OPUS_4_5_PRICING),
    (("opus",), OPUS_PRICING),
    (("sonnet",), SONNET_PRICING),
    (("haiku",), HAIKU_PRICING),
))


def calculate_cost(model: str, usage: TokenUsage, table: PricingTable = PRICING_TABLE) -> float:
    """Calculate the cost of token usage for a model.

    Args:
        model: Model identifier
        usage: Token sums for the four categories
        table: Pricing table to use

    Returns:
        Cost in USD, unrounded
    """
    return table.get_pricing(model).cost(usage)
