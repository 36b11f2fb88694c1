"""
Token counting and usage tracking.

Holds the four token categories reported by the assistant CLI logs.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class TokenUsage:
    """Token usage data for cost calculation.

    Contains exact token counts as logged, without estimation.
    """
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        """Total tokens across all four categories."""
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_creation_tokens
            + self.cache_read_tokens
        )

    @property
    def rate_limited_tokens(self) -> int:
        """Tokens that count toward rate-limit windows (input + output)."""
        return self.input_tokens + self.output_tokens

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            cache_creation_tokens=self.cache_creation_tokens + other.cache_creation_tokens,
            cache_read_tokens=self.cache_read_tokens + other.cache_read_tokens,
        )
