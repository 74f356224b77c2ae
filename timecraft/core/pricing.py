"""
Pricing calculations for usage statistics.

Estimates spend from logged token counts using a single blended rate.
"""

from decimal import Decimal


# gpt-4o-mini: ~$0.15 per 1M input tokens, ~$0.60 per 1M output tokens
DEFAULT_COST_PER_MILLION_TOKENS = Decimal("0.30")

_ONE_MILLION = Decimal("1000000")


def estimate_cost(total_tokens: int, cost_per_million_tokens=DEFAULT_COST_PER_MILLION_TOKENS) -> float:
    """Estimate spend for a token count.

    No rounding is applied, so the estimate scales linearly with tokens.

    Args:
        total_tokens: Number of tokens consumed
        cost_per_million_tokens: Blended price per 1M tokens

    Returns:
        Estimated cost in dollars

    Raises:
        ValueError: If total_tokens is negative
    """
    if total_tokens < 0:
        raise ValueError("total_tokens cannot be negative")

    rate = Decimal(str(cost_per_million_tokens))
    return float(Decimal(total_tokens) / _ONE_MILLION * rate)
