"""
Pricing Service - static per-model token prices
Prices are USD per 1,000,000 tokens
"""
from dataclasses import dataclass
from typing import Tuple

TOKENS_PER_PRICE_UNIT = 1_000_000

@dataclass(frozen=True)
class PricingEntry:
    input: float
    output: float

# Matched by substring containment, first hit wins. Order is significant:
# a key must come before every shorter key it contains
# (gpt-4o-mini > gpt-4o > gpt-4).
PRICING_TABLE: Tuple[Tuple[str, PricingEntry], ...] = (
    # Anthropic
    ("claude-opus-4", PricingEntry(input=15, output=75)),
    ("claude-sonnet-4", PricingEntry(input=3, output=15)),
    ("claude-3-5-sonnet", PricingEntry(input=3, output=15)),
    ("claude-3-5-haiku", PricingEntry(input=0.25, output=1.25)),
    ("claude-3-opus", PricingEntry(input=15, output=75)),
    ("claude-3-haiku", PricingEntry(input=0.25, output=1.25)),
    # OpenAI
    ("gpt-4o-mini", PricingEntry(input=0.15, output=0.6)),
    ("gpt-4o", PricingEntry(input=2.5, output=10)),
    ("gpt-4-turbo", PricingEntry(input=10, output=30)),
    ("gpt-4", PricingEntry(input=30, output=60)),
    ("gpt-3.5-turbo", PricingEntry(input=0.5, output=1.5)),
    ("o4-mini", PricingEntry(input=1.1, output=4.4)),
    ("o3", PricingEntry(input=10, output=40)),
)

# Sonnet-class pricing for anything unrecognised
DEFAULT_PRICING = PricingEntry(input=3, output=15)

def get_pricing(model: str) -> PricingEntry:
    """Return the first table entry whose key is contained in the model name"""
    for key, entry in PRICING_TABLE:
        if key in model:
            return entry
    return DEFAULT_PRICING

def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """
    Calculate the cost of a request

    Args:
        model: Model name as reported by the provider
        input_tokens: Prompt/input token count
        output_tokens: Completion/output token count

    Returns:
        Cost in USD
    """
    pricing = get_pricing(model)
    return (input_tokens * pricing.input + output_tokens * pricing.output) / TOKENS_PER_PRICE_UNIT
