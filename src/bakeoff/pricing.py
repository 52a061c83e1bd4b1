# Copyright (c) Syntropy Systems
"""Published per-token prices used to estimate task cost."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TokenRates:
    """Dollar price per one million tokens."""

    input: float
    output: float


MODEL_RATES: dict[str, TokenRates] = {
    "claude": TokenRates(input=3.0, output=15.0),
    "claude-haiku": TokenRates(input=0.80, output=4.0),
    "claude-opus": TokenRates(input=15.0, output=75.0),
    "chatgpt": TokenRates(input=2.5, output=10.0),
    "gpt-4o-mini": TokenRates(input=0.15, output=0.60),
    "gemini": TokenRates(input=0.15, output=3.5),
    "gemini-pro": TokenRates(input=1.25, output=10.0),
    "grok": TokenRates(input=5.0, output=15.0),
}

# Unknown models are priced like the mid-tier default
DEFAULT_MODEL = "claude"

# Rough characters-per-token ratio for providers that report text only
CHARS_PER_TOKEN = 4


def rates_for(model: str) -> TokenRates:
    return MODEL_RATES.get(model, MODEL_RATES[DEFAULT_MODEL])


def estimate_tokens(text: str) -> int:
    """Estimate a token count from text length."""
    return round(len(text) / CHARS_PER_TOKEN)


def estimate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Estimate the dollar cost of one call."""
    rates = rates_for(model)
    return (input_tokens * rates.input + output_tokens * rates.output) / 1_000_000
