"""Per-token pricing loaded from prices.csv (USD per 1M tokens).

Pricing sources:
  OpenAI:    https://platform.openai.com/docs/pricing
  Gemini:    https://ai.google.dev/gemini-api/docs/pricing
  Anthropic: https://docs.anthropic.com/en/docs/about-claude/pricing

Models missing from the table fall back to the per-1k prices configured on
the provider's ModelConfig (see LLM._cost).
"""

import csv
from pathlib import Path

_CSV_PATH = Path(__file__).parent / "prices.csv"

# {model_id: {"input": float, "output": float, "cached_input": float|None}}
PRICES: dict[str, dict[str, float | None]] = {}

with open(_CSV_PATH) as f:
    for row in csv.DictReader(f):
        PRICES[row["model"]] = {
            k: float(row[k]) if row[k] else None
            for k in ("input", "output", "cached_input")
        }


def model_key(model: str) -> str:
    """'openai/gpt-4.1-nano' -> 'gpt-4.1-nano', 'models/gemini-2.0-flash' -> 'gemini-2.0-flash'"""
    return model.rsplit("/", 1)[-1]


def cost(model: str, input_tokens: int, output_tokens: int) -> float | None:
    """Calculate cost in USD. Returns None if model not in pricing table."""
    p = PRICES.get(model_key(model))
    if p is None or p["input"] is None or p["output"] is None:
        return None
    return (input_tokens * p["input"] + output_tokens * p["output"]) / 1_000_000
