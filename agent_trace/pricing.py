"""Approximate token cost estimation from a tiered pricing table.

Rates are dollars per million tokens. The built-in table is a rough guide,
not a billing source of truth; point ``ATO_PRICING_FILE`` at a YAML file to
override it::

    default: {name: sonnet, input: 3, output: 15}
    tiers:
      - {name: opus, match: [opus], input: 15, output: 75}
      - {name: haiku, match: [haiku], input: 0.25, output: 1.25}
"""
from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from agent_trace import config

logger = logging.getLogger("ato.pricing")


class PricingTier(BaseModel):
    name: str
    match: list[str] = Field(default_factory=list)
    input: float
    output: float

    def matches(self, model_lower: str) -> bool:
        return any(token.lower() in model_lower for token in self.match if token)


class PricingTable(BaseModel):
    tiers: list[PricingTier] = Field(default_factory=list)
    default: PricingTier

    def tier_for(self, model: Optional[str]) -> PricingTier:
        """First tier whose match token occurs in *model*; unmatched ids get the default tier."""
        model_lower = (model or "").strip().lower()
        if not model_lower or model_lower == "unknown":
            return self.default
        for tier in self.tiers:
            if tier.matches(model_lower):
                return tier
        return self.default


DEFAULT_PRICING = PricingTable(
    tiers=[
        PricingTier(name="opus", match=["opus"], input=15.0, output=75.0),
        PricingTier(name="haiku", match=["haiku"], input=0.25, output=1.25),
    ],
    default=PricingTier(name="sonnet", match=["sonnet"], input=3.0, output=15.0),
)


def load_pricing_table(path: Path) -> PricingTable:
    """Load a pricing table from YAML. Raises on unreadable or invalid files."""
    raw = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"Pricing file {path} must contain a mapping")
    return PricingTable.model_validate(raw)


@lru_cache(maxsize=4)
def _cached_table(path_value: str) -> PricingTable:
    if not path_value:
        return DEFAULT_PRICING
    try:
        return load_pricing_table(Path(path_value).expanduser())
    except (OSError, ValueError, ValidationError, yaml.YAMLError) as exc:
        logger.warning("Ignoring pricing override %s: %s", path_value, exc)
        return DEFAULT_PRICING


def get_pricing_table() -> PricingTable:
    return _cached_table(config.PRICING_FILE)


def estimate_cost(
    input_tokens: int,
    output_tokens: int,
    model: Optional[str],
    table: Optional[PricingTable] = None,
) -> float:
    tier = (table or get_pricing_table()).tier_for(model)
    return (input_tokens / 1_000_000) * tier.input + (output_tokens / 1_000_000) * tier.output


def estimate_cost_split(
    input_tokens: int,
    output_tokens: int,
    model: Optional[str],
    table: Optional[PricingTable] = None,
) -> tuple[float, float]:
    """Input and output cost separately, for report summaries."""
    tier = (table or get_pricing_table()).tier_for(model)
    return (input_tokens / 1_000_000) * tier.input, (output_tokens / 1_000_000) * tier.output


def format_cost(cost: float) -> str:
    return f"${cost:.4f}"
