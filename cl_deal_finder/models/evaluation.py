"""
Deal evaluation models.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional

GOOD_DEAL_THRESHOLD = 70
MIN_SCORE = 1
MAX_SCORE = 100
VALID_CONDITIONS = ("excellent", "good", "fair", "poor", "unknown")

FALLBACK_REASONING = "Unable to evaluate automatically."
FALLBACK_MARKET_COMPARISON = "Unable to compare."


@dataclass
class EvaluationRequest:
    """Everything the evaluator needs to know about one listing."""

    title: str
    price: Optional[int]  # cents
    description: Optional[str]
    image_urls: List[str] = field(default_factory=list)
    query: str = ""
    preferences: Optional[Any] = None


@dataclass
class PriceRange:
    """Retail price range in cents."""

    low: int
    high: int


@dataclass
class DealEvaluation:
    """Structured assessment of a listing's value."""

    score: int
    is_good_deal: bool
    reasoning: str
    identified_product: Optional[str]
    retail_price_range: Optional[PriceRange]
    condition: str
    market_comparison: str
    is_fallback: bool = False

    @classmethod
    def fallback(cls) -> "DealEvaluation":
        """Neutral assessment used whenever evaluation fails."""
        return cls(
            score=50,
            is_good_deal=False,
            reasoning=FALLBACK_REASONING,
            identified_product=None,
            retail_price_range=None,
            condition="unknown",
            market_comparison=FALLBACK_MARKET_COMPARISON,
            is_fallback=True,
        )

    @property
    def deal_reason(self) -> str:
        """Reasoning and market comparison joined for storage."""
        return " ".join(
            part for part in (self.reasoning, self.market_comparison) if part
        )

    def validate(self) -> bool:
        """Validate evaluation result data."""
        if not isinstance(self.score, int) or isinstance(self.score, bool):
            raise ValueError("score must be an integer")

        if not (MIN_SCORE <= self.score <= MAX_SCORE):
            raise ValueError(f"score must be between {MIN_SCORE} and {MAX_SCORE}")

        if self.is_good_deal != (self.score >= GOOD_DEAL_THRESHOLD):
            raise ValueError("is_good_deal must match the score threshold")

        if self.condition not in VALID_CONDITIONS:
            raise ValueError(f"condition must be one of: {VALID_CONDITIONS}")

        if not isinstance(self.reasoning, str):
            raise ValueError("reasoning must be a string")

        return True
