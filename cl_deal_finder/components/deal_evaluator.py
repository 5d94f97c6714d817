"""
AI deal evaluator.

Builds the evaluation prompt for a listing, attaches a couple of listing
photos, asks the model for a JSON verdict and normalises the result.
Every failure degrades to the neutral fallback assessment.
"""

import asyncio
import json
import math
import re
from typing import Any, Callable, List, Optional

from ..models.evaluation import (
    GOOD_DEAL_THRESHOLD,
    MAX_SCORE,
    MIN_SCORE,
    VALID_CONDITIONS,
    DealEvaluation,
    EvaluationRequest,
    PriceRange,
)
from ..utils.error_handling import ErrorCategory, ErrorSeverity, get_error_tracker
from ..utils.logging import get_logger
from .llm_clients import ImagePayload, LLMProvider, fetch_image
from .prompt_manager import PromptManager

logger = get_logger("evaluator")

JSON_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")

ImageFetcher = Callable[[str], Optional[ImagePayload]]


def format_price_for_prompt(price: Optional[int]) -> str:
    """Render a cents price as ``$1,250`` (or ``$12.50``), or "Not listed"."""
    if price is None:
        return "Not listed"
    dollars = price / 100
    if price % 100 == 0:
        return f"${int(dollars):,}"
    return f"${dollars:,.2f}"


def format_preferences(preferences: Any) -> str:
    if not preferences:
        return "None specified"
    if isinstance(preferences, str):
        return preferences
    return json.dumps(preferences, default=str)


def extract_json(text: str) -> dict:
    """
    Pull the first JSON object out of a model reply.

    Raises:
        ValueError: If no object is present or it does not parse
    """
    match = JSON_OBJECT_PATTERN.search(text or "")
    if not match:
        raise ValueError("No JSON found in response")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in response: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("Model response JSON is not an object")
    return data


def normalize_score(raw: Any) -> int:
    """Round half up and clamp into the 1-100 score range."""
    if isinstance(raw, bool):
        raise ValueError("score must be numeric")
    value = float(raw)
    if math.isnan(value):
        raise ValueError("score must be numeric")
    return int(max(MIN_SCORE, min(MAX_SCORE, math.floor(value + 0.5))))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_price_range(raw: Any) -> Optional[PriceRange]:
    if not isinstance(raw, dict):
        return None
    low, high = raw.get("low"), raw.get("high")
    if not (_is_number(low) and _is_number(high)):
        return None
    return PriceRange(low=int(round(low)), high=int(round(high)))


def parse_evaluation(data: dict) -> DealEvaluation:
    """Turn the model's JSON verdict into a normalised DealEvaluation."""
    score = normalize_score(data.get("score"))

    condition = data.get("condition")
    if condition not in VALID_CONDITIONS:
        condition = "unknown"

    product = data.get("identifiedProduct")
    if product is not None and not isinstance(product, str):
        product = str(product)

    return DealEvaluation(
        score=score,
        # the model's own isGoodDeal flag is ignored
        is_good_deal=score >= GOOD_DEAL_THRESHOLD,
        reasoning=str(data.get("reasoning") or ""),
        identified_product=product or None,
        retail_price_range=parse_price_range(data.get("retailPriceRange")),
        condition=condition,
        market_comparison=str(data.get("marketComparison") or ""),
    )


class DealEvaluator:
    """Scores listings with a search-grounded multimodal model."""

    def __init__(
        self,
        client: LLMProvider,
        prompt_manager: Optional[PromptManager] = None,
        prompt_template: Optional[str] = None,
        max_images: int = 2,
        image_fetcher: Optional[ImageFetcher] = None,
    ):
        self.client = client
        self.prompt_manager = prompt_manager or PromptManager()
        self.template = self.prompt_manager.load_template(prompt_template)
        self.max_images = max_images
        self.image_fetcher = image_fetcher or fetch_image

    def build_prompt(self, request: EvaluationRequest) -> str:
        return self.prompt_manager.render(
            self.template,
            {
                "query": request.query,
                "preferences": format_preferences(request.preferences),
                "title": request.title,
                "price": format_price_for_prompt(request.price),
                "description": request.description or "No description",
            },
        )

    async def _load_images(self, image_urls: List[str]) -> List[ImagePayload]:
        images = []
        for url in image_urls[: self.max_images]:
            try:
                payload = await asyncio.to_thread(self.image_fetcher, url)
            except Exception as e:
                logger.debug(f"Skipping image {url}: {e}")
                continue
            if payload is not None:
                images.append(payload)
        return images

    async def evaluate(self, request: EvaluationRequest) -> DealEvaluation:
        """Evaluate one listing; returns the fallback instead of raising."""
        try:
            prompt = self.build_prompt(request)
            images = await self._load_images(request.image_urls)
            response = await self.client.generate(prompt, images)
            evaluation = parse_evaluation(extract_json(response.content))

            logger.info(
                f"Evaluated '{request.title[:50]}': score {evaluation.score}"
                f"{' (good deal)' if evaluation.is_good_deal else ''}",
                extra={
                    "images": len(images),
                    "response_time": round(response.response_time, 2),
                },
            )
            return evaluation

        except Exception as e:
            logger.error(f"Evaluation failed for '{request.title[:50]}': {e}")
            get_error_tracker().record_error(
                component="evaluator",
                category=ErrorCategory.EVALUATION,
                severity=ErrorSeverity.MEDIUM,
                message=f"Evaluation failed: {e}",
                exception=e,
                context={"title": request.title[:100]},
            )
            return DealEvaluation.fallback()
