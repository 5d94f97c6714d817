"""
Prompt management for deal evaluation.

The evaluation prompt contains a literal JSON example, so placeholders are
substituted with plain string replacement rather than str.format.
"""

import logging
import os
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

REQUIRED_PLACEHOLDERS = ["{query}", "{preferences}", "{title}", "{price}", "{description}"]

DEFAULT_EVALUATION_PROMPT = """You are an expert at evaluating Craigslist listings to find good deals.

TASK: Analyze this listing and determine if it's a good deal by:
1. Identifying the exact product (brand, model, year if applicable)
2. Searching the web for typical retail and used market prices
3. Comparing the listing price to market values
4. Assessing condition from description and photos

USER IS SEARCHING FOR: {query}
USER PREFERENCES: {preferences}

LISTING:
- Title: {title}
- Price: {price}
- Description: {description}

EVALUATION CRITERIA:
- Is this what the user is looking for?
- Is the price good compared to market value?
- What's the condition?
- Any red flags or concerns?

SCORING:
- 80-100: Exceptional deal - 40%+ below market
- 70-79: Good deal - 20-40% below market
- 50-69: Fair price - Around market value
- 30-49: Overpriced or not quite what user wants
- 1-29: Skip - Wrong item, scam indicators, or very overpriced

A "good deal" requires score >= 70.

RESPOND WITH ONLY THIS JSON (no markdown):
{
    "score": <1-100>,
    "isGoodDeal": <boolean>,
    "identifiedProduct": "<brand model>" or null,
    "retailPriceRange": {"low": <cents>, "high": <cents>} or null,
    "condition": "excellent" | "good" | "fair" | "poor" | "unknown",
    "marketComparison": "<1 sentence comparing to market>",
    "reasoning": "<2-3 sentences about this listing>"
}"""


class PromptManager:
    """Loads, validates and renders the evaluation prompt template."""

    def __init__(self, prompts_directory: str = "prompts"):
        self.prompts_directory = Path(prompts_directory)
        self._templates: Dict[str, str] = {}

    def _resolve(self, template_path: str) -> Path:
        if os.path.isabs(template_path):
            return Path(template_path)
        return self.prompts_directory / template_path

    def load_template(self, template_path: Optional[str] = None) -> str:
        """
        Load a prompt template, falling back to the built-in default.

        Args:
            template_path: File name relative to the prompts directory, or
                an absolute path. None selects the built-in template.

        Raises:
            RuntimeError: If the file is missing, empty or lacks placeholders.
        """
        if template_path is None:
            return DEFAULT_EVALUATION_PROMPT

        if template_path in self._templates:
            return self._templates[template_path]

        full_path = self._resolve(template_path)
        try:
            if not full_path.exists():
                raise FileNotFoundError(f"Prompt template not found: {full_path}")

            template = full_path.read_text(encoding="utf-8").strip()
            if not template:
                raise ValueError(f"Prompt template is empty: {full_path}")

            self.validate_template(template)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load prompt template {template_path}: {e}")
            raise RuntimeError(f"Failed to load prompt template: {e}") from e

        self._templates[template_path] = template
        logger.info(f"Loaded prompt template: {template_path}")
        return template

    @staticmethod
    def validate_template(template: str) -> None:
        """Raise ValueError if a required placeholder is missing."""
        missing = [p for p in REQUIRED_PLACEHOLDERS if p not in template]
        if missing:
            raise ValueError(f"Template missing required placeholders: {missing}")

    @staticmethod
    def render(template: str, values: Dict[str, str]) -> str:
        """Substitute ``{name}`` placeholders once each, left to right."""
        rendered = template
        for name, value in values.items():
            rendered = rendered.replace("{" + name + "}", value, 1)
        return rendered
