"""
Pacing utilities for the sequential scan pipeline.

The pipeline never runs two external calls at once; instead it inserts
fixed pauses between detail-page visits, between model evaluations and
between searches so that Craigslist and the model quota are not hammered.
"""

import asyncio
from typing import Awaitable, Callable, Dict, Optional

from ..utils.logging import get_logger

logger = get_logger("pacing")

SleepFunc = Callable[[float], Awaitable[None]]


class PacingPolicy:
    """Fixed delays between items of each pipeline stage."""

    def __init__(
        self,
        detail_delay: float = 0.5,
        evaluation_delay: float = 1.5,
        search_delay: float = 3.0,
        sleep: Optional[SleepFunc] = None,
    ):
        """
        Initialize pacing policy.

        Args:
            detail_delay: Seconds to wait after each listing detail page
            evaluation_delay: Seconds to wait after each model evaluation
            search_delay: Seconds to wait after each search in a batch sweep
            sleep: Awaitable sleep function (defaults to asyncio.sleep)
        """
        for name, value in (
            ("detail_delay", detail_delay),
            ("evaluation_delay", evaluation_delay),
            ("search_delay", search_delay),
        ):
            if value < 0:
                raise ValueError(f"{name} cannot be negative")

        self.detail_delay = detail_delay
        self.evaluation_delay = evaluation_delay
        self.search_delay = search_delay
        self._sleep = sleep or asyncio.sleep
        self.pauses: Dict[str, int] = {"detail": 0, "evaluation": 0, "search": 0}

    @classmethod
    def from_config(cls, scan_config) -> "PacingPolicy":
        """Build a policy from a ScanConfig."""
        return cls(
            detail_delay=scan_config.detail_delay,
            evaluation_delay=scan_config.evaluation_delay,
            search_delay=scan_config.search_delay,
        )

    async def _pause(self, stage: str, seconds: float) -> None:
        self.pauses[stage] += 1
        if seconds > 0:
            logger.debug(f"Pausing {seconds:.1f}s after {stage}")
            await self._sleep(seconds)

    async def after_detail(self) -> None:
        """Pause after a listing detail page visit."""
        await self._pause("detail", self.detail_delay)

    async def after_evaluation(self) -> None:
        """Pause after a model evaluation."""
        await self._pause("evaluation", self.evaluation_delay)

    async def after_search(self) -> None:
        """Pause after a search in a batch sweep."""
        await self._pause("search", self.search_delay)
