"""
Deal evaluation service.

Wraps the DealEvaluator with a per-call timeout and keeps running
statistics for status reporting.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict

from ..interfaces import IDealEvaluator
from ..models.evaluation import DealEvaluation, EvaluationRequest
from ..utils.logging import get_logger

logger = get_logger("evaluator")


def _empty_stats() -> Dict[str, Any]:
    return {
        "total_evaluations": 0,
        "successful_evaluations": 0,
        "fallback_evaluations": 0,
        "timeout_evaluations": 0,
        "good_deals": 0,
        "average_response_time": 0.0,
    }


class EvaluationService:
    """
    Time-bounded evaluation front end used by the scan orchestrator.

    The evaluator itself never raises; this service adds the timeout and
    turns it into the same fallback assessment.
    """

    def __init__(self, evaluator: IDealEvaluator, evaluation_timeout: float = 60.0):
        self.evaluator = evaluator
        self.evaluation_timeout = evaluation_timeout
        self.stats = _empty_stats()

    async def evaluate(self, request: EvaluationRequest) -> DealEvaluation:
        """
        Evaluate a listing within the configured timeout.

        Args:
            request: Listing data and the search context

        Returns:
            DealEvaluation, the fallback assessment on timeout
        """
        start_time = datetime.now()
        self.stats["total_evaluations"] += 1

        try:
            result = await asyncio.wait_for(
                self.evaluator.evaluate(request), timeout=self.evaluation_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Evaluation timed out after {self.evaluation_timeout}s: "
                f"{request.title[:50]}..."
            )
            self.stats["timeout_evaluations"] += 1
            self.stats["fallback_evaluations"] += 1
            return DealEvaluation.fallback()

        if result.is_fallback:
            self.stats["fallback_evaluations"] += 1
        else:
            response_time = (datetime.now() - start_time).total_seconds()
            self._update_stats(response_time)
            if result.is_good_deal:
                self.stats["good_deals"] += 1

        return result

    def _update_stats(self, response_time: float) -> None:
        self.stats["successful_evaluations"] += 1
        total_successful = self.stats["successful_evaluations"]
        current_avg = self.stats["average_response_time"]
        self.stats["average_response_time"] = (
            current_avg * (total_successful - 1) + response_time
        ) / total_successful

    def get_evaluation_stats(self) -> Dict[str, Any]:
        """Get current evaluation statistics."""
        stats = self.stats.copy()
        total = stats["total_evaluations"]
        if total > 0:
            stats["success_rate"] = stats["successful_evaluations"] / total
            stats["fallback_rate"] = stats["fallback_evaluations"] / total
        else:
            stats["success_rate"] = 0.0
            stats["fallback_rate"] = 0.0
        return stats

