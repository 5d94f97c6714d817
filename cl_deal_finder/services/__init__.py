"""
Service layer for the Craigslist Deal Finder.

Configuration loading and the time-bounded evaluation front end used
by the scan orchestrator.
"""

from .config_manager import ConfigurationManager
from .evaluation_service import EvaluationService

__all__ = [
    "ConfigurationManager",
    "EvaluationService",
]
