"""
Core components for the Craigslist Deal Finder.

This package contains the stages of the scan pipeline: marketplace
acquisition, AI deal evaluation, digest formatting and email delivery.
"""

from .alert_formatter import DigestFormatter
from .browser_session import BrowserSession
from .craigslist_client import CraigslistClient
from .deal_evaluator import DealEvaluator
from .llm_clients import GeminiClient, LLMProvider
from .message_dispatcher import (
    DealNotifier,
    EmailDispatcherFactory,
    ResendDispatcher,
)
from .prompt_manager import PromptManager

__all__ = [
    "BrowserSession",
    "CraigslistClient",
    "DealEvaluator",
    "GeminiClient",
    "LLMProvider",
    "PromptManager",
    "DigestFormatter",
    "ResendDispatcher",
    "EmailDispatcherFactory",
    "DealNotifier",
]
