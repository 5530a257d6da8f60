"""
LLM client package.

This package provides a unified interface for reasoning providers:
- OpenAI
- Anthropic
"""

from cg.llm.base import (
    BudgetExceededError,
    LLMClient,
    LLMError,
    LLMRequest,
    LLMResponse,
    RateLimitError,
)
from cg.llm.json_utils import clean_json_string, parse_json_object
from cg.llm.router import LLMRouter, ReasoningRole

__all__ = [
    "BudgetExceededError",
    "LLMClient",
    "LLMError",
    "LLMRequest",
    "LLMResponse",
    "LLMRouter",
    "RateLimitError",
    "ReasoningRole",
    "clean_json_string",
    "parse_json_object",
]
