"""
Base classes for pipeline stages.

This module implements:
- Stage: Abstract base class for the reasoning stages
- StageContext: Runtime context with shared resources

Stages implemented in separate modules:
- company_profiler.py: CompanyProfiler (Stage 1)
- persona_brainstormer.py: PersonaBrainstormer (Stage 2)
- persona_ranker.py: PersonaRanker (Stage 3)
- filter_builder.py: FilterBuilder (Stage 4)
- email_writer.py: EmailWriter (per-lead content)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, TypeVar

from cg.budget import BudgetTracker
from cg.exceptions import CGError, StageFailure
from cg.llm.base import LLMError
from cg.llm.json_utils import parse_json_object
from cg.llm.router import LLMRouter, ReasoningRole
from cg.logging import get_logger
from cg.types import StageTrace

if TYPE_CHECKING:
    from cg.config import Settings

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class StageContext:
    """Runtime context for stages.

    Contains shared resources that all stages need access to.
    """

    settings: Settings
    llm_router: LLMRouter
    budget_tracker: BudgetTracker | None = None
    capture_trace: bool = False


@dataclass(frozen=True)
class StageReply:
    """Parsed reasoning output plus the optional prompt/response trace."""

    data: dict[str, Any]
    trace: StageTrace | None = None


class Stage(ABC):
    """Abstract base class for reasoning stages.

    A stage is an async transform from earlier outputs to a typed payload.
    Reasoning errors and unparseable replies surface as ``failure_type``
    (StageFailure unless a subclass says otherwise); stages never retry.
    """

    failure_type: type[CGError] = StageFailure

    def __init__(self, context: StageContext) -> None:
        """Initialize stage with context.

        Args:
            context: Runtime context with shared resources.
        """
        self.context = context
        self._logger = get_logger(f"stage.{self.name}")

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique name of this stage."""
        ...

    @property
    @abstractmethod
    def role(self) -> ReasoningRole:
        """Reasoning role used for model selection."""
        ...

    @abstractmethod
    async def run(self, *args: Any, **kwargs: Any) -> Any:
        """Execute the stage.

        Returns:
            Stage-specific output.
        """
        ...

    @property
    def llm_router(self) -> LLMRouter:
        """Get the LLM router."""
        return self.context.llm_router

    @property
    def settings(self) -> Settings:
        """Get settings."""
        return self.context.settings

    async def ask_json(
        self,
        prompt: str,
        system: str | None = None,
        max_tokens: int = 4000,
        temperature: float = 0.4,
    ) -> StageReply:
        """Send one prompt and parse the reply as a JSON object.

        Raises:
            The stage's failure_type on reasoning errors or unparseable output.
        """
        messages: list[dict[str, Any]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        try:
            response = await self.llm_router.complete(
                self.role,
                messages,
                stage=self.name,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except LLMError as e:
            self.log_error("Reasoning call failed", error=str(e))
            raise self.failure_type(
                f"{self.name}: reasoning call failed: {e}",
                context={"stage": self.name, "error_type": type(e).__name__},
            ) from e

        try:
            data = parse_json_object(response.content)
        except ValueError as e:
            self.log_error("Unparseable reasoning output", preview=response.content[:200])
            raise self.failure_type(
                f"{self.name}: could not parse reasoning output",
                context={"stage": self.name, "preview": response.content[:500]},
            ) from e

        trace = None
        if self.context.capture_trace:
            full_prompt = f"{system}\n\n{prompt}" if system else prompt
            trace = StageTrace(prompt=full_prompt, response=response.content)
        return StageReply(data=data, trace=trace)

    def parse_reply(self, parser: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Build a payload from reply data.

        Raises:
            The stage's failure_type when the reply has an unexpected shape.
        """
        try:
            return parser(*args, **kwargs)
        except (AttributeError, TypeError, ValueError) as e:
            self.log_error("Malformed reasoning output", error=str(e))
            raise self.failure_type(
                f"{self.name}: malformed reasoning output: {e}",
                context={"stage": self.name, "error_type": type(e).__name__},
            ) from e

    def log_info(self, message: str, **kwargs: Any) -> None:
        """Log info message with stage context."""
        self._logger.info(message, agent=self.name, **kwargs)

    def log_warning(self, message: str, **kwargs: Any) -> None:
        """Log warning message with stage context."""
        self._logger.warning(message, agent=self.name, **kwargs)

    def log_error(self, message: str, **kwargs: Any) -> None:
        """Log error message with stage context."""
        self._logger.error(message, agent=self.name, **kwargs)
