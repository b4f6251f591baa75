"""Base class for skills.

A skill is a keyword-triggered handler for one narrow topic. Matching must
be cheap and side-effect free; execution returns a SkillResult instead of
raising for expected failures.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from meshbot.memory.models import ConversationTurn, UserProfile


@dataclass
class SkillContext:
    """What a skill may know about the conversation."""
    user_id: str
    channel: str = "default"
    profile: Optional[UserProfile] = None
    history: list[ConversationTurn] = field(default_factory=list)


@dataclass
class SkillResult:
    """Outcome of a skill execution."""
    success: bool
    text: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @classmethod
    def ok(cls, text: str, **metadata: Any) -> "SkillResult":
        return cls(success=True, text=text, metadata=metadata)

    @classmethod
    def fail(cls, error: str) -> "SkillResult":
        return cls(success=False, error=error)


class Skill(ABC):
    """
    Abstract base class for skills.

    Subclasses set `name`, `description` and `keywords` and implement
    `execute`. Counters track executions and failures per instance.
    """

    name: str = ""
    description: str = ""
    keywords: tuple[str, ...] = ()

    def __init__(self):
        self.executions = 0
        self.failures = 0

    def matches(self, text: str, context: Optional[SkillContext] = None) -> bool:
        """Case-insensitive keyword containment."""
        if not text:
            return False
        lowered = text.lower()
        return any(keyword in lowered for keyword in self.keywords)

    def extract_parameters(self, text: str) -> dict[str, Any]:
        """Pull parameters out of the raw text."""
        return {}

    def validate(self, params: dict[str, Any]) -> list[str]:
        """Return a list of validation errors (empty when valid)."""
        return []

    @abstractmethod
    async def execute(self, params: dict[str, Any], context: SkillContext) -> SkillResult:
        """
        Produce the reply for a matched message.

        Args:
            params: Output of extract_parameters
            context: Conversation context

        Returns:
            SkillResult with the reply text on success
        """
        pass

    async def run(self, text: str, context: SkillContext) -> SkillResult:
        """Extract, validate and execute, keeping the counters up to date."""
        self.executions += 1
        params = self.extract_parameters(text)

        errors = self.validate(params)
        if errors:
            self.failures += 1
            return SkillResult.fail("; ".join(errors))

        try:
            result = await self.execute(params, context)
        except Exception:
            self.failures += 1
            raise

        if not result.success:
            self.failures += 1
        return result

    @property
    def success_rate(self) -> float:
        if self.executions == 0:
            return 0.0
        return (self.executions - self.failures) / self.executions

    def stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "executions": self.executions,
            "failures": self.failures,
            "success_rate": round(self.success_rate, 3),
        }

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
