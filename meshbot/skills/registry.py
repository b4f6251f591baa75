"""Skill registry and first-match dispatch."""

from dataclasses import dataclass, field
from typing import Iterator, Optional

from loguru import logger

from meshbot.skills.base import Skill, SkillContext, SkillResult


@dataclass
class DispatchResult:
    """Result of trying the registered skills on one message."""
    skill_name: Optional[str] = None
    result: Optional[SkillResult] = None
    failed_skills: list[str] = field(default_factory=list)

    @property
    def handled(self) -> bool:
        return self.result is not None and self.result.success


class SkillRegistry:
    """
    Ordered skill registry.

    Dispatch order is registration order and the first matching skill that
    succeeds wins. Re-registering a name replaces the skill in its original
    slot.
    """

    def __init__(self):
        self._skills: dict[str, Skill] = {}

    def register(self, skill: Skill) -> "SkillRegistry":
        """Add a skill; returns the registry so calls can be chained."""
        if not skill.name:
            raise ValueError(f"Skill {skill!r} has no name")
        if skill.name in self._skills:
            logger.warning(f"Skill '{skill.name}' re-registered, replacing previous instance")
        else:
            logger.info(f"Skill registered: {skill.name}")
        self._skills[skill.name] = skill
        return self

    def get(self, name: str) -> Optional[Skill]:
        return self._skills.get(name)

    @property
    def names(self) -> list[str]:
        return list(self._skills)

    def __iter__(self) -> Iterator[Skill]:
        return iter(list(self._skills.values()))

    def __len__(self) -> int:
        return len(self._skills)

    def __contains__(self, name: str) -> bool:
        return name in self._skills

    def find_matches(self, text: str, context: Optional[SkillContext] = None) -> list[Skill]:
        """All skills whose keywords match, in dispatch order."""
        return [skill for skill in self if skill.matches(text, context)]

    async def dispatch(self, text: str, context: SkillContext) -> DispatchResult:
        """
        Run the first matching skill that succeeds.

        A skill that raises or returns an unsuccessful result is logged and
        skipped; dispatch moves on to the next matching skill.

        Args:
            text: Raw user text
            context: Conversation context

        Returns:
            DispatchResult; `handled` is False when no skill produced a reply
        """
        outcome = DispatchResult()
        for skill in self.find_matches(text, context):
            try:
                result = await skill.run(text, context)
            except Exception as e:
                logger.warning(f"Skill '{skill.name}' failed: {e}")
                outcome.failed_skills.append(skill.name)
                continue

            if result.success and result.text:
                outcome.skill_name = skill.name
                outcome.result = result
                logger.debug(f"Message handled by skill '{skill.name}'")
                return outcome

            logger.warning(f"Skill '{skill.name}' returned no reply: {result.error or 'empty text'}")
            outcome.failed_skills.append(skill.name)

        return outcome

    def stats(self) -> list[dict]:
        return [skill.stats() for skill in self]


def create_default_registry() -> SkillRegistry:
    """Registry with the built-in financial skills, cash flow first."""
    from meshbot.skills.financial import CashFlowSkill, ReconciliationSkill

    return SkillRegistry().register(CashFlowSkill()).register(ReconciliationSkill())
