"""Keyword-triggered skills."""

from meshbot.skills.base import Skill, SkillContext, SkillResult
from meshbot.skills.financial import CashFlowSkill, ReconciliationSkill
from meshbot.skills.registry import DispatchResult, SkillRegistry, create_default_registry

__all__ = [
    "CashFlowSkill",
    "DispatchResult",
    "ReconciliationSkill",
    "Skill",
    "SkillContext",
    "SkillRegistry",
    "SkillResult",
    "create_default_registry",
]
