"""Data models for the memory system.

This module defines the conversation turn, the derived user profile and the
learning event records kept by the memory store.
"""

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class CommunicationStyle(str, Enum):
    """How a user tends to write, derived from average message length."""
    DETAILED = "detailed"
    CONCISE = "concise"
    PROFESSIONAL = "professional"


class FeedbackCategory(str, Enum):
    """Keyword category of free-text feedback."""
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"
    UNKNOWN = "unknown"


class EventCategory(str, Enum):
    """Kinds of learning events."""
    SUCCESSFUL_INTERACTION = "successful_interaction"
    FAILED_INTERACTION = "failed_interaction"
    SKILL_USAGE = "skill_usage"
    USER_FEEDBACK = "user_feedback"


@dataclass
class ConversationTurn:
    """One (user message, bot response) exchange.

    Turns are append-only and owned by a single user's history.
    """
    user_id: str
    timestamp: datetime
    user_text: str
    bot_text: str
    channel: str = "default"
    topic: str = "general"
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


@dataclass
class UserProfile:
    """Derived per-user summary.

    Every field can be rebuilt by replaying the user's turns and processed
    learning events; nothing here is an independent source of truth.
    """
    user_id: str
    created_at: datetime
    updated_at: datetime
    last_interaction: Optional[datetime] = None
    total_interactions: int = 0

    preferred_topics: list[str] = field(default_factory=list)
    communication_style: CommunicationStyle = CommunicationStyle.PROFESSIONAL
    common_tasks: list[str] = field(default_factory=list)
    preferred_channel: Optional[str] = None
    preferred_hours: list[int] = field(default_factory=list)  # Most frequent hours of day, busiest first
    time_zone: str = "America/Sao_Paulo"

    # Folded from learning events
    satisfaction_score: float = 0.0  # Running mean in [0, 1]
    feedback_count: int = 0
    successful_interactions: int = 0
    failed_interactions: int = 0
    problematic_topics: list[str] = field(default_factory=list)
    skill_usage: dict[str, int] = field(default_factory=dict)

    @classmethod
    def default(cls, user_id: str, now: Optional[datetime] = None) -> "UserProfile":
        """Create an empty profile for a user seen for the first time."""
        now = now or datetime.now()
        return cls(user_id=user_id, created_at=now, updated_at=now)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["communication_style"] = self.communication_style.value
        for key in ("created_at", "updated_at", "last_interaction"):
            value = getattr(self, key)
            data[key] = value.isoformat() if value else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserProfile":
        known = {f.name for f in fields(cls)}
        data = {k: v for k, v in data.items() if k in known}
        data["communication_style"] = CommunicationStyle(
            data.get("communication_style", CommunicationStyle.PROFESSIONAL.value)
        )
        for key in ("created_at", "updated_at", "last_interaction"):
            value = data.get(key)
            data[key] = datetime.fromisoformat(value) if value else None
        return cls(**data)


@dataclass
class LearningEvent:
    """A logged occurrence used to update a profile in batch."""
    id: str
    category: EventCategory
    user_id: str
    timestamp: datetime
    payload: dict[str, Any] = field(default_factory=dict)
    processed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category.value,
            "user_id": self.user_id,
            "timestamp": self.timestamp.isoformat(),
            "payload": self.payload,
            "processed": self.processed,
        }
