"""Conversation memory, profiles and learning for meshbot."""

from meshbot.memory.background import CleanupProcessor
from meshbot.memory.feedback import FeedbackClassifier
from meshbot.memory.learning import LearningManager, create_learning_manager
from meshbot.memory.models import (
    CommunicationStyle,
    ConversationTurn,
    EventCategory,
    FeedbackCategory,
    LearningEvent,
    UserProfile,
)
from meshbot.memory.profile import ProfileBuilder
from meshbot.memory.store import (
    InMemoryMemoryStore,
    MemoryStore,
    SQLiteMemoryStore,
    create_memory_store,
)

__all__ = [
    "CleanupProcessor",
    "CommunicationStyle",
    "ConversationTurn",
    "EventCategory",
    "FeedbackCategory",
    "FeedbackClassifier",
    "InMemoryMemoryStore",
    "LearningEvent",
    "LearningManager",
    "MemoryStore",
    "ProfileBuilder",
    "SQLiteMemoryStore",
    "UserProfile",
    "create_learning_manager",
    "create_memory_store",
]
