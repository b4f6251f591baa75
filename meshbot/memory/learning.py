"""Learning event log and batch profile updates.

Interactions and feedback are recorded as learning events. Once enough
events are pending they are grouped by category and folded into the
affected users' profiles.
"""

from collections import defaultdict
from datetime import datetime
from typing import Optional
from uuid import uuid4

from loguru import logger

from meshbot.memory.feedback import FeedbackClassifier
from meshbot.memory.models import EventCategory, LearningEvent, UserProfile
from meshbot.memory.store import MemoryStore
from meshbot.utils.logging import short_id


class LearningManager:
    """
    Records learning events and folds them into profiles in batches.

    Feedback flushes the pending batch immediately so the satisfaction
    score a caller reads back always includes the feedback just submitted.
    """

    def __init__(
        self,
        store: MemoryStore,
        classifier: Optional[FeedbackClassifier] = None,
        batch_threshold: int = 5,
    ):
        """
        Initialize the learning manager.

        Args:
            store: Memory store holding the event log and profiles
            classifier: Feedback text classifier
            batch_threshold: Pending events needed before a batch is processed
        """
        self.store = store
        self.classifier = classifier or FeedbackClassifier()
        self.batch_threshold = max(1, batch_threshold)

    def record(self, user_id: str, category: EventCategory, payload: Optional[dict] = None) -> LearningEvent:
        """Append one event to the log."""
        event = LearningEvent(
            id=str(uuid4()),
            category=category,
            user_id=user_id,
            timestamp=datetime.now(),
            payload=payload or {},
        )
        self.store.append_event(event)
        logger.debug(f"Learning event {category.value} recorded for {short_id(user_id)}")
        return event

    def record_interaction(
        self,
        user_id: str,
        success: bool,
        skill: Optional[str] = None,
        topic: Optional[str] = None,
        source: Optional[str] = None,
    ) -> int:
        """
        Record the outcome of handling a message.

        Args:
            user_id: Opaque user identifier
            success: Whether the handler produced a reply
            skill: Name of the skill involved, if any
            topic: Topic of the user message
            source: What produced the reply ("skill", "fallback")

        Returns:
            Number of events processed as a side effect (0 if below threshold)
        """
        if skill:
            self.record(user_id, EventCategory.SKILL_USAGE, {"skill": skill, "success": success})

        category = EventCategory.SUCCESSFUL_INTERACTION if success else EventCategory.FAILED_INTERACTION
        self.record(user_id, category, {"skill": skill, "topic": topic, "source": source})
        return self.maybe_process()

    def record_skill_usage(self, user_id: str, skill: str, success: bool) -> int:
        """Record one skill attempt without an interaction outcome."""
        self.record(user_id, EventCategory.SKILL_USAGE, {"skill": skill, "success": success})
        return self.maybe_process()

    def record_feedback(
        self,
        user_id: str,
        rating: Optional[int] = None,
        text: Optional[str] = None,
    ) -> UserProfile:
        """
        Record explicit user feedback and update the satisfaction score.

        Args:
            user_id: Opaque user identifier
            rating: Optional satisfaction rating from 1 to 5
            text: Optional free-text feedback

        Returns:
            The updated profile
        """
        category, score = self.classifier.score(text, rating)
        self.record(
            user_id,
            EventCategory.USER_FEEDBACK,
            {"rating": rating, "text": text, "category": category.value, "score": score},
        )
        logger.info(f"Feedback from {short_id(user_id)}: {category.value} ({score:.2f})")
        self.process_pending()
        return self.store.get_profile(user_id)

    def maybe_process(self) -> int:
        """Process the pending batch if it reached the threshold."""
        if len(self.store.pending_events()) < self.batch_threshold:
            return 0
        return self.process_pending()

    def process_pending(self) -> int:
        """
        Fold every pending event into its user's profile.

        Events for a user whose fold fails stay pending and are retried with
        the next batch.

        Returns:
            Number of events processed
        """
        pending = self.store.pending_events()
        if not pending:
            return 0

        by_category: dict[str, int] = defaultdict(int)
        by_user: dict[str, list[LearningEvent]] = defaultdict(list)
        for event in pending:
            by_category[event.category.value] += 1
            by_user[event.user_id].append(event)

        processed = 0
        for user_id, events in by_user.items():
            try:
                profile = self.store.get_profile(user_id)
                self.store.put_profile(self.store.builder.fold_events(profile, events))
                self.store.mark_processed(e.id for e in events)
                processed += len(events)
            except Exception as e:
                logger.error(f"Failed to apply learning events for {short_id(user_id)}: {e}")

        summary = ", ".join(f"{name}={count}" for name, count in sorted(by_category.items()))
        logger.info(f"Processed {processed}/{len(pending)} learning events ({summary})")
        return processed


def create_learning_manager(store: MemoryStore, **kwargs) -> LearningManager:
    """Factory function to create LearningManager."""
    if "batch_threshold" not in kwargs:
        kwargs["batch_threshold"] = store.config.learning_threshold
    return LearningManager(store, **kwargs)
