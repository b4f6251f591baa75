"""Profile derivation.

Profiles are rebuilt from two sources: the recent turn window (topics,
style, channel, active hours) and processed learning events (counters, satisfaction).
Both functions return a new profile and never mutate their input.
"""

import dataclasses
from collections import Counter
from datetime import datetime
from typing import Iterable, Optional

from meshbot.config.schema import MemoryConfig
from meshbot.memory.feedback import blend_satisfaction
from meshbot.memory.models import ConversationTurn, EventCategory, LearningEvent, UserProfile
from meshbot.memory.topics import GENERAL_TOPIC, classify_style, rank_topics

MAX_PROBLEMATIC_TOPICS = 5
PREFERRED_HOURS = 3


class ProfileBuilder:
    """
    Pure profile derivation over turns and learning events.

    Args:
        config: Memory configuration (window size and thresholds)
    """

    def __init__(self, config: Optional[MemoryConfig] = None):
        self.config = config or MemoryConfig()

    def from_turns(
        self,
        profile: UserProfile,
        turns: list[ConversationTurn],
        now: Optional[datetime] = None,
    ) -> UserProfile:
        """
        Recompute the turn-derived fields of a profile.

        Args:
            profile: Current profile (not modified)
            turns: Full stored history, oldest first
            now: Timestamp to record as the update time

        Returns:
            A new profile
        """
        window = turns[-self.config.profile_window:] if self.config.profile_window > 0 else []
        texts = [t.user_text for t in window]

        ranked = rank_topics(texts, limit=self.config.top_topics)
        common = [topic for topic, count in ranked if count >= self.config.common_task_threshold]

        channels = Counter(t.channel for t in window if t.channel)
        preferred_channel = channels.most_common(1)[0][0] if channels else profile.preferred_channel

        hours = Counter(t.timestamp.hour for t in window)

        return dataclasses.replace(
            profile,
            updated_at=now or datetime.now(),
            last_interaction=turns[-1].timestamp if turns else profile.last_interaction,
            total_interactions=len(turns),
            preferred_topics=[topic for topic, _ in ranked],
            communication_style=classify_style(texts, self.config.min_turns_for_style),
            common_tasks=common,
            preferred_channel=preferred_channel,
            preferred_hours=[hour for hour, _ in hours.most_common(PREFERRED_HOURS)],
        )

    def fold_events(
        self,
        profile: UserProfile,
        events: Iterable[LearningEvent],
        now: Optional[datetime] = None,
    ) -> UserProfile:
        """
        Fold learning events into a profile, in timestamp order.

        Replaying a user's whole event log onto a default profile yields
        the same counters and satisfaction score as folding it batch by batch.
        """
        successful = profile.successful_interactions
        failed = profile.failed_interactions
        satisfaction = profile.satisfaction_score
        feedback_count = profile.feedback_count
        problematic = list(profile.problematic_topics)
        skill_usage = dict(profile.skill_usage)

        for event in sorted(events, key=lambda e: e.timestamp):
            if event.category == EventCategory.SUCCESSFUL_INTERACTION:
                successful += 1
            elif event.category == EventCategory.FAILED_INTERACTION:
                failed += 1
                topic = event.payload.get("topic")
                if topic and topic != GENERAL_TOPIC and topic not in problematic:
                    problematic.append(topic)
            elif event.category == EventCategory.SKILL_USAGE:
                skill = event.payload.get("skill")
                if skill:
                    skill_usage[skill] = skill_usage.get(skill, 0) + 1
            elif event.category == EventCategory.USER_FEEDBACK:
                sample = float(event.payload.get("score", 0.0))
                satisfaction = blend_satisfaction(satisfaction, feedback_count, sample)
                feedback_count += 1

        return dataclasses.replace(
            profile,
            updated_at=now or datetime.now(),
            successful_interactions=successful,
            failed_interactions=failed,
            satisfaction_score=satisfaction,
            feedback_count=feedback_count,
            problematic_topics=problematic[-MAX_PROBLEMATIC_TOPICS:],
            skill_usage=skill_usage,
        )
