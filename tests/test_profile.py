"""Tests for topic extraction, style classification and profile derivation."""

from datetime import datetime, timedelta

from meshbot.config.schema import MemoryConfig
from meshbot.memory.models import (
    CommunicationStyle,
    ConversationTurn,
    EventCategory,
    LearningEvent,
    UserProfile,
)
from meshbot.memory.profile import ProfileBuilder
from meshbot.memory.topics import classify_style, extract_topic, extract_topics, rank_topics


def _turn(text, channel="msteams", when=None):
    return ConversationTurn(
        user_id="u1",
        timestamp=when or datetime.now(),
        user_text=text,
        bot_text="ok",
        channel=channel,
    )


def _event(category, offset=0, **payload):
    return LearningEvent(
        id=f"e{offset}",
        category=category,
        user_id="u1",
        timestamp=datetime(2024, 1, 1) + timedelta(seconds=offset),
        payload=payload,
    )


class TestTopics:
    """Test keyword topic buckets."""

    def test_cash_flow_needs_both_words(self):
        assert extract_topics("fluxo de caixa") == ["fluxo_caixa"]
        assert extract_topics("fluxo de trabalho") == []
        assert extract_topics("análise de liquidez") == ["fluxo_caixa"]

    def test_multiple_topics(self):
        topics = extract_topics("Relatório de conciliação bancária e DRE")
        assert topics == ["conciliacao_bancaria", "relatorios", "dre"]

    def test_word_start_matching(self):
        assert extract_topics("vou encaixar o fluxo") == []
        assert extract_topics("address") == []

    def test_extract_topic_default(self):
        assert extract_topic("Bom dia!") == "general"
        assert extract_topic("balanço patrimonial") == "balanco_patrimonial"

    def test_rank_topics(self):
        texts = ["fluxo de caixa", "conciliação", "fluxo de caixa mensal", "DRE"]
        assert rank_topics(texts) == [("fluxo_caixa", 2), ("conciliacao_bancaria", 1), ("dre", 1)]
        assert rank_topics(texts, limit=1) == [("fluxo_caixa", 2)]


class TestStyle:
    """Test communication style thresholds."""

    def test_too_few_samples(self):
        assert classify_style(["a", "b"]) == CommunicationStyle.PROFESSIONAL

    def test_concise(self):
        assert classify_style(["oi", "caixa?", "ok"]) == CommunicationStyle.CONCISE

    def test_detailed(self):
        assert classify_style(["x" * 150] * 3) == CommunicationStyle.DETAILED

    def test_professional(self):
        assert classify_style(["x" * 60] * 3) == CommunicationStyle.PROFESSIONAL


class TestProfileBuilderTurns:
    """Test turn-derived fields."""

    def test_window_and_common_tasks(self):
        builder = ProfileBuilder(MemoryConfig(profile_window=20, common_task_threshold=3))
        turns = [_turn("conciliação bancária")] * 25 + [_turn("fluxo de caixa")] * 3
        profile = builder.from_turns(UserProfile.default("u1"), turns)

        assert profile.total_interactions == 28
        assert profile.preferred_topics == ["conciliacao_bancaria", "fluxo_caixa"]
        assert profile.common_tasks == ["conciliacao_bancaria", "fluxo_caixa"]

    def test_top_topics_limited(self):
        builder = ProfileBuilder(MemoryConfig(top_topics=2))
        turns = [_turn(t) for t in ["fluxo de caixa", "DRE", "balanço", "compliance"]]
        profile = builder.from_turns(UserProfile.default("u1"), turns)
        assert len(profile.preferred_topics) == 2

    def test_preferred_channel(self):
        turns = [_turn("a", "webchat"), _turn("b", "msteams"), _turn("c", "msteams")]
        profile = ProfileBuilder().from_turns(UserProfile.default("u1"), turns)
        assert profile.preferred_channel == "msteams"

    def test_preferred_hours(self):
        day = datetime(2024, 3, 4)
        hours = [9, 14, 9, 18, 14, 9, 20]
        turns = [_turn("ok", when=day + timedelta(hours=h, minutes=i)) for i, h in enumerate(hours)]

        profile = ProfileBuilder().from_turns(UserProfile.default("u1"), turns)

        assert profile.preferred_hours == [9, 14, 18]

    def test_preferred_hours_use_window(self):
        builder = ProfileBuilder(MemoryConfig(profile_window=2))
        day = datetime(2024, 3, 4)
        turns = [_turn("ok", when=day + timedelta(hours=h)) for h in (8, 8, 8, 15, 16)]

        profile = builder.from_turns(UserProfile.default("u1"), turns)

        assert profile.preferred_hours == [15, 16]

    def test_input_not_mutated(self):
        original = UserProfile.default("u1")
        ProfileBuilder().from_turns(original, [_turn("fluxo de caixa")])
        assert original.preferred_topics == []
        assert original.total_interactions == 0

    def test_empty_history(self):
        profile = ProfileBuilder().from_turns(UserProfile.default("u1"), [])
        assert profile.total_interactions == 0
        assert profile.last_interaction is None


class TestProfileBuilderEvents:
    """Test folding learning events."""

    def test_counters_and_skill_usage(self):
        events = [
            _event(EventCategory.SKILL_USAGE, 1, skill="fluxo_caixa"),
            _event(EventCategory.SKILL_USAGE, 2, skill="fluxo_caixa"),
            _event(EventCategory.SUCCESSFUL_INTERACTION, 3),
            _event(EventCategory.FAILED_INTERACTION, 4, topic="dre"),
            _event(EventCategory.FAILED_INTERACTION, 5, topic="dre"),
            _event(EventCategory.FAILED_INTERACTION, 6, topic="general"),
        ]
        profile = ProfileBuilder().fold_events(UserProfile.default("u1"), events)

        assert profile.skill_usage == {"fluxo_caixa": 2}
        assert profile.successful_interactions == 1
        assert profile.failed_interactions == 3
        assert profile.problematic_topics == ["dre"]

    def test_satisfaction_running_mean(self):
        events = [
            _event(EventCategory.USER_FEEDBACK, 1, score=1.0),
            _event(EventCategory.USER_FEEDBACK, 2, score=0.0),
            _event(EventCategory.USER_FEEDBACK, 3, score=0.5),
        ]
        profile = ProfileBuilder().fold_events(UserProfile.default("u1"), events)

        assert profile.feedback_count == 3
        assert abs(profile.satisfaction_score - 0.5) < 1e-9

    def test_batches_equal_replay(self):
        """Folding in two batches gives the same result as one replay."""
        events = [
            _event(EventCategory.USER_FEEDBACK, 1, score=1.0),
            _event(EventCategory.SKILL_USAGE, 2, skill="conciliacao"),
            _event(EventCategory.USER_FEEDBACK, 3, score=0.3),
            _event(EventCategory.USER_FEEDBACK, 4, score=0.5),
        ]
        builder = ProfileBuilder()
        base = UserProfile.default("u1")

        replay = builder.fold_events(base, events)
        batched = builder.fold_events(builder.fold_events(base, events[:2]), events[2:])

        assert abs(replay.satisfaction_score - batched.satisfaction_score) < 1e-9
        assert replay.feedback_count == batched.feedback_count
        assert replay.skill_usage == batched.skill_usage


class TestProfileSerialization:
    """Test profile dict conversion."""

    def test_round_trip(self):
        profile = UserProfile.default("u1")
        profile.preferred_topics = ["dre"]
        profile.communication_style = CommunicationStyle.CONCISE
        profile.last_interaction = datetime(2024, 5, 1, 10, 30)

        restored = UserProfile.from_dict(profile.to_dict())
        assert restored == profile

    def test_unknown_and_missing_keys(self):
        data = UserProfile.default("u1").to_dict()
        data["legacy_field"] = "x"
        del data["preferred_hours"]

        restored = UserProfile.from_dict(data)
        assert restored.user_id == "u1"
        assert restored.preferred_hours == []
