"""Tests for feedback classification and scoring."""

import pytest

from meshbot.memory.feedback import FeedbackClassifier, blend_satisfaction
from meshbot.memory.models import FeedbackCategory


@pytest.fixture
def classifier():
    return FeedbackClassifier()


class TestCategorize:
    """Test keyword categories."""

    @pytest.mark.parametrize("text", ["ótimo, muito bom", "Excelente!", "obrigado, ajudou", "perfeito"])
    def test_positive(self, classifier, text):
        assert classifier.categorize(text) == FeedbackCategory.POSITIVE

    @pytest.mark.parametrize("text", ["ruim", "não funcionou", "valor incorreto", "deu erro"])
    def test_negative(self, classifier, text):
        assert classifier.categorize(text) == FeedbackCategory.NEGATIVE

    @pytest.mark.parametrize("text", ["ok", "entendi", "certo"])
    def test_neutral(self, classifier, text):
        assert classifier.categorize(text) == FeedbackCategory.NEUTRAL

    @pytest.mark.parametrize("text", ["", "   ", None, "qualquer coisa", "bonus"])
    def test_unknown(self, classifier, text):
        assert classifier.categorize(text) == FeedbackCategory.UNKNOWN

    def test_positive_checked_first(self, classifier):
        assert classifier.categorize("bom, mas teve um problema") == FeedbackCategory.POSITIVE


class TestScore:
    """Test conversion to satisfaction samples."""

    def test_text_category_wins(self, classifier):
        assert classifier.score("ótimo", rating=1) == (FeedbackCategory.POSITIVE, 1.0)
        assert classifier.score("ruim", rating=5) == (FeedbackCategory.NEGATIVE, 0.0)

    def test_rating_used_when_text_unknown(self, classifier):
        assert classifier.score(None, rating=5) == (FeedbackCategory.UNKNOWN, 1.0)
        assert classifier.score("hmm", rating=3) == (FeedbackCategory.UNKNOWN, 0.5)
        assert classifier.score(None, rating=1) == (FeedbackCategory.UNKNOWN, 0.0)

    def test_rating_clamped(self, classifier):
        assert classifier.score(None, rating=9)[1] == 1.0
        assert classifier.score(None, rating=-2)[1] == 0.0

    def test_nothing_known(self, classifier):
        assert classifier.score("hmm") == (FeedbackCategory.UNKNOWN, 0.3)


class TestBlend:
    """Test the count-weighted running mean."""

    def test_first_sample_replaces_seed(self):
        assert blend_satisfaction(0.0, 0, 0.8) == 0.8

    def test_mean(self):
        assert blend_satisfaction(1.0, 1, 0.0) == 0.5
        assert abs(blend_satisfaction(0.5, 2, 1.0) - 2 / 3) < 1e-9

    @pytest.mark.parametrize("sample", [-5.0, 0.0, 0.3, 1.0, 7.0])
    def test_bounded(self, sample):
        value = blend_satisfaction(0.9, 4, sample)
        assert 0.0 <= value <= 1.0
