"""Feedback classification for satisfaction scoring."""

import re
from typing import Optional

from loguru import logger

from meshbot.memory.models import FeedbackCategory

# Checked in this order; the first category with a hit wins
FEEDBACK_PATTERNS: dict[FeedbackCategory, list[str]] = {
    FeedbackCategory.POSITIVE: [
        r"\bbo[ma]\b",
        r"\b[óo]tim[oa]",
        r"\bexcelente",
        r"\bperfeit[oa]",
        r"\bobrigad[oa]",
        r"\bajudou",
    ],
    FeedbackCategory.NEGATIVE: [
        r"\bruim",
        r"\berr(?:o|ad[oa])",
        r"\bn[ãa]o funcionou",
        r"\bproblema",
        r"\bincorret[oa]",
    ],
    FeedbackCategory.NEUTRAL: [
        r"\bok\b",
        r"\bentendi",
        r"\bcerto",
    ],
}

CATEGORY_SCORES: dict[FeedbackCategory, float] = {
    FeedbackCategory.POSITIVE: 1.0,
    FeedbackCategory.NEUTRAL: 0.5,
    FeedbackCategory.NEGATIVE: 0.0,
    FeedbackCategory.UNKNOWN: 0.3,
}

MIN_RATING = 1
MAX_RATING = 5


class FeedbackClassifier:
    """
    Categorises free-text feedback with keyword patterns and turns it into
    a satisfaction sample in [0, 1].
    """

    def __init__(self):
        self.patterns = {
            category: [re.compile(p, re.IGNORECASE) for p in patterns]
            for category, patterns in FEEDBACK_PATTERNS.items()
        }

    def categorize(self, text: Optional[str]) -> FeedbackCategory:
        """
        Classify feedback text.

        Args:
            text: Free-text feedback from the user

        Returns:
            The first category with a matching pattern, or UNKNOWN
        """
        if not text or not text.strip():
            return FeedbackCategory.UNKNOWN

        for category, patterns in self.patterns.items():
            if any(p.search(text) for p in patterns):
                return category
        return FeedbackCategory.UNKNOWN

    def score(self, text: Optional[str] = None, rating: Optional[int] = None) -> tuple[FeedbackCategory, float]:
        """
        Turn a feedback submission into a satisfaction sample.

        A recognised text category takes precedence; a 1-5 rating is used
        only when the text says nothing we recognise.

        Returns:
            (category, sample) where sample is in [0, 1]
        """
        category = self.categorize(text)
        if category != FeedbackCategory.UNKNOWN:
            return category, CATEGORY_SCORES[category]

        if rating is not None:
            clamped = min(max(rating, MIN_RATING), MAX_RATING)
            if clamped != rating:
                logger.warning(f"Rating {rating} outside {MIN_RATING}-{MAX_RATING}, clamped to {clamped}")
            return category, (clamped - MIN_RATING) / (MAX_RATING - MIN_RATING)

        return category, CATEGORY_SCORES[FeedbackCategory.UNKNOWN]


def blend_satisfaction(previous: float, count: int, sample: float) -> float:
    """Count-weighted running mean, clamped to [0, 1]."""
    value = (previous * count + sample) / (count + 1)
    return min(max(value, 0.0), 1.0)
