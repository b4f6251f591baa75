"""Topic bucketing and communication style classification.

Each topic has a list of rules; a rule is a tuple of patterns that must all
be present. Patterns are anchored at a word start so "caixa" does not match
inside "encaixar".
"""

import re
from collections import Counter
from typing import Iterable

from meshbot.memory.models import CommunicationStyle

GENERAL_TOPIC = "general"

TOPIC_RULES: dict[str, list[tuple[str, ...]]] = {
    "fluxo_caixa": [
        (r"\bfluxo", r"\bcaixa"),
        (r"\bcash flow",),
        (r"\bliquidez",),
    ],
    "conciliacao_bancaria": [
        (r"\bconcilia[çc][ãa]o",),
        (r"\bbanc[áa]ri[ao]",),
        (r"\bdiverg[êe]ncia",),
    ],
    "relatorios": [
        (r"\brelat[óo]rio",),
    ],
    "dre": [
        (r"\bdre\b",),
        (r"\bdemonstra[çc][ãa]o do resultado",),
    ],
    "balanco_patrimonial": [
        (r"\bbalan[çc]o",),
    ],
    "processos": [
        (r"\bprocesso", ),
        (r"\bprocedimento",),
        (r"\bworkflow",),
        (r"\bautoma[çc][ãa]o",),
    ],
    "compliance": [
        (r"\bcompliance",),
        (r"\bauditoria",),
        (r"\bregulamento",),
    ],
}

_COMPILED: dict[str, list[tuple[re.Pattern, ...]]] = {
    topic: [tuple(re.compile(p, re.IGNORECASE) for p in rule) for rule in rules]
    for topic, rules in TOPIC_RULES.items()
}

DETAILED_MIN_LENGTH = 100
CONCISE_MAX_LENGTH = 30


def extract_topics(text: str) -> list[str]:
    """Return every topic bucket the text falls into, in declaration order."""
    if not text:
        return []
    found = []
    for topic, rules in _COMPILED.items():
        if any(all(p.search(text) for p in rule) for rule in rules):
            found.append(topic)
    return found


def extract_topic(text: str) -> str:
    """Return the first matching topic, or "general"."""
    topics = extract_topics(text)
    return topics[0] if topics else GENERAL_TOPIC


def rank_topics(texts: Iterable[str], limit: int = 5) -> list[tuple[str, int]]:
    """
    Count topic buckets over several texts and rank them by frequency.

    Ties keep the order in which the topic was first seen.

    Args:
        texts: User messages to scan
        limit: Maximum number of topics to return

    Returns:
        (topic, count) pairs, most frequent first
    """
    counts: Counter[str] = Counter()
    for text in texts:
        counts.update(extract_topics(text))
    return counts.most_common(limit)


def classify_style(texts: list[str], min_samples: int = 3) -> CommunicationStyle:
    """Classify communication style from average message length."""
    if len(texts) < min_samples:
        return CommunicationStyle.PROFESSIONAL

    avg = sum(len(t) for t in texts) / len(texts)
    if avg > DETAILED_MIN_LENGTH:
        return CommunicationStyle.DETAILED
    if avg < CONCISE_MAX_LENGTH:
        return CommunicationStyle.CONCISE
    return CommunicationStyle.PROFESSIONAL
