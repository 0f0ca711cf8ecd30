"""Sentence and word statistics plus stylometric distance to a target profile."""

import re
from dataclasses import dataclass, asdict
from typing import Optional

DEFAULT_TARGET_SENTENCE_LENGTH = 15.0
TARGET_PUNCTUATION_DENSITY = 0.1
SENTENCE_LENGTH_WEIGHT = 0.7
PUNCTUATION_WEIGHT = 0.3
COMPLEX_WORD_MIN_CHARS = 7

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
_PUNCTUATION_RE = re.compile(r"[,.;:()]")


@dataclass
class StyleProfile:
    avg_sentence_length: float = DEFAULT_TARGET_SENTENCE_LENGTH

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "StyleProfile":
        if not data:
            return cls()
        value = data.get("avg_sentence_length", data.get("avgSentenceLength"))
        # A missing or zero length means the profile has not been measured yet.
        if not value:
            return cls()
        return cls(avg_sentence_length=float(value))


@dataclass
class StylometryReport:
    word_count: int
    sentence_count: int
    avg_sentence_length: float
    target_sentence_length: float
    sentence_length_diff: float
    punctuation_density: float
    complexity_score: float
    distance: float

    def to_dict(self) -> dict:
        return asdict(self)


def split_sentences(text: str) -> list:
    return [s for s in _SENTENCE_SPLIT_RE.split(text) if s.strip()]


def split_words(text: str) -> list:
    return text.split()


def stylometry_distance(avg_sentence_length: float, punctuation_density: float,
                        target: StyleProfile) -> float:
    """
    Weighted deviation from the target profile. Zero at a perfect match and
    unbounded above.
    """
    if target.avg_sentence_length <= 0:
        raise ValueError("Target average sentence length must be positive")
    length_term = abs(avg_sentence_length - target.avg_sentence_length) / target.avg_sentence_length
    punct_term = abs(punctuation_density - TARGET_PUNCTUATION_DENSITY) / TARGET_PUNCTUATION_DENSITY
    return SENTENCE_LENGTH_WEIGHT * length_term + PUNCTUATION_WEIGHT * punct_term


def stylometry(text: str, target: Optional[StyleProfile] = None) -> StylometryReport:
    target = target or StyleProfile()
    sentences = split_sentences(text)
    words = split_words(text)

    word_count = len(words)
    sentence_count = len(sentences)
    avg_sentence_length = word_count / sentence_count if sentence_count else 0.0
    if word_count:
        punctuation_density = len(_PUNCTUATION_RE.findall(text)) / word_count
        complexity_score = sum(1 for w in words if len(w) >= COMPLEX_WORD_MIN_CHARS) / word_count
    else:
        punctuation_density = 0.0
        complexity_score = 0.0

    return StylometryReport(
        word_count=word_count,
        sentence_count=sentence_count,
        avg_sentence_length=avg_sentence_length,
        target_sentence_length=target.avg_sentence_length,
        sentence_length_diff=abs(avg_sentence_length - target.avg_sentence_length),
        punctuation_density=punctuation_density,
        complexity_score=complexity_score,
        distance=stylometry_distance(avg_sentence_length, punctuation_density, target),
    )
