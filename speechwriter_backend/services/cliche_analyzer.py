"""
Cliché report, rewrite suggestions and the plagiarism-style similarity check.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional

from speechwriter_backend.config import (
    CLICHE_DENSITY_THRESHOLD,
    CLICHE_SCORE_THRESHOLD,
    CONTEXT_WINDOW_CHARS,
    MAX_REWRITE_SUGGESTIONS,
    PLAGIARISM_REVISION_THRESHOLD,
)
from speechwriter_backend.errors import GenerationError
from speechwriter_backend.services.phrase_matcher import (
    SEVERITY_RANK,
    ClicheMatch,
    PhraseMatcher,
    classify_severity,
    cliche_density,
    count_tokens,
    get_phrase_matcher,
)
from speechwriter_backend.services.stage_outputs import (
    ClicheRewriteOutput,
    ContextualClicheOutput,
    PlagiarismOutput,
)

logger = logging.getLogger(__name__)

SUGGESTION_CONFIDENCE = 0.8


@dataclass
class Suggestion:
    original: str
    start: int
    end: int
    alternatives: List[str]
    confidence: float
    reasoning: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ClicheReport:
    matches: List[ClicheMatch] = field(default_factory=list)
    token_count: int = 0
    density: float = 0.0
    overall_score: float = 10.0
    needs_rewrite: bool = False
    statistics: Dict = field(default_factory=dict)
    suggestions: List[Suggestion] = field(default_factory=list)
    degraded: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "detectedCliches": [m.to_dict() for m in self.matches],
            "tokenCount": self.token_count,
            "clicheDensity": self.density,
            "overallScore": self.overall_score,
            "needsRewrite": self.needs_rewrite,
            "clicheStatistics": self.statistics,
            "suggestions": [s.to_dict() for s in self.suggestions],
            "degraded": self.degraded,
        }


@dataclass
class PlagiarismReport:
    max_similarity: float = 0.0
    risk_level: str = "LOW"
    needs_revision: bool = False
    matches: List[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "maxSimilarity": self.max_similarity,
            "riskLevel": self.risk_level,
            "needsRevision": self.needs_revision,
            "matches": self.matches,
        }


def calculate_cliche_score(density: float, matches: List[ClicheMatch]) -> float:
    """1-10, higher is fresher."""
    score = 10.0
    if density > 2:
        score -= 4
    elif density > 1:
        score -= 2
    elif density > 0.5:
        score -= 1

    categories = Counter(m.category for m in matches)
    if categories.get("business", 0) > 2:
        score -= 1
    if categories.get("motivational", 0) > 3:
        score -= 2

    return max(1.0, score)


def build_statistics(matches: List[ClicheMatch], density: float) -> dict:
    categories = Counter(m.category for m in matches)
    return {
        "totalDetected": len(matches),
        "density": density,
        "categoryCounts": dict(categories),
        "mostCommonCategory": categories.most_common(1)[0][0] if categories else None,
    }


def _report(matches: List[ClicheMatch], token_count: int) -> ClicheReport:
    density = cliche_density(len(matches), token_count)
    score = calculate_cliche_score(density, matches)
    return ClicheReport(
        matches=matches,
        token_count=token_count,
        density=density,
        overall_score=score,
        needs_rewrite=density > CLICHE_DENSITY_THRESHOLD or score < CLICHE_SCORE_THRESHOLD,
        statistics=build_statistics(matches, density),
    )


def analyze_cliches(text: str, matcher: Optional[PhraseMatcher] = None) -> ClicheReport:
    """Deterministic cliché report. Matcher failures degrade to an empty report."""
    matcher = matcher or get_phrase_matcher()
    token_count = count_tokens(text)
    try:
        matches = matcher.detect(text)
    except Exception as exc:
        logger.warning("[CLICHE] Phrase search failed, reporting no matches: %s", exc)
        matches = []
    return _report(matches, token_count)


def locate_phrase(text: str, phrase: str, start: Optional[int], end: Optional[int]):
    """
    Offsets of ``phrase`` in ``text``. Reported offsets are kept when they
    cover the phrase; otherwise the first occurrence is used, and a phrase
    that does not occur at all yields ``None``.
    """
    if start is not None and end is not None and 0 <= start < end <= len(text):
        if text[start:end].lower() == phrase.lower():
            return start, end
    index = text.lower().find(phrase.lower())
    if index < 0:
        return None
    return index, index + len(phrase)


async def detect_contextual_cliches(text: str, generation_adapter,
                                    context_chars: int = CONTEXT_WINDOW_CHARS) -> List[ClicheMatch]:
    """Clichés the phrase list does not know, found by a generation call."""
    output, _ = await generation_adapter.generate_structured(
        "cliche_detect", {"text": text}, ContextualClicheOutput
    )
    matches = []
    for item in output.cliches:
        span = locate_phrase(text, item.phrase, item.start, item.end)
        if span is None:
            logger.debug("[CLICHE] Dropping contextual match not found in text: %s", item.phrase)
            continue
        start, end = span
        matches.append(ClicheMatch(
            phrase=item.phrase.lower(),
            category=item.category,
            start=start,
            end=end,
            context=text[max(0, start - context_chars):min(len(text), end + context_chars)],
        ))
    return matches


def merge_matches(*groups: List[ClicheMatch]) -> List[ClicheMatch]:
    """Union ordered by position. Matches with the same span and phrase count once."""
    seen = set()
    merged = []
    for match in (m for group in groups for m in group):
        key = (match.start, match.end, match.phrase.lower())
        if key in seen:
            continue
        seen.add(key)
        merged.append(match)
    return sorted(merged, key=lambda m: (m.start, m.end))


async def analyze_cliches_with_context(text: str, generation_adapter,
                                       matcher: Optional[PhraseMatcher] = None) -> ClicheReport:
    """
    Phrase-list report widened with contextual detection. When the detector
    is unavailable the phrase-list report is returned and marked degraded.
    """
    base = analyze_cliches(text, matcher)
    try:
        contextual = await detect_contextual_cliches(text, generation_adapter)
    except GenerationError as exc:
        logger.warning("[CLICHE] Contextual detection unavailable, using phrase list only: %s", exc)
        base.degraded.append("contextual_cliche_detector")
        return base

    matches = merge_matches(base.matches, contextual)
    report = _report(matches, base.token_count)
    for match in report.matches:
        match.severity = classify_severity(match.category, report.density)
    logger.info("[CLICHE] %s phrase-list and %s contextual matches merged into %s",
                len(base.matches), len(contextual), len(matches))
    return report


def most_severe(matches: List[ClicheMatch], limit: int = MAX_REWRITE_SUGGESTIONS) -> List[ClicheMatch]:
    return sorted(matches, key=lambda m: SEVERITY_RANK[m.severity], reverse=True)[:limit]


async def generate_rewrite_suggestions(matches: List[ClicheMatch], generation_adapter,
                                       limit: int = MAX_REWRITE_SUGGESTIONS) -> List[Suggestion]:
    """One generation call per match; a failed call is skipped."""
    suggestions = []
    for match in most_severe(matches, limit):
        try:
            output, _ = await generation_adapter.generate_structured(
                "cliche_rewrite",
                {"phrase": match.phrase, "category": match.category, "context": match.context},
                ClicheRewriteOutput,
            )
        except GenerationError as exc:
            logger.warning("[CLICHE] No rewrite for '%s': %s", match.phrase, exc)
            continue
        suggestions.append(Suggestion(
            original=match.phrase,
            start=match.start,
            end=match.end,
            alternatives=output.alternatives,
            confidence=SUGGESTION_CONFIDENCE,
            reasoning=output.reasoning,
        ))
    return suggestions


def plagiarism_risk_level(similarity: float) -> str:
    if similarity > 0.8:
        return "HIGH"
    if similarity > 0.6:
        return "MEDIUM"
    return "LOW"


async def check_plagiarism(text: str, generation_adapter) -> PlagiarismReport:
    """Similarity to published material. Generation failure yields a neutral report."""
    try:
        output, _ = await generation_adapter.generate_structured(
            "plagiarism_check", {"text": text}, PlagiarismOutput
        )
    except GenerationError as exc:
        logger.warning("[CLICHE] Plagiarism check unavailable: %s", exc)
        return PlagiarismReport()

    similarity = max([output.max_similarity] + [m.similarity for m in output.matches])
    return PlagiarismReport(
        max_similarity=similarity,
        risk_level=plagiarism_risk_level(similarity),
        needs_revision=similarity > PLAGIARISM_REVISION_THRESHOLD,
        matches=[m.model_dump(by_alias=True) for m in output.matches],
    )
