"""
Risk classification for speech text.

Three signal sources are combined: fixed regex detectors for risky claim
shapes, a whole-word sensitive-topic lexicon and an optional generation-backed
claim detector whose claims are appended to the regex hits.
"""

import logging
import re
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional

from speechwriter_backend.errors import GenerationError
from speechwriter_backend.services.stage_outputs import ClaimDetectionOutput

logger = logging.getLogger(__name__)

RISK_LOW = "LOW"
RISK_MEDIUM = "MEDIUM"
RISK_HIGH = "HIGH"
RISK_CRITICAL = "CRITICAL"

CRITICAL_CLAIM_TYPES = {"medical", "legal", "financial"}

# Each detector reports its first match only
RISK_PATTERNS = [
    ("absolute", re.compile(
        r"\b(always|never|all|every|none|no one)\b.*\b(will|are|is|does|can|cannot)\b", re.IGNORECASE)),
    ("unsubstantiated", re.compile(
        r"\b(studies show|research proves|scientists agree|experts say)\b", re.IGNORECASE)),
    ("statistic", re.compile(r"\b\d{1,3}%\s*of\b", re.IGNORECASE)),
    ("medical", re.compile(
        r"\b(cures?|prevents?|treats?|heals?|eliminates?)\b.*\b(cancer|disease|illness|condition)\b",
        re.IGNORECASE)),
    ("financial", re.compile(
        r"\b(guaranteed|risk-free|certain|sure)\b.*\b(profit|return|money|income)\b", re.IGNORECASE)),
    ("superlative", re.compile(
        r"\b(best|worst|most|least|only|unique|revolutionary|breakthrough)\b", re.IGNORECASE)),
]

PATTERN_EXPLANATIONS = {
    "absolute": "Absolute statement that may not hold in every case",
    "unsubstantiated": "Appeal to unnamed research or experts without a source",
    "statistic": "Percentage statistic without a cited source",
    "medical": "Health claim that requires medical evidence",
    "financial": "Financial guarantee that may be misleading",
    "superlative": "Superlative language that may need qualification",
}

SENSITIVE_TOPICS: Dict[str, List[str]] = {
    "political": [
        "election", "vote", "republican", "democrat", "liberal", "conservative",
        "politics", "government", "congress", "senate", "presidency", "campaign",
        "ballot", "candidate", "political party", "ideology", "partisan",
    ],
    "religious": [
        "god", "jesus", "allah", "buddha", "christian", "muslim", "jewish",
        "hindu", "religion", "faith", "prayer", "church", "mosque", "temple",
        "bible", "quran", "torah", "religious", "spiritual", "divine",
    ],
    "controversial": [
        "abortion", "gun control", "climate change", "immigration", "racism",
        "discrimination", "lgbtq", "gender", "sexuality", "controversial",
        "debate", "polarizing", "divisive", "contentious",
    ],
    "medical": [
        "vaccine", "medication", "treatment", "diagnosis", "medical advice",
        "health claim", "cure", "disease", "illness", "symptoms", "therapy",
        "clinical", "pharmaceutical", "drug", "medical research",
    ],
    "financial": [
        "investment advice", "stock tip", "financial advice", "guaranteed return",
        "risk-free", "get rich", "money back guarantee", "financial planning",
        "investment strategy", "market prediction",
    ],
    "legal": [
        "legal advice", "lawsuit", "litigation", "copyright", "trademark",
        "patent", "contract", "legal opinion", "attorney", "lawyer", "court",
        "judge", "jury", "legal proceedings",
    ],
}

CLAIM_SEVERITY = {
    "medical": "critical",
    "legal": "critical",
    "financial": "critical",
    "unsubstantiated": "high",
    "statistic": "high",
    "absolute": "medium",
}

TOPIC_SEVERITY = {
    "medical": "critical",
    "legal": "critical",
    "financial": "high",
    "political": "high",
    "religious": "medium",
    "controversial": "medium",
}

_RISK_LEVEL_PENALTY = {RISK_CRITICAL: 8, RISK_HIGH: 5, RISK_MEDIUM: 2, RISK_LOW: 0}

_TOPIC_PATTERNS = {
    category: [re.compile(rf"\b{re.escape(keyword)}\b", re.IGNORECASE) for keyword in keywords]
    for category, keywords in SENSITIVE_TOPICS.items()
}


@dataclass
class FlaggedClaim:
    text: str
    risk_type: str
    explanation: str
    start: Optional[int] = None
    end: Optional[int] = None
    suggested_revision: Optional[str] = None
    source: str = "pattern"

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class TopicInstance:
    text: str
    start: int
    end: int


@dataclass
class SensitiveTopic:
    category: str
    instances: List[TopicInstance] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RiskReport:
    risk_level: str
    requires_acknowledgment: bool
    flagged_claims: List[FlaggedClaim] = field(default_factory=list)
    sensitive_topics: List[SensitiveTopic] = field(default_factory=list)
    risk_score: int = 10
    export_blocked: bool = False
    action_items: List[dict] = field(default_factory=list)
    compliance_issues: List[str] = field(default_factory=list)
    recommended_disclaimers: List[str] = field(default_factory=list)
    degraded: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "riskLevel": self.risk_level,
            "requiresAcknowledgment": self.requires_acknowledgment,
            "flaggedClaims": [c.to_dict() for c in self.flagged_claims],
            "sensitiveTopics": [t.to_dict() for t in self.sensitive_topics],
            "riskScore": self.risk_score,
            "exportBlocked": self.export_blocked,
            "actionItems": self.action_items,
            "complianceIssues": self.compliance_issues,
            "recommendedDisclaimers": self.recommended_disclaimers,
            "degraded": self.degraded,
        }


def detect_pattern_claims(text: str) -> List[FlaggedClaim]:
    claims = []
    for risk_type, pattern in RISK_PATTERNS:
        match = pattern.search(text)
        if match is None:
            continue
        claims.append(FlaggedClaim(
            text=match.group(0),
            risk_type=risk_type,
            explanation=PATTERN_EXPLANATIONS[risk_type],
            start=match.start(),
            end=match.end(),
        ))
    return claims


def detect_sensitive_topics(text: str) -> List[SensitiveTopic]:
    topics = []
    for category, patterns in _TOPIC_PATTERNS.items():
        instances = [
            TopicInstance(text=m.group(0), start=m.start(), end=m.end())
            for pattern in patterns
            for m in pattern.finditer(text)
        ]
        if instances:
            topics.append(SensitiveTopic(category=category, instances=instances))
    return topics


def decide_risk_level(claims: List[FlaggedClaim], topics: List[SensitiveTopic]) -> str:
    if any(c.risk_type in CRITICAL_CLAIM_TYPES for c in claims):
        return RISK_CRITICAL
    if len(claims) > 2 or len(topics) > 1:
        return RISK_HIGH
    if claims or topics:
        return RISK_MEDIUM
    return RISK_LOW


def calculate_risk_score(risk_level: str, claims: List[FlaggedClaim],
                         topics: List[SensitiveTopic]) -> int:
    """1-10, lower is riskier"""
    score = 10 - _RISK_LEVEL_PENALTY[risk_level]
    score -= 2 * sum(1 for c in claims if c.risk_type in CRITICAL_CLAIM_TYPES)
    score -= min(len(topics), 3)
    return max(1, score)


def claim_severity(risk_type: str) -> str:
    return CLAIM_SEVERITY.get(risk_type, "low")


def topic_severity(category: str) -> str:
    return TOPIC_SEVERITY.get(category, "low")


def build_action_items(claims: List[FlaggedClaim], topics: List[SensitiveTopic]) -> List[dict]:
    actions = []
    critical = [c for c in claims if c.risk_type in CRITICAL_CLAIM_TYPES]
    if critical:
        actions.append({
            "priority": "HIGH",
            "action": f"Review and revise {len(critical)} critical claims",
            "type": "REVISION",
        })

    unsourced = [c for c in claims if c.risk_type in {"unsubstantiated", "statistic"}]
    if unsourced:
        actions.append({
            "priority": "MEDIUM",
            "action": f"Add sources for {len(unsourced)} unsubstantiated claims",
            "type": "VERIFICATION",
        })

    categories = {t.category for t in topics}
    if categories & {"medical", "financial"}:
        actions.append({
            "priority": "HIGH",
            "action": "Add appropriate disclaimers for sensitive content",
            "type": "DISCLAIMER",
        })

    order = {"HIGH": 3, "MEDIUM": 2, "LOW": 1}
    return sorted(actions, key=lambda a: order[a["priority"]], reverse=True)


def _compliance(claims: List[FlaggedClaim]):
    types = {c.risk_type for c in claims}
    issues = []
    disclaimers = []
    if "legal" in types:
        issues.append("Legal claims require review")
    if "medical" in types:
        issues.append("Medical information needs disclaimers")
        disclaimers.append("This speech contains general information and is not medical advice")
    if "financial" in types:
        issues.append("Financial advice requires compliance review")
        disclaimers.append("This speech contains general information and is not financial advice")
    return issues, disclaimers


def build_report(claims: List[FlaggedClaim], topics: List[SensitiveTopic],
                 degraded: Optional[List[str]] = None) -> RiskReport:
    risk_level = decide_risk_level(claims, topics)
    issues, disclaimers = _compliance(claims)
    return RiskReport(
        risk_level=risk_level,
        requires_acknowledgment=risk_level in {RISK_HIGH, RISK_CRITICAL},
        flagged_claims=claims,
        sensitive_topics=topics,
        risk_score=calculate_risk_score(risk_level, claims, topics),
        export_blocked=(
            risk_level == RISK_CRITICAL
            or any(c.risk_type in CRITICAL_CLAIM_TYPES for c in claims)
        ),
        action_items=build_action_items(claims, topics),
        compliance_issues=issues,
        recommended_disclaimers=disclaimers,
        degraded=list(degraded or []),
    )


class RiskClassifier:
    """Regex and lexicon risk flags, optionally merged with a generation-backed detector."""

    def __init__(self, generation_adapter=None):
        self.generation_adapter = generation_adapter

    def classify(self, text: str) -> RiskReport:
        """Deterministic half only. Internal failures degrade to an empty signal."""
        degraded = []
        try:
            claims = detect_pattern_claims(text)
        except Exception as exc:
            logger.warning("[RISK] Pattern detection failed, using empty result: %s", exc)
            claims, degraded = [], ["risk_patterns"]
        try:
            topics = detect_sensitive_topics(text)
        except Exception as exc:
            logger.warning("[RISK] Topic lexicon failed, using empty result: %s", exc)
            topics = []
            degraded.append("sensitive_topics")
        return build_report(claims, topics, degraded)

    async def detect_claims(self, text: str) -> List[FlaggedClaim]:
        output, _ = await self.generation_adapter.generate_structured(
            "risk_claims", {"text": text}, ClaimDetectionOutput
        )
        claims = []
        for claim in output.claims:
            start, end = claim.start, claim.end
            if start is None or end is None or not 0 <= start <= end <= len(text):
                start, end = None, None
            claims.append(FlaggedClaim(
                text=claim.text,
                risk_type=claim.risk_type,
                explanation=claim.explanation,
                start=start,
                end=end,
                suggested_revision=claim.suggested_revision,
                source="detector",
            ))
        return claims

    async def assess(self, text: str) -> RiskReport:
        report = self.classify(text)
        if self.generation_adapter is None:
            return report

        try:
            detected = await self.detect_claims(text)
        except GenerationError as exc:
            logger.warning("[RISK] Claim detector unavailable: %s", exc)
            return build_report(report.flagged_claims, report.sensitive_topics,
                                report.degraded + ["claim_detector"])

        claims = report.flagged_claims + detected
        final = build_report(claims, report.sensitive_topics, report.degraded)
        logger.info("[RISK] level=%s claims=%s topics=%s",
                    final.risk_level, len(claims), len(final.sensitive_topics))
        return final
