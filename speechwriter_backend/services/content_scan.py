"""
Aggregate content scan.

Fans out the cliché, plagiarism, risk and stylometry analyzers concurrently,
downgrades any analyzer that raises to its neutral result, combines the
signals into a score and grade, and optionally records the findings.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from speechwriter_backend.services.cliche_analyzer import (
    ClicheReport,
    PlagiarismReport,
    analyze_cliches,
    analyze_cliches_with_context,
    check_plagiarism,
    generate_rewrite_suggestions,
)
from speechwriter_backend.services.risk_classifier import (
    RiskClassifier,
    build_report,
    claim_severity,
    topic_severity,
)
from speechwriter_backend.services.text_metrics import StyleProfile, stylometry

logger = logging.getLogger(__name__)

GRADE_THRESHOLDS = [
    (9.0, "A+"), (8.5, "A"), (8.0, "A-"), (7.5, "B+"), (7.0, "B"),
    (6.5, "B-"), (6.0, "C+"), (5.5, "C"), (5.0, "C-"), (4.0, "D"),
]


def combined_score(cliche: ClicheReport, plagiarism: PlagiarismReport) -> dict:
    cliche_avoidance = max(0.0, 10 - cliche.density)
    originality = max(0.0, 10 - plagiarism.max_similarity * 10)
    freshness = cliche.overall_score
    overall = freshness * 0.4 + originality * 0.35 + cliche_avoidance * 0.25
    return {
        "freshness": freshness,
        "originality": originality,
        "clicheAvoidance": cliche_avoidance,
        "overall": round(overall, 2),
    }


def letter_grade(score: float) -> str:
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return "F"


@dataclass
class ScanReport:
    cliche: ClicheReport
    plagiarism: PlagiarismReport
    risk: object
    stylometry: object
    scores: dict
    grade: str
    degraded: List[str] = field(default_factory=list)
    analysis_record_id: Optional[str] = None
    analysis_record_saved: Optional[bool] = None
    recorded_issue_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "cliche": self.cliche.to_dict(),
            "plagiarism": self.plagiarism.to_dict(),
            "risk": self.risk.to_dict(),
            "stylometry": self.stylometry.to_dict() if self.stylometry else None,
            "scores": self.scores,
            "grade": self.grade,
            "degraded": self.degraded,
            "analysisRecordId": self.analysis_record_id,
            "analysisRecordSaved": self.analysis_record_saved,
            "recordedIssueIds": self.recorded_issue_ids,
        }


class ContentScanner:
    def __init__(self, generation_adapter=None, humanization_store=None, quality_gate=None):
        self.generation_adapter = generation_adapter
        self.humanization_store = humanization_store
        self.quality_gate = quality_gate

    async def _cliche(self, text: str, include_suggestions: bool) -> ClicheReport:
        if self.generation_adapter is None:
            return analyze_cliches(text)
        report = await analyze_cliches_with_context(text, self.generation_adapter)
        if include_suggestions and report.matches:
            report.suggestions = await generate_rewrite_suggestions(report.matches, self.generation_adapter)
        return report

    async def _plagiarism(self, text: str) -> PlagiarismReport:
        if self.generation_adapter is None:
            return PlagiarismReport()
        return await check_plagiarism(text, self.generation_adapter)

    async def _risk(self, text: str):
        return await RiskClassifier(self.generation_adapter).assess(text)

    async def _stylometry(self, text: str, target: Optional[StyleProfile]):
        return stylometry(text, target)

    async def scan(self, text: str, *, speech_id: Optional[str] = None, user_id: Optional[str] = None,
                   target: Optional[StyleProfile] = None, include_suggestions: bool = False,
                   record_analysis: bool = False, record_issues: bool = False) -> ScanReport:
        results = await asyncio.gather(
            self._cliche(text, include_suggestions),
            self._plagiarism(text),
            self._risk(text),
            self._stylometry(text, target),
            return_exceptions=True,
        )

        neutral = [
            lambda: ClicheReport(),
            lambda: PlagiarismReport(),
            lambda: build_report([], []),
            lambda: None,
        ]
        names = ["cliche", "plagiarism", "risk", "stylometry"]
        degraded = []
        resolved = []
        for name, result, fallback in zip(names, results, neutral):
            if isinstance(result, Exception):
                logger.warning("[CLICHE] Analyzer %s failed, using neutral result: %s", name, result)
                degraded.append(name)
                resolved.append(fallback())
            else:
                resolved.append(result)
        cliche, plagiarism, risk, style = resolved
        degraded.extend(cliche.degraded)
        degraded.extend(risk.degraded)

        scores = combined_score(cliche, plagiarism)
        report = ScanReport(
            cliche=cliche,
            plagiarism=plagiarism,
            risk=risk,
            stylometry=style,
            scores=scores,
            grade=letter_grade(scores["overall"]),
            degraded=degraded,
        )

        if record_analysis and speech_id and self.humanization_store is not None:
            write = await self.humanization_store.record_cliche_analysis(
                speech_id=speech_id,
                text_sample=text[:1000],
                detected_cliches=[m.to_dict() for m in cliche.matches],
                density=cliche.density,
                suggestions=[s.to_dict() for s in cliche.suggestions],
                overall_score=cliche.overall_score,
            )
            report.analysis_record_saved = write.ok
            report.analysis_record_id = write.record_id

        if record_issues and speech_id and user_id and self.quality_gate is not None:
            report.recorded_issue_ids = await record_quality_issues(
                self.quality_gate, speech_id, user_id, report
            )

        return report


def plagiarism_match_severity(similarity: float) -> str:
    if similarity > 0.8:
        return "high"
    if similarity > 0.6:
        return "medium"
    return "low"


def _issue_key(issue_type, flagged_text, start_position, end_position) -> tuple:
    return (issue_type, flagged_text, start_position, end_position)


async def record_quality_issues(quality_gate, speech_id: str, user_id: str, report: ScanReport) -> List[str]:
    """
    Convert scan signals into unresolved QualityIssue rows.

    A signal that already has an unresolved issue for this speech and user is
    skipped, so rescanning unchanged text leaves the gate counts as they were.
    """
    created = []
    open_keys = {
        _issue_key(i["issue_type"], i["flagged_text"], i["start_position"], i["end_position"])
        for i in await quality_gate.get_issues(speech_id, user_id, status="unresolved")
    }

    async def _create(**fields):
        key = _issue_key(fields["issue_type"], fields.get("flagged_text"),
                         fields.get("start_position"), fields.get("end_position"))
        if key in open_keys:
            return
        issue = await quality_gate.create_issue(speech_id=speech_id, user_id=user_id, **fields)
        open_keys.add(key)
        created.append(str(issue.id))

    for claim in report.risk.flagged_claims:
        await _create(
            issue_type="risk_claim",
            severity=claim_severity(claim.risk_type),
            title=f"Risky claim ({claim.risk_type})",
            description=claim.explanation or "This statement may require verification or sources",
            flagged_text=claim.text,
            start_position=claim.start,
            end_position=claim.end,
            suggestions=[claim.suggested_revision] if claim.suggested_revision else [],
            metadata={"riskType": claim.risk_type, "source": claim.source},
        )

    for topic in report.risk.sensitive_topics:
        await _create(
            issue_type="sensitive_topic",
            severity=topic_severity(topic.category),
            title=f"Sensitive topic: {topic.category}",
            description=f"Contains references to {topic.category} topics",
            flagged_text=", ".join(sorted({i.text for i in topic.instances})),
            metadata={"category": topic.category, "instances": len(topic.instances)},
        )

    for match in report.plagiarism.matches:
        similarity = float(match.get("similarity", 0.0))
        await _create(
            issue_type="plagiarism",
            severity=plagiarism_match_severity(similarity),
            title="Possible unoriginal passage",
            description=f"Passage resembles {match.get('source') or 'published material'}",
            flagged_text=match.get("text"),
            start_position=match.get("startChar"),
            end_position=match.get("endChar"),
            metadata={"similarity": similarity, "source": match.get("source")},
        )

    for cliche in report.cliche.matches:
        await _create(
            issue_type="cliche",
            severity=cliche.severity.lower(),
            title=f"Cliché: {cliche.phrase}",
            description=f"'{cliche.phrase}' is a {cliche.category} cliché",
            flagged_text=cliche.phrase,
            start_position=cliche.start,
            end_position=cliche.end,
            metadata={"category": cliche.category, "context": cliche.context},
        )

    logger.info("[QUALITY_GATE] Recorded %s quality issues for speech %s", len(created), speech_id)
    return created
