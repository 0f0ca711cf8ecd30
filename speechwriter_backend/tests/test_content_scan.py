"""
Tests for the aggregate content scan.
"""

import pytest

from speechwriter_backend.services import content_scan
from speechwriter_backend.services.content_scan import (
    ContentScanner,
    combined_score,
    letter_grade,
    plagiarism_match_severity,
)
from speechwriter_backend.services.cliche_analyzer import ClicheReport, PlagiarismReport
from speechwriter_backend.services.quality_gate import QualityGate


@pytest.mark.parametrize("score,grade", [(9.5, "A+"), (8.2, "A-"), (7.0, "B"), (5.9, "C"), (4.2, "D"), (1.0, "F")])
def test_letter_grade(score, grade):
    assert letter_grade(score) == grade


def test_combined_score_weights():
    scores = combined_score(
        ClicheReport(density=2.0, overall_score=8.0),
        PlagiarismReport(max_similarity=0.2),
    )

    assert scores["clicheAvoidance"] == 8.0
    assert scores["originality"] == pytest.approx(8.0)
    assert scores["overall"] == pytest.approx(8.0 * 0.4 + 8.0 * 0.35 + 8.0 * 0.25)


@pytest.mark.parametrize("similarity,severity", [(0.85, "high"), (0.65, "medium"), (0.3, "low")])
def test_plagiarism_match_severity(similarity, severity):
    assert plagiarism_match_severity(similarity) == severity


@pytest.mark.asyncio
async def test_scan_without_generation_is_deterministic(cliche_sentence):
    report = await ContentScanner().scan(cliche_sentence)

    assert report.degraded == []
    assert report.cliche.needs_rewrite is True
    assert report.plagiarism.max_similarity == 0.0
    assert report.scores["overall"] == pytest.approx(5.9)
    assert report.grade == "C"
    assert report.stylometry.word_count == 11


@pytest.mark.asyncio
async def test_failing_analyzer_degrades_to_neutral(monkeypatch):
    def boom(text, target=None):
        raise RuntimeError("stylometry exploded")

    monkeypatch.setattr(content_scan, "stylometry", boom)

    report = await ContentScanner().scan("A short clean sentence.")

    assert report.degraded == ["stylometry"]
    assert report.stylometry is None
    assert report.to_dict()["stylometry"] is None
    assert report.grade == "A+"


@pytest.mark.asyncio
async def test_generation_failures_are_reported_as_degraded(scripted_capability, generation_adapter):
    report = await ContentScanner(generation_adapter).scan("A short clean sentence.")

    assert "claim_detector" in report.degraded
    assert report.plagiarism.risk_level == "LOW"


@pytest.mark.asyncio
async def test_dropped_analysis_write_is_not_fatal(humanization_store, speech_id, cliche_sentence):
    humanization_store.fail_cliche_writes = True
    scanner = ContentScanner(humanization_store=humanization_store)

    report = await scanner.scan(cliche_sentence, speech_id=speech_id, record_analysis=True)

    assert report.analysis_record_saved is False
    assert report.analysis_record_id is None
    assert len(humanization_store.dropped_writes) == 1


@pytest.mark.asyncio
async def test_analysis_record_is_saved(humanization_store, speech_id, cliche_sentence):
    scanner = ContentScanner(humanization_store=humanization_store)

    report = await scanner.scan(cliche_sentence, speech_id=speech_id, record_analysis=True)

    assert report.analysis_record_saved is True
    record = humanization_store.cliche_records[0]
    assert record["id"] == report.analysis_record_id
    assert len(record["detected_cliches"]) == 2


@pytest.mark.asyncio
async def test_scan_records_quality_issues(quality_store, speech_id):
    gate = QualityGate(quality_store)
    scanner = ContentScanner(quality_gate=gate)
    text = "Our product cures disease. We need to think outside the box."

    report = await scanner.scan(text, speech_id=speech_id, user_id="user-1", record_issues=True)

    issues = {str(i.id): i for i in quality_store.issues.values()}
    assert sorted(report.recorded_issue_ids) == sorted(issues)
    by_type = {(i.issue_type, i.severity) for i in issues.values()}
    assert ("risk_claim", "critical") in by_type
    assert ("sensitive_topic", "critical") in by_type
    assert ("cliche", "high") in by_type

    validation = await gate.validate_export(speech_id, "user-1")
    assert validation.can_export is False


@pytest.mark.asyncio
async def test_rescanning_unchanged_text_does_not_duplicate_open_issues(quality_store, speech_id):
    gate = QualityGate(quality_store)
    scanner = ContentScanner(quality_gate=gate)
    text = "We must think outside the box, move the needle and circle back on this plan."

    first = await scanner.scan(text, speech_id=speech_id, user_id="user-1", record_issues=True)
    before = await gate.validate_export(speech_id, "user-1")
    second = await scanner.scan(text, speech_id=speech_id, user_id="user-1", record_issues=True)
    after = await gate.validate_export(speech_id, "user-1")

    assert len(first.recorded_issue_ids) == 3
    assert second.recorded_issue_ids == []
    assert len(quality_store.issues) == 3
    assert before.can_export is True
    assert after.can_export is True
    assert after.severity_counts == before.severity_counts


@pytest.mark.asyncio
async def test_resolved_issue_is_recorded_again_when_redetected(quality_store, speech_id):
    gate = QualityGate(quality_store)
    scanner = ContentScanner(quality_gate=gate)
    text = "We need to think outside the box."

    first = await scanner.scan(text, speech_id=speech_id, user_id="user-1", record_issues=True)
    await gate.resolve_issue(first.recorded_issue_ids[0], "resolved", resolved_by="user-1")
    second = await scanner.scan(text, speech_id=speech_id, user_id="user-1", record_issues=True)

    assert len(second.recorded_issue_ids) == 1
    assert second.recorded_issue_ids[0] not in first.recorded_issue_ids
    assert len(quality_store.issues) == len(first.recorded_issue_ids) + 1


@pytest.mark.asyncio
async def test_scan_with_generation_includes_contextual_cliches(scripted_capability, generation_adapter):
    text = "Our launch ran like a well-oiled machine."
    scripted_capability.responses["cliche_detect"] = {
        "cliches": [{"phrase": "well-oiled machine", "category": "metaphor", "start": 22, "end": 40}]
    }

    report = await ContentScanner(generation_adapter).scan(text)

    assert [(m.phrase, m.start, m.end) for m in report.cliche.matches] == [("well-oiled machine", 22, 40)]
    assert "contextual_cliche_detector" not in report.degraded
    assert "cliche_detect" in scripted_capability.calls
